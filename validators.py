import re
from typing import Optional

# Placeholder values clients send when a title has no ISBN
_MISSING_ISBN = {"", "N/A", "NA", "UNKNOWN", "NONE"}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_WORK_KEY_RE = re.compile(r"^(?:/works/)?(OL\d+W)$", re.IGNORECASE)


class ISBNValidator:
    """ISBN-10 / ISBN-13 normalization.

    Only the shape is checked (10 or 13 characters, digits, optional trailing
    'X' for ISBN-10). Checksums are not enforced because provider data and
    older catalog entries do not always carry valid ones.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        if raw.strip().upper() in _MISSING_ISBN:
            return None
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper() or None

    @staticmethod
    def is_well_formed(isbn: Optional[str]) -> bool:
        if not isbn:
            return False
        if len(isbn) == 10:
            return isbn[:9].isdigit() and (isbn[9].isdigit() or isbn[9] == "X")
        if len(isbn) == 13:
            return isbn.isdigit()
        return False


class WorkKeyValidator:
    """Open Library work keys, accepted as ``OL123W`` or ``/works/OL123W``."""

    @staticmethod
    def normalize_work_key(raw: Optional[str]) -> Optional[str]:
        if raw is None or not raw.strip():
            return None
        match = _WORK_KEY_RE.match(raw.strip())
        if not match:
            return None
        return f"/works/{match.group(1).upper()}"


class TextValidator:
    """Basic text checks for user-entered names and emails."""

    @staticmethod
    def validate_name(name: Optional[str]) -> bool:
        if name is None:
            return False
        t = name.strip()
        return bool(t) and not t.isdigit()

    @staticmethod
    def normalize_email(email: Optional[str]) -> str:
        return (email or "").strip().lower()

    @staticmethod
    def validate_email(email: Optional[str]) -> bool:
        return bool(_EMAIL_RE.match(TextValidator.normalize_email(email)))
