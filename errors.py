"""Failure taxonomy shared by the store, the ledger and the circulation desk.

Every error carries a stable ``kind`` string so the HTTP layer and the CLI can
report it as ``{"error": kind, "detail": message}`` without string matching.
"""

from __future__ import annotations

from typing import Optional


class LibraryError(Exception):
    kind = "LibraryError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class NotFound(LibraryError, LookupError):
    """A referenced user, book or issue does not exist."""
    kind = "NotFound"


class InvalidInput(LibraryError, ValueError):
    """Malformed or out-of-range request data."""
    kind = "InvalidInput"


class EmailTaken(InvalidInput):
    kind = "EmailTaken"


class InvalidStock(LibraryError, ValueError):
    """A stock edit would break ``0 <= available <= total`` at a branch."""
    kind = "InvalidStock"

    def __init__(self, message: str, branch: Optional[str] = None) -> None:
        super().__init__(message)
        self.branch = branch


class InvalidState(LibraryError):
    """The ledger is (or would become) inconsistent."""
    kind = "InvalidState"


class InvalidLocation(LibraryError, ValueError):
    kind = "InvalidLocation"


class NoStock(LibraryError):
    kind = "NoStock"


class AlreadyBorrowed(LibraryError):
    kind = "AlreadyBorrowed"


class AlreadyReturned(LibraryError):
    kind = "AlreadyReturned"


class MetadataNotFound(LibraryError, LookupError):
    """The bibliographic provider has no usable record for an identifier."""
    kind = "MetadataNotFound"


class UpstreamUnavailable(LibraryError):
    """The bibliographic provider is unreachable, timed out or failed."""
    kind = "UpstreamUnavailable"


class StorageError(LibraryError):
    kind = "StorageError"
