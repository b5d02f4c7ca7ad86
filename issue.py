from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from book import Branch
from errors import AlreadyReturned, InvalidInput


class IssueStatus(str, Enum):
    ISSUED = "ISSUED"
    RETURNED = "RETURNED"

    @classmethod
    def parse(cls, value: "IssueStatus | str") -> "IssueStatus":
        if isinstance(value, IssueStatus):
            return value
        try:
            return cls(value.strip().upper())
        except (AttributeError, ValueError):
            raise InvalidInput(f"Unknown issue status {value!r}. Expected ISSUED or RETURNED.") from None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Records written without an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Issue:
    """One borrow of one copy of a book from one branch."""

    id: str
    user_id: str
    book_id: str
    location: Branch
    issued_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None
    status: IssueStatus = IssueStatus.ISSUED

    @property
    def is_active(self) -> bool:
        return self.status is IssueStatus.ISSUED

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """True if the copy is still out and its due date has passed."""
        if not self.is_active:
            return False
        return self.due_date < (now or datetime.now(timezone.utc))

    def mark_returned(self, when: datetime) -> None:
        # ISSUED -> RETURNED is the only transition
        if not self.is_active:
            raise AlreadyReturned(f"Issue {self.id} was already returned.")
        self.status = IssueStatus.RETURNED
        self.returned_at = when

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "location": self.location.value,
            "issued_at": self.issued_at.isoformat(),
            "due_date": self.due_date.isoformat(),
            "returned_at": self.returned_at.isoformat() if self.returned_at else None,
            "status": self.status.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Issue":
        return Issue(
            id=data["id"],
            user_id=data["user_id"],
            book_id=data["book_id"],
            location=Branch.parse(data["location"]),
            issued_at=_parse_time(data["issued_at"]),
            due_date=_parse_time(data["due_date"]),
            returned_at=_parse_time(data.get("returned_at")),
            status=IssueStatus.parse(data.get("status", IssueStatus.ISSUED.value)),
        )
