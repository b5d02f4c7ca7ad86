from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from errors import InvalidInput


class Role(str, Enum):
    ADMIN = "ADMIN"
    STUDENT = "STUDENT"

    @classmethod
    def parse(cls, value: "Role | str | None") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            raise InvalidInput(f"Unknown role {value!r}. Expected ADMIN or STUDENT.") from None


@dataclass
class User:
    """A librarian (ADMIN) or patron (STUDENT)."""

    id: str
    name: str
    email: str
    role: Role
    created_at: str

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            role=Role.parse(data.get("role")),
            created_at=data.get("created_at") or "",
        )
