from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping

from errors import InvalidLocation


class Branch(str, Enum):
    """The four physical branches. The set is closed."""

    CHENNAI = "Chennai"
    BANGALORE = "Bangalore"
    DELHI = "Delhi"
    MUMBAI = "Mumbai"

    @classmethod
    def parse(cls, value: "Branch | str | None") -> "Branch":
        if isinstance(value, Branch):
            return value
        if isinstance(value, str):
            wanted = value.strip().lower()
            for branch in cls:
                if branch.value.lower() == wanted or branch.name.lower() == wanted:
                    return branch
        names = ", ".join(b.value for b in cls)
        raise InvalidLocation(f"Unknown branch {value!r}. Expected one of: {names}.")


@dataclass(frozen=True)
class Stock:
    """Copies owned (total) and currently loanable (available) at one branch."""

    total: int = 0
    available: int = 0

    @property
    def on_loan(self) -> int:
        return self.total - self.available

    @property
    def is_consistent(self) -> bool:
        return 0 <= self.available <= self.total

    def adjusted(self, total: int = 0, available: int = 0) -> "Stock":
        return Stock(total=self.total + total, available=self.available + available)

    def to_dict(self) -> dict:
        return {"total": self.total, "available": self.available}

    @staticmethod
    def from_dict(data: Mapping) -> "Stock":
        return Stock(total=int(data.get("total", 0)), available=int(data.get("available", 0)))


def empty_locations() -> Dict[Branch, Stock]:
    return {branch: Stock() for branch in Branch}


class Book:
    """A catalogued title and its stock at every branch."""

    def __init__(self, id: str, title: str, author: str, created_at: str,
                 isbn: str | None = None, work_key: str | None = None,
                 published_year: int | None = None, category: str | None = None,
                 cover_url: str | None = None, summary: str | None = None,
                 locations: Mapping[Branch, Stock] | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn
        self.work_key = work_key
        self.published_year = published_year
        self.category = category
        self.cover_url = cover_url
        self.summary = summary
        self.created_at = created_at

        # Always hold all four branches, whatever the caller passed
        self.locations: Dict[Branch, Stock] = empty_locations()
        for branch, stock in (locations or {}).items():
            self.locations[Branch.parse(branch)] = stock

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.id})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r})"

    def stock_at(self, branch: Branch) -> Stock:
        return self.locations[branch]

    @property
    def total_copies(self) -> int:
        return sum(stock.total for stock in self.locations.values())

    @property
    def available_copies(self) -> int:
        return sum(stock.available for stock in self.locations.values())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "work_key": self.work_key,
            "published_year": self.published_year,
            "category": self.category,
            "cover_url": self.cover_url,
            "summary": self.summary,
            "created_at": self.created_at,
            "locations": {branch.value: stock.to_dict() for branch, stock in self.locations.items()},
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        raw_locations = data.get("locations") or {}
        return Book(
            id=data["id"],
            title=data["title"],
            author=data.get("author") or "Unknown",
            created_at=data.get("created_at") or "",
            isbn=data.get("isbn"),
            work_key=data.get("work_key"),
            published_year=data.get("published_year"),
            category=data.get("category"),
            cover_url=data.get("cover_url"),
            summary=data.get("summary"),
            locations={Branch.parse(name): Stock.from_dict(pair) for name, pair in raw_locations.items()},
        )
