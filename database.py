"""JSON-file entity store.

Users, books and issues each live in their own JSON array file inside a data
directory. The collections are loaded once, mutated in memory and the whole
file is rewritten after every mutation (or once per transaction). Writes go
through a temporary sibling file and ``os.replace`` so a crash never leaves a
half-written collection behind.

A single re-entrant lock guards all three collections. ``Store.transaction()``
holds it for a whole read-check-write sequence and restores the in-memory
state if the sequence fails part way.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from book import Book
from errors import InvalidState, NotFound, StorageError
from issue import Issue
from user import Role, User

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"
BOOKS_FILE = "books.json"
ISSUES_FILE = "issues.json"

T = TypeVar("T", Book, User, Issue)


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _load_json(path: Path) -> List[dict]:
    """Load a JSON array from ``path``. A missing file is an empty collection."""
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read {path}: {e}")
        raise StorageError(f"Could not read {path.name}: {e}") from e
    if not isinstance(data, list):
        raise StorageError(f"{path.name} must contain a JSON array.")
    return data


def _save_json(path: Path, data: List[dict]) -> None:
    """Write data as JSON to the given file atomically."""
    tmp_path = path.with_suffix(".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Could not write {path}: {e}")
        raise StorageError(f"Could not write {path.name}: {e}") from e


class Collection(Generic[T]):
    """One entity kind, kept as a list of JSON-ready records."""

    def __init__(self, store: "Store", name: str, path: Path, model: Type[T]) -> None:
        self._store = store
        self.name = name
        self.path = path
        self._model = model
        self._records: List[dict] = _load_json(path)

    def __len__(self) -> int:
        with self._store.lock:
            return len(self._records)

    # ------------------------- Reads ------------------------- #
    # Every read builds fresh entities, so callers only change stored state via update().
    def find_all(self) -> List[T]:
        with self._store.lock:
            return [self._model.from_dict(r) for r in self._records]

    def find_by_id(self, record_id: str) -> Optional[T]:
        with self._store.lock:
            index = self._index_of(record_id)
            return self._model.from_dict(self._records[index]) if index is not None else None

    def find_by_field(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.find_all() if predicate(item)]

    def find_first(self, predicate: Callable[[T], bool]) -> Optional[T]:
        for item in self.find_all():
            if predicate(item):
                return item
        return None

    # ------------------------- Writes ------------------------- #
    def create(self, record: T) -> T:
        with self._store.lock:
            if self._index_of(record.id) is not None:
                raise InvalidState(f"{self.name} record {record.id} already exists.")
            self._records.append(record.to_dict())
            self._store._changed(self)
        return record

    def update(self, record: T) -> T:
        with self._store.lock:
            index = self._index_of(record.id)
            if index is None:
                raise NotFound(f"{self.name} record {record.id} not found.")
            self._records[index] = record.to_dict()
            self._store._changed(self)
        return record

    def delete(self, record_id: str) -> None:
        with self._store.lock:
            index = self._index_of(record_id)
            if index is None:
                raise NotFound(f"{self.name} record {record_id} not found.")
            del self._records[index]
            self._store._changed(self)

    def flush(self) -> None:
        _save_json(self.path, self._records)

    def _index_of(self, record_id: str) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.get("id") == record_id:
                return index
        return None


class Store:
    """Owns the users, books and issues collections of one data directory."""

    def __init__(self, data_dir: str | os.PathLike) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.lock = threading.RLock()
        self._depth = 0
        self._dirty: Dict[str, Collection] = {}

        self.users: Collection[User] = Collection(self, "user", self.data_dir / USERS_FILE, User)
        self.books: Collection[Book] = Collection(self, "book", self.data_dir / BOOKS_FILE, Book)
        self.issues: Collection[Issue] = Collection(self, "issue", self.data_dir / ISSUES_FILE, Issue)
        logger.info(
            f"Store loaded from {self.data_dir}: {len(self.users)} users, "
            f"{len(self.books)} books, {len(self.issues)} issues"
        )

    @property
    def collections(self) -> List[Collection]:
        return [self.users, self.books, self.issues]

    @contextmanager
    def transaction(self) -> Iterator["Store"]:
        """Run a read-modify-write sequence under the store lock.

        Changes are flushed once when the outermost block exits cleanly. If it
        raises, every collection goes back to its state at entry and nothing
        is written.
        """
        with self.lock:
            outermost = self._depth == 0
            snapshot = {c.name: copy.deepcopy(c._records) for c in self.collections} if outermost else None
            self._depth += 1
            try:
                yield self
                if outermost:
                    for collection in list(self._dirty.values()):
                        collection.flush()
            except BaseException:
                if outermost:
                    for collection in self.collections:
                        collection._records = snapshot[collection.name]
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._dirty.clear()

    def _changed(self, collection: Collection) -> None:
        if self._depth:
            self._dirty[collection.name] = collection
        else:
            collection.flush()


def seed_default_admin(store: Store, name: str, email: str) -> Optional[User]:
    """Create the first ADMIN account when the user collection is empty."""
    with store.transaction():
        if len(store.users):
            return None
        admin = User(id=new_id(), name=name, email=email.strip().lower(), role=Role.ADMIN,
                     created_at=utc_now().isoformat())
        store.users.create(admin)
    logger.info(f"Seeded default admin account {admin.email}")
    return admin
