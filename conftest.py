from datetime import datetime, timedelta, timezone

import pytest

from accounts import Accounts
from circulation import Circulation
from database import Store
from errors import MetadataNotFound
from library import Library
from open_library import BookMetadata, SearchResult
from services import Services, set_services
from ui_helpers import OUTPUT_MODE_ENV

FOX_ISBN = "9780140328721"
FOX_WORK = "/works/OL45804W"


class FakeResolver:
    """In-memory stand-in for the Open Library client."""

    def __init__(self):
        self.by_isbn = {}
        self.by_work = {}
        self.results = []
        self.calls = []

    def search(self, query):
        self.calls.append(("search", query))
        return list(self.results)

    def get_by_isbn(self, isbn):
        self.calls.append(("isbn", isbn))
        if isbn not in self.by_isbn:
            raise MetadataNotFound(f"No Open Library record for ISBN {isbn}.")
        return self.by_isbn[isbn]

    def get_by_work_key(self, work_key):
        self.calls.append(("work", work_key))
        if work_key not in self.by_work:
            raise MetadataNotFound(f"No Open Library record for work {work_key}.")
        return self.by_work[work_key]


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # CLI output mode is process-wide; start every test from the default
    monkeypatch.delenv(OUTPUT_MODE_ENV, raising=False)


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path / "data")


@pytest.fixture
def resolver():
    fake = FakeResolver()
    fox = BookMetadata(title="Fantastic Mr Fox", author="Roald Dahl", published_year=1970, work_key=FOX_WORK)
    fake.by_isbn[FOX_ISBN] = fox
    fake.by_work[FOX_WORK] = fox
    fake.by_work["/works/OL27448W"] = BookMetadata(title="The Lord of the Rings", author="J.R.R. Tolkien",
                                                   published_year=1954, work_key="/works/OL27448W")
    return fake


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def library(store, resolver):
    return Library(store, resolver)


@pytest.fixture
def circulation(store, clock):
    return Circulation(store, clock=clock)


@pytest.fixture
def accounts(store):
    return Accounts(store)


@pytest.fixture
def admin(accounts):
    return accounts.signup("Asha Librarian", "asha@library.test", "ADMIN")


@pytest.fixture
def student(accounts):
    return accounts.signup("Ravi Kumar", "ravi@student.test")


@pytest.fixture
def fox(library):
    """'Fantastic Mr Fox' with two copies at Chennai."""
    return library.import_book(isbn=FOX_ISBN, copies=2, branch="Chennai")


@pytest.fixture
def services(store, library, circulation, accounts):
    svc = Services(store=store, library=library, circulation=circulation, accounts=accounts)
    set_services(svc)
    yield svc
    set_services(None)


@pytest.fixture
def search_results():
    return [
        SearchResult(title="Fantastic Mr Fox", author="Roald Dahl", published_year=1970,
                     isbn=FOX_ISBN, work_key=FOX_WORK,
                     cover_url="https://covers.openlibrary.org/b/id/6498519-L.jpg"),
    ]
