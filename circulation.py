"""Issue and return of book copies.

An issue moves one copy of a book out of a branch's available stock and
records who has it and when it is due back. A return puts the copy back and
closes the issue. ISSUED -> RETURNED is the only transition.

Each operation runs inside a single store transaction, so the stock check,
the stock change and the issue record change happen as one step with respect
to other requests in this process.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from book import Branch
from database import Store, new_id, utc_now
from errors import AlreadyBorrowed, AlreadyReturned, InvalidLocation, InvalidState, NoStock, NotFound
from issue import Issue, IssueStatus

logger = logging.getLogger(__name__)

LOAN_PERIOD = timedelta(days=14)


class Circulation:
    """The circulation desk: issues, returns and loan queries."""

    def __init__(self, store: Store, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self._clock = clock or utc_now

    def issue_book(self, user_id: str, book_id: str, branch: str) -> Issue:
        with self.store.transaction():
            user = self.store.users.find_by_id(user_id)
            if not user:
                raise NotFound(f"User {user_id} not found.")
            book = self.store.books.find_by_id(book_id)
            if not book:
                raise NotFound(f"Book {book_id} not found.")

            location = Branch.parse(branch)
            if location not in book.locations:
                raise InvalidLocation(f"'{book.title}' is not stocked at {location.value}.")

            stock = book.stock_at(location)
            if stock.available <= 0:
                raise NoStock(f"No copies of '{book.title}' available at {location.value}.")

            # One active copy of a title per user, whichever branch it came from
            if self.store.issues.find_first(
                lambda i: i.user_id == user_id and i.book_id == book_id and i.is_active
            ):
                raise AlreadyBorrowed(f"{user.name} already has '{book.title}' on loan.")

            book.locations[location] = stock.adjusted(available=-1)
            self.store.books.update(book)

            now = self._clock()
            issue = Issue(
                id=new_id(),
                user_id=user_id,
                book_id=book_id,
                location=location,
                issued_at=now,
                due_date=now + LOAN_PERIOD,
            )
            self.store.issues.create(issue)

        logger.info(f"Issued '{book.title}' ({book_id}) to {user_id} from {location.value}, issue {issue.id}")
        return issue

    def return_book(self, issue_id: str) -> Issue:
        with self.store.transaction():
            issue = self.find_issue(issue_id)
            if not issue.is_active:
                raise AlreadyReturned(f"Issue {issue_id} was already returned.")

            book = self.store.books.find_by_id(issue.book_id)
            if not book:
                logger.error(f"Issue {issue_id} references missing book {issue.book_id}")
                raise NotFound(f"Book {issue.book_id} for issue {issue_id} not found.")
            if issue.location not in book.locations:
                raise InvalidLocation(f"Issue {issue_id} names a branch the book is not stocked at.")

            stock = book.stock_at(issue.location)
            returned = stock.adjusted(available=1)
            if returned.available > returned.total:
                logger.error(f"Ledger corruption: returning issue {issue_id} would make "
                             f"{issue.location.value} available {returned.available} > total {returned.total}")
                raise InvalidState(f"Invalid book state: {issue.location.value} already has all copies in stock.")

            book.locations[issue.location] = returned
            self.store.books.update(book)

            issue.mark_returned(self._clock())
            self.store.issues.update(issue)

        logger.info(f"Returned issue {issue_id} ('{book.title}') to {issue.location.value}")
        return issue

    # ------------------------- Queries ------------------------- #
    def find_issue(self, issue_id: str) -> Issue:
        issue = self.store.issues.find_by_id(issue_id)
        if not issue:
            raise NotFound(f"Issue {issue_id} not found.")
        return issue

    def issues_for(self, user_id: str, *, status: Optional[str] = None, overdue: bool = False) -> List[Issue]:
        """A user's loans: current ones with ``status="ISSUED"``, full history without."""
        if not self.store.users.find_by_id(user_id):
            raise NotFound(f"User {user_id} not found.")
        return self._filter(self.store.issues.find_by_field(lambda i: i.user_id == user_id), status, overdue)

    def all_issues(self, *, status: Optional[str] = None, overdue: bool = False) -> List[Issue]:
        return self._filter(self.store.issues.find_all(), status, overdue)

    def _filter(self, issues: List[Issue], status: Optional[str], overdue: bool) -> List[Issue]:
        if status:
            wanted = IssueStatus.parse(status)
            issues = [i for i in issues if i.status is wanted]
        if overdue:
            now = self._clock()
            issues = [i for i in issues if i.is_overdue(now)]
        return issues
