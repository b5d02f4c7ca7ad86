import logging
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Protocol, Tuple

from book import Book, Branch, Stock, empty_locations
from database import Store, new_id, utc_now
from errors import InvalidInput, InvalidStock, MetadataNotFound, NotFound
from open_library import BookMetadata, SearchResult
from validators import ISBNValidator, WorkKeyValidator

logger = logging.getLogger(__name__)


class MetadataResolver(Protocol):
    def search(self, query: str) -> List[SearchResult]: ...
    def get_by_isbn(self, isbn: str) -> BookMetadata: ...
    def get_by_work_key(self, work_key: str) -> BookMetadata: ...


class ImportCandidate(NamedTuple):
    isbn: Optional[str]
    work_key: Optional[str]
    title: str


def _same_isbn(book: Book, candidate: ImportCandidate) -> bool:
    return candidate.isbn is not None and book.isbn == candidate.isbn


def _same_work(book: Book, candidate: ImportCandidate) -> bool:
    return candidate.work_key is not None and book.work_key == candidate.work_key


def _same_title(book: Book, candidate: ImportCandidate) -> bool:
    return book.title.lower() == candidate.title.strip().lower()


# Duplicate detection policy, tried in order; the first strategy with a hit wins.
# Title matching can merge distinct works that share a title. That risk is accepted.
DUPLICATE_STRATEGIES: Tuple[Tuple[str, Callable[[Book, ImportCandidate], bool]], ...] = (
    ("isbn", _same_isbn),
    ("work_key", _same_work),
    ("title", _same_title),
)


class Library:
    """Manages the book catalog and the per-branch stock ledger."""

    def __init__(self, store: Store, resolver: MetadataResolver) -> None:
        self.store = store
        self.resolver = resolver

    # ------------------------- Queries ------------------------- #
    def list_books(self, *, category: Optional[str] = None, branch: Optional[str] = None) -> List[Book]:
        books = self.store.books.find_all()
        if category:
            wanted = category.strip().lower()
            books = [b for b in books if (b.category or "").lower() == wanted]
        if branch:
            at = Branch.parse(branch)
            books = [b for b in books if b.stock_at(at).available > 0]
        return books

    def find_book(self, book_id: str) -> Book:
        book = self.store.books.find_by_id(book_id)
        if not book:
            raise NotFound(f"Book {book_id} not found.")
        return book

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive substring match on title or author."""
        term = (query or "").strip().lower()
        if not term:
            return self.list_books()
        return self.store.books.find_by_field(
            lambda b: term in b.title.lower() or term in b.author.lower()
        )

    def search_external(self, query: str) -> List[SearchResult]:
        return self.resolver.search(query)

    # ------------------------- Stock edits ------------------------- #
    def edit_stock(self, book_id: str, new_locations: Mapping[Any, Any]) -> Book:
        """Overwrite the stock pair of each given branch.

        Every pair is checked before anything is written, so a rejected edit
        leaves the book exactly as it was. Branches not mentioned keep their
        current pair.
        """
        if not new_locations:
            raise InvalidInput("Provide stock for at least one branch.")

        validated: Dict[Branch, Stock] = {}
        for name, pair in new_locations.items():
            branch = Branch.parse(name)
            stock = self._coerce_stock(branch, pair)
            if stock.total < 0 or stock.available < 0:
                raise InvalidStock(f"{branch.value}: stock counts cannot be negative.", branch=branch.value)
            if stock.available > stock.total:
                raise InvalidStock(
                    f"{branch.value}: available ({stock.available}) cannot exceed total ({stock.total}).",
                    branch=branch.value,
                )
            validated[branch] = stock

        with self.store.transaction():
            book = self.find_book(book_id)
            book.locations.update(validated)
            self.store.books.update(book)
        logger.info(f"Stock edited for book {book.id}: " +
                    ", ".join(f"{b.value}={s.available}/{s.total}" for b, s in validated.items()))
        return book

    @staticmethod
    def _coerce_stock(branch: Branch, pair: Any) -> Stock:
        if isinstance(pair, Stock):
            return pair
        try:
            total, available = pair["total"], pair["available"]
        except (KeyError, TypeError):
            raise InvalidInput(f"{branch.value}: provide both 'total' and 'available'.") from None
        if isinstance(total, bool) or isinstance(available, bool) \
                or not isinstance(total, int) or not isinstance(available, int):
            raise InvalidInput(f"{branch.value}: 'total' and 'available' must be integers.")
        return Stock(total=total, available=available)

    # ------------------------- Import ------------------------- #
    def import_book(self, *, copies: int, branch: str, isbn: Optional[str] = None,
                    work_key: Optional[str] = None, category: Optional[str] = None) -> Book:
        """Add ``copies`` of a title to ``branch``, merging into an existing record if one matches."""
        if isinstance(copies, bool) or not isinstance(copies, int) or copies <= 0:
            raise InvalidInput("Copies must be greater than 0.")
        target = Branch.parse(branch)

        norm_isbn = ISBNValidator.normalize_isbn(isbn)
        if norm_isbn is not None and not ISBNValidator.is_well_formed(norm_isbn):
            raise InvalidInput(f"Invalid ISBN format: {isbn!r}.")
        norm_work_key = WorkKeyValidator.normalize_work_key(work_key)
        if work_key and work_key.strip() and norm_work_key is None:
            raise InvalidInput(f"Invalid work key: {work_key!r}.")
        if norm_isbn is None and norm_work_key is None:
            raise InvalidInput("Provide an ISBN or a work key.")

        # Slow network call; done before the store lock is taken
        metadata = self._resolve_metadata(norm_isbn, norm_work_key)
        category = category.strip() if category and category.strip() else None
        if category is None and metadata.subjects:
            category = metadata.subjects[0]
        # Only a caller-supplied work key takes part in duplicate detection
        candidate = ImportCandidate(isbn=norm_isbn, work_key=norm_work_key, title=metadata.title)

        with self.store.transaction():
            existing, matched_by = self._find_duplicate(candidate)
            if existing:
                existing.locations[target] = existing.stock_at(target).adjusted(total=copies, available=copies)
                if not existing.work_key and norm_work_key:
                    existing.work_key = norm_work_key
                self.store.books.update(existing)
                logger.info(f"Merged {copies} copies of '{existing.title}' into {existing.id} "
                            f"at {target.value} (matched by {matched_by})")
                return existing

            locations = empty_locations()
            locations[target] = Stock(total=copies, available=copies)
            book = Book(
                id=new_id(),
                title=metadata.title,
                author=metadata.author,
                isbn=norm_isbn,
                work_key=norm_work_key or metadata.work_key,
                published_year=metadata.published_year,
                category=category,
                cover_url=metadata.cover_url,
                summary=metadata.summary,
                created_at=utc_now().isoformat(),
                locations=locations,
            )
            self.store.books.create(book)
        logger.info(f"Imported '{book.title}' as {book.id} with {copies} copies at {target.value}")
        return book

    def _resolve_metadata(self, isbn: Optional[str], work_key: Optional[str]) -> BookMetadata:
        metadata = None
        if isbn:
            try:
                metadata = self.resolver.get_by_isbn(isbn)
            except MetadataNotFound:
                if not work_key:
                    raise
                logger.info(f"ISBN {isbn} unknown upstream, falling back to work {work_key}")
        if metadata is None and work_key:
            metadata = self.resolver.get_by_work_key(work_key)
        if metadata is None or not (metadata.title or "").strip():
            raise MetadataNotFound("Book metadata not found.")
        return metadata

    def _find_duplicate(self, candidate: ImportCandidate) -> Tuple[Optional[Book], Optional[str]]:
        books = self.store.books.find_all()
        for name, matches in DUPLICATE_STRATEGIES:
            for book in books:
                if matches(book, candidate):
                    return book, name
        return None, None

    # ------------------------- Removal ------------------------- #
    def remove_book(self, book_id: str) -> None:
        with self.store.transaction():
            book = self.find_book(book_id)
            active = self.store.issues.find_by_field(lambda i: i.book_id == book_id and i.is_active)
            self.store.books.delete(book_id)
        if active:
            logger.warning(f"Removed book {book_id} ('{book.title}') with {len(active)} copies still on loan")
        else:
            logger.info(f"Removed book {book_id} ('{book.title}')")

    # ------------------------- Statistics ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        with self.store.lock:
            books = self.store.books.find_all()
            active_issues = len(self.store.issues.find_by_field(lambda i: i.is_active))
        branches = {}
        for branch in Branch:
            branches[branch.value] = {
                "total": sum(b.stock_at(branch).total for b in books),
                "available": sum(b.stock_at(branch).available for b in books),
            }
        return {
            "total_titles": len(books),
            "total_copies": sum(b.total_copies for b in books),
            "available_copies": sum(b.available_copies for b in books),
            "active_issues": active_issues,
            "branches": branches,
        }
