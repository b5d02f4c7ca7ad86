import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from book import Book
from config import settings
from errors import (
    AlreadyBorrowed, AlreadyReturned, EmailTaken, InvalidInput, InvalidLocation, InvalidState,
    InvalidStock, LibraryError, MetadataNotFound, NoStock, NotFound, StorageError, UpstreamUnavailable,
)
from http_client import cleanup_http_client
from issue import Issue
from services import Services, get_services
from user import User

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        # Close pooled connections to Open Library on shutdown
        cleanup_http_client()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Errors ---
# Looked up along the exception's MRO, so subclasses can override their parent's status.
ERROR_STATUS: Dict[type, int] = {
    NotFound: 404,
    MetadataNotFound: 404,
    InvalidInput: 400,
    InvalidStock: 400,
    InvalidLocation: 400,
    EmailTaken: 409,
    NoStock: 409,
    AlreadyBorrowed: 409,
    AlreadyReturned: 409,
    InvalidState: 409,
    UpstreamUnavailable: 502,
    StorageError: 500,
}


def status_for(exc: LibraryError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = status_for(exc)
    log = logger.warning if status >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {status} {exc.kind}: {exc.message}")
    return JSONResponse(status_code=status, content=exc.to_dict())


# --- Identity ---
# The client keeps the user record it got from /auth/login and sends its id back.
# The role is trusted as stored; this is not authentication.
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def require_admin(user_id: Optional[str] = Security(user_id_header),
                  services: Services = Depends(get_services)) -> User:
    """Dependency for catalog mutations."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Send your user id in the X-User-Id header.")
    try:
        user = services.accounts.find_user(user_id)
    except NotFound:
        raise HTTPException(status_code=401, detail="Unknown user.")
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required.")
    return user


# --- Models ---
class StockModel(BaseModel):
    total: int
    available: int


class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str | None = None
    work_key: str | None = None
    published_year: int | None = None
    category: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    created_at: str
    locations: Dict[str, StockModel]
    total_copies: int
    available_copies: int


class SearchResultModel(BaseModel):
    title: str
    author: str
    published_year: int | None = None
    isbn: str | None = None
    work_key: str | None = None
    cover_url: str | None = None


class ImportBookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    isbn: str | None = Field(default=None, description="Preferred identity for metadata lookup")
    work_key: str | None = Field(default=None, alias="workKey", description="Open Library work key, e.g. /works/OL45804W")
    copies: int = Field(description="Copies to add; must be greater than 0")
    branch: str
    category: str | None = None


class StockEditRequest(BaseModel):
    locations: Dict[str, StockModel]


class IssueModel(BaseModel):
    id: str
    user_id: str
    book_id: str
    location: str
    issued_at: str
    due_date: str
    returned_at: str | None = None
    status: str
    overdue: bool


class IssueRequest(BaseModel):
    # Accepts user_id or userId, and book_id or bookId
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    book_id: str = Field(alias="bookId")
    location: str


class UserModel(BaseModel):
    id: str
    name: str
    email: str
    role: str
    created_at: str


class SignupRequest(BaseModel):
    name: str
    email: str
    role: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None


class StatsModel(BaseModel):
    total_titles: int
    total_copies: int
    available_copies: int
    active_issues: int
    branches: Dict[str, StockModel]


def _book_model(book: Book) -> BookModel:
    return BookModel(**book.to_dict(), total_copies=book.total_copies, available_copies=book.available_copies)


def _issue_model(issue: Issue) -> IssueModel:
    return IssueModel(**issue.to_dict(), overdue=issue.is_overdue())


def _user_model(user: User) -> UserModel:
    return UserModel(**user.to_dict())


# --- Health ---
@app.get("/health")
def health(services: Services = Depends(get_services)):
    """Lightweight liveness check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_books": len(services.store.books),
    }


@app.get("/stats", response_model=StatsModel)
def get_stats(services: Services = Depends(get_services)):
    """Catalog-wide and per-branch stock totals."""
    return StatsModel(**services.library.get_statistics())


# --- Books ---
@app.get("/books", response_model=None)
def get_books(
    q: Optional[str] = Query(None, description="Search text (title or author)"),
    external: bool = Query(False, description="Search Open Library instead of the local catalog"),
    category: Optional[str] = Query(None, description="Only books with this category"),
    branch: Optional[str] = Query(None, description="Only books with copies available at this branch"),
    services: Services = Depends(get_services),
):
    """List or search the local catalog, or proxy a search to Open Library."""
    if external:
        if not q:
            raise InvalidInput("Query required for external search.")
        results = services.library.search_external(q)
        return [SearchResultModel(**r.to_dict()) for r in results]

    if q:
        books = services.library.search_books(q)
        if category or branch:
            allowed = {b.id for b in services.library.list_books(category=category, branch=branch)}
            books = [b for b in books if b.id in allowed]
    else:
        books = services.library.list_books(category=category, branch=branch)
    return [_book_model(b) for b in books]


@app.post("/books", response_model=BookModel, status_code=201)
def import_book(payload: ImportBookRequest, admin: User = Depends(require_admin),
                services: Services = Depends(get_services)):
    """Import copies of a title into a branch, merging with an existing record when one matches."""
    book = services.library.import_book(
        isbn=payload.isbn,
        work_key=payload.work_key,
        copies=payload.copies,
        branch=payload.branch,
        category=payload.category,
    )
    return _book_model(book)


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, services: Services = Depends(get_services)):
    return _book_model(services.library.find_book(book_id))


@app.patch("/books/{book_id}", response_model=BookModel)
def edit_stock(book_id: str, payload: StockEditRequest, admin: User = Depends(require_admin),
               services: Services = Depends(get_services)):
    """Overwrite the total/available pair of one or more branches."""
    locations = {name: stock.model_dump() for name, stock in payload.locations.items()}
    return _book_model(services.library.edit_stock(book_id, locations))


@app.delete("/books/{book_id}")
def delete_book(book_id: str, admin: User = Depends(require_admin),
                services: Services = Depends(get_services)):
    services.library.remove_book(book_id)
    return {"message": "Book removed."}


# --- Issues ---
@app.get("/issues", response_model=List[IssueModel])
def get_issues(
    user_id: Optional[str] = Query(None, alias="userId"),
    status: Optional[str] = Query(None, description="ISSUED or RETURNED"),
    overdue: bool = Query(False, description="Only copies past their due date"),
    services: Services = Depends(get_services),
):
    if user_id:
        issues = services.circulation.issues_for(user_id, status=status, overdue=overdue)
    else:
        issues = services.circulation.all_issues(status=status, overdue=overdue)
    return [_issue_model(i) for i in issues]


@app.post("/issues", response_model=IssueModel, status_code=201)
def issue_book(payload: IssueRequest, services: Services = Depends(get_services)):
    issue = services.circulation.issue_book(payload.user_id, payload.book_id, payload.location)
    return _issue_model(issue)


@app.patch("/issues/{issue_id}", response_model=IssueModel)
def return_book(issue_id: str, services: Services = Depends(get_services)):
    return _issue_model(services.circulation.return_book(issue_id))


# --- Users ---
@app.get("/users", response_model=List[UserModel])
def get_users(services: Services = Depends(get_services)):
    return [_user_model(u) for u in services.accounts.list_users()]


@app.post("/users", response_model=UserModel, status_code=201)
def signup(payload: SignupRequest, services: Services = Depends(get_services)):
    return _user_model(services.accounts.signup(payload.name, payload.email, payload.role))


@app.get("/users/{user_id}", response_model=UserModel)
def get_user(user_id: str, services: Services = Depends(get_services)):
    return _user_model(services.accounts.find_user(user_id))


# --- Auth ---
@app.post("/auth/login", response_model=UserModel)
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    """Look the user up by email and hand the record back for the client to keep."""
    try:
        user = services.accounts.login(payload.email or "")
    except NotFound as e:
        raise HTTPException(status_code=401, detail=e.message)
    return _user_model(user)
