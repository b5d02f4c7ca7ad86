import json
import logging
import subprocess
import sys
import webbrowser
from functools import wraps
from typing import Optional

import typer
from rich.console import Console

from book import Branch
from config import settings
from errors import LibraryError
from services import get_services
from ui_helpers import (
    get_output_mode, print_book, print_books, print_issues, print_search_results,
    print_stats_result, print_users, set_output_mode,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(help=f"{settings.app_name} CLI")


def handle_errors(func):
    """Render library errors as one line and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print(f"Error ({e.kind}): {e.message}")
            raise typer.Exit(code=1)
    return wrapper


def _echo_record(record: dict, plain: str) -> None:
    if get_output_mode() == "json":
        print(json.dumps(record, ensure_ascii=False))
    else:
        print(plain)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global options for the CLI (e.g. output mode)."""
    if output:
        set_output_mode(output)


# --- Catalog ---
@app.command("list")
@handle_errors
def cli_list(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only books in this category"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Only books available at this branch"),
):
    """List the catalog."""
    print_books(get_services().library.list_books(category=category, branch=branch))


@app.command("find")
@handle_errors
def cli_find(book_id: str):
    """Show one book with its stock at every branch."""
    print_book(get_services().library.find_book(book_id))


@app.command("search")
@handle_errors
def cli_search(
    query: str = typer.Argument(..., help="Title or author text"),
    external: bool = typer.Option(False, "--external", "-e", help="Search Open Library instead of the catalog"),
):
    """Search the catalog, or Open Library with --external."""
    services = get_services()
    if external:
        print_search_results(services.library.search_external(query))
    else:
        print_books(services.library.search_books(query))


@app.command("import")
@handle_errors
def cli_import(
    copies: int = typer.Option(..., "--copies", "-n", help="Copies to add"),
    branch: str = typer.Option(..., "--branch", "-b", help="Branch receiving the copies"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN to look up"),
    work_key: Optional[str] = typer.Option(None, "--work-key", help="Open Library work key"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
):
    """Import copies of a title from Open Library into a branch."""
    book = get_services().library.import_book(
        isbn=isbn, work_key=work_key, copies=copies, branch=branch, category=category,
    )
    _echo_record(book.to_dict(), f"Imported: {book.title} by {book.author} ({book.id})")


@app.command("stock")
@handle_errors
def cli_stock(book_id: str, branch: str, total: int, available: int):
    """Set the total and available copies of a book at one branch."""
    book = get_services().library.edit_stock(book_id, {branch: {"total": total, "available": available}})
    at = Branch.parse(branch)
    stock = book.stock_at(at)
    _echo_record(book.to_dict(), f"{book.title} at {at.value}: {stock.available}/{stock.total}")


@app.command("remove")
@handle_errors
def cli_remove(book_id: str):
    """Remove a book from the catalog."""
    get_services().library.remove_book(book_id)
    print(f"Book {book_id} has been removed.")


# --- Circulation ---
@app.command("issue")
@handle_errors
def cli_issue(user_id: str, book_id: str, branch: str):
    """Issue one copy of a book from a branch to a user."""
    issue = get_services().circulation.issue_book(user_id, book_id, branch)
    _echo_record(issue.to_dict(), f"Issued {issue.id}, due {issue.due_date.date().isoformat()}")


@app.command("return")
@handle_errors
def cli_return(issue_id: str):
    """Return an issued copy to its branch."""
    issue = get_services().circulation.return_book(issue_id)
    _echo_record(issue.to_dict(), f"Returned {issue.id} to {issue.location.value}")


@app.command("issues")
@handle_errors
def cli_issues(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's issues"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="ISSUED or RETURNED"),
    overdue: bool = typer.Option(False, "--overdue", help="Only overdue issues"),
):
    """List issues, optionally for one user."""
    circulation = get_services().circulation
    if user:
        issues = circulation.issues_for(user, status=status, overdue=overdue)
    else:
        issues = circulation.all_issues(status=status, overdue=overdue)
    print_issues(issues)


# --- Users ---
@app.command("users")
@handle_errors
def cli_users():
    """List registered users."""
    print_users(get_services().accounts.list_users())


@app.command("signup")
@handle_errors
def cli_signup(name: str, email: str,
               role: Optional[str] = typer.Option(None, "--role", "-r", help="ADMIN or STUDENT")):
    """Register a user."""
    user = get_services().accounts.signup(name, email, role)
    _echo_record(user.to_dict(), f"Registered {user.name} <{user.email}> as {user.role.value} ({user.id})")


@app.command("stats")
@handle_errors
def cli_stats():
    """Show library statistics."""
    print_stats_result(get_services().library.get_statistics())


# --- Web ---
@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open a browser window"),
):
    """Start the HTTP API with Uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    console.print(f"[green]Starting API on [link={url}]{url}[/link][/]")

    if not no_browser and not webbrowser.open(url):
        console.print("[yellow]Could not open a web browser automatically.[/]")

    args = [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)]
    if settings.debug:
        args.append("--reload")
    try:
        subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
