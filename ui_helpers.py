import os
import json
from typing import Any, Dict, List

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from book import Book, Branch
from issue import Issue
from open_library import SearchResult
from user import User

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRARY_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _dump(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def _stock_cell(book: Book, branch: Branch) -> str:
    stock = book.stock_at(branch)
    return f"{stock.available}/{stock.total}"


def print_books(books: List[Book]) -> None:
    """Print the catalog in the current output mode.
    - plain: 'id - Title by Author [available/total]' lines, or 'No books in library.'
    - json: array of book records
    - rich: table with one column per branch
    """
    mode = get_output_mode()

    if mode == "json":
        _dump([b.to_dict() for b in books])
        return
    if not books:
        print("No books in library.")
        return

    if mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        for branch in Branch:
            table.add_column(branch.value, justify="right")
        for b in books:
            table.add_row(b.id, b.title, b.author, *(_stock_cell(b, br) for br in Branch))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} [{b.available_copies}/{b.total_copies}]")


def print_book(book: Book) -> None:
    mode = get_output_mode()

    if mode == "json":
        _dump(book.to_dict())
        return

    lines = [
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"ISBN: {book.isbn or '-'}",
        f"Work: {book.work_key or '-'}",
        f"Year: {book.published_year or '-'}",
        f"Category: {book.category or '-'}",
    ]
    stock_lines = [f"  {br.value}: {_stock_cell(book, br)}" for br in Branch]
    if mode == "rich":
        content = "\n".join(lines + ["Stock (available/total):"] + stock_lines)
        _console.print(Panel.fit(content, title=f"📖 {book.id}", border_style="green"))
    else:
        print("Book Found")
        for line in lines:
            print(line)
        print("Stock (available/total):")
        for line in stock_lines:
            print(line)


def print_search_results(results: List[SearchResult]) -> None:
    mode = get_output_mode()

    if mode == "json":
        _dump([r.to_dict() for r in results])
        return
    if not results:
        print("No matching books found.")
        return

    if mode == "rich":
        table = Table(title="🔎 Open Library", header_style="bold cyan")
        table.add_column("Title")
        table.add_column("Author")
        table.add_column("Year", justify="right")
        table.add_column("ISBN", style="magenta")
        table.add_column("Work key", style="magenta")
        for r in results:
            table.add_row(r.title, r.author, str(r.published_year or ""), r.isbn or "", r.work_key or "")
        _console.print(table)
    else:
        for r in results:
            year = f" ({r.published_year})" if r.published_year else ""
            print(f"{r.title} by {r.author}{year} - isbn {r.isbn or '-'}, work {r.work_key or '-'}")


def print_issues(issues: List[Issue]) -> None:
    mode = get_output_mode()

    if mode == "json":
        _dump([dict(i.to_dict(), overdue=i.is_overdue()) for i in issues])
        return
    if not issues:
        print("No issues found.")
        return

    if mode == "rich":
        table = Table(title="📋 Issues", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("User")
        table.add_column("Book")
        table.add_column("Branch")
        table.add_column("Due")
        table.add_column("Status")
        for i in issues:
            status = "[red]OVERDUE[/]" if i.is_overdue() else i.status.value
            table.add_row(i.id, i.user_id, i.book_id, i.location.value, i.due_date.date().isoformat(), status)
        _console.print(table)
    else:
        for i in issues:
            flag = " OVERDUE" if i.is_overdue() else ""
            print(f"{i.id} - book {i.book_id} to {i.user_id} at {i.location.value}, "
                  f"due {i.due_date.date().isoformat()} [{i.status.value}{flag}]")


def print_users(users: List[User]) -> None:
    mode = get_output_mode()

    if mode == "json":
        _dump([u.to_dict() for u in users])
        return
    if not users:
        print("No users registered.")
        return

    if mode == "rich":
        table = Table(title="👥 Users", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Role")
        for u in users:
            table.add_row(u.id, u.name, u.email, u.role.value)
        _console.print(table)
    else:
        for u in users:
            print(f"{u.id} - {u.name} <{u.email}> ({u.role.value})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one line per metric, then one per branch
    - json: the statistics object
    - rich: panel with the main metrics
    """
    mode = get_output_mode()

    if mode == "json":
        _dump(stats)
        return

    branches = stats.get("branches", {})
    metrics = [
        ("Total Titles", stats.get("total_titles", 0)),
        ("Total Copies", stats.get("total_copies", 0)),
        ("Available Copies", stats.get("available_copies", 0)),
        ("Active Issues", stats.get("active_issues", 0)),
    ]
    if mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in metrics)
        content += "\n" + "\n".join(
            f"[bold]{name}:[/] {s['available']}/{s['total']}" for name, s in branches.items()
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for label, value in metrics:
            print(f"{label}: {value}")
        for name, s in branches.items():
            print(f"{name}: {s['available']}/{s['total']}")
