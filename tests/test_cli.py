import json
from unittest.mock import MagicMock

from typer.testing import CliRunner

import main
from conftest import FOX_ISBN
from main import app

runner = CliRunner()


def test_list_no_books(services):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_import_book(services):
    result = runner.invoke(app, ["import", "--isbn", FOX_ISBN, "--copies", "2", "--branch", "Chennai"])

    assert result.exit_code == 0
    assert "Imported: Fantastic Mr Fox by Roald Dahl" in result.stdout
    assert len(services.library.list_books()) == 1


def test_import_requires_positive_copies(services):
    result = runner.invoke(app, ["import", "--isbn", FOX_ISBN, "--copies", "0", "--branch", "Chennai"])

    assert result.exit_code == 1
    assert "Error (InvalidInput): Copies must be greater than 0." in result.stdout


def test_list_after_import(services, fox):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert f"{fox.id} - Fantastic Mr Fox by Roald Dahl [2/2]" in result.stdout


def test_list_json_output(services, fox):
    result = runner.invoke(app, ["--output", "json", "list", "--branch", "Chennai"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload[0]["id"] == fox.id
    assert payload[0]["locations"]["Chennai"] == {"total": 2, "available": 2}


def test_find_book(services, fox):
    result = runner.invoke(app, ["find", fox.id])

    assert result.exit_code == 0
    assert "Book Found" in result.stdout
    assert "Title: Fantastic Mr Fox" in result.stdout
    assert "Chennai: 2/2" in result.stdout


def test_find_book_not_found(services):
    result = runner.invoke(app, ["find", "missing"])
    assert result.exit_code == 1
    assert "Error (NotFound): Book missing not found." in result.stdout


def test_search_catalog_and_external(services, fox, resolver, search_results):
    local = runner.invoke(app, ["search", "dahl"])
    assert fox.id in local.stdout

    resolver.results = search_results
    external = runner.invoke(app, ["search", "fox", "--external"])
    assert external.exit_code == 0
    assert f"Fantastic Mr Fox by Roald Dahl (1970) - isbn {FOX_ISBN}" in external.stdout


def test_stock_command(services, fox):
    result = runner.invoke(app, ["stock", fox.id, "delhi", "3", "1"])

    assert result.exit_code == 0
    assert "Fantastic Mr Fox at Delhi: 1/3" in result.stdout


def test_stock_command_rejects_bad_pair(services, fox):
    result = runner.invoke(app, ["stock", fox.id, "Delhi", "1", "3"])
    assert result.exit_code == 1
    assert "Error (InvalidStock)" in result.stdout


def test_issue_return_flow(services, student, fox):
    issued = runner.invoke(app, ["--output", "json", "issue", student.id, fox.id, "Chennai"])
    assert issued.exit_code == 0
    issue_id = json.loads(issued.stdout)["id"]

    listed = runner.invoke(app, ["issues", "--user", student.id, "--status", "ISSUED"])
    assert issue_id in listed.stdout

    returned = runner.invoke(app, ["return", issue_id])
    assert returned.exit_code == 0
    assert f"Returned {issue_id} to Chennai" in returned.stdout

    again = runner.invoke(app, ["return", issue_id])
    assert again.exit_code == 1
    assert "Error (AlreadyReturned)" in again.stdout


def test_remove_book(services, fox):
    result = runner.invoke(app, ["remove", fox.id])
    assert result.exit_code == 0
    assert f"Book {fox.id} has been removed." in result.stdout
    assert services.library.list_books() == []


def test_signup_and_users(services):
    result = runner.invoke(app, ["signup", "Neha Gupta", "neha@student.test", "--role", "ADMIN"])
    assert result.exit_code == 0
    assert "Registered Neha Gupta <neha@student.test> as ADMIN" in result.stdout

    users = runner.invoke(app, ["users"])
    assert "Neha Gupta <neha@student.test> (ADMIN)" in users.stdout

    taken = runner.invoke(app, ["signup", "Neha Again", "NEHA@student.test"])
    assert taken.exit_code == 1
    assert "Error (EmailTaken)" in taken.stdout


def test_stats(services, fox):
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "Total Titles: 1" in result.stdout
    assert "Total Copies: 2" in result.stdout
    assert "Chennai: 2/2" in result.stdout


def test_serve_launches_uvicorn(monkeypatch):
    run_mock = MagicMock()
    open_mock = MagicMock(return_value=True)
    monkeypatch.setattr(main.subprocess, "run", run_mock)
    monkeypatch.setattr(main.webbrowser, "open", open_mock)

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "9001"])

    assert result.exit_code == 0
    args = run_mock.call_args[0][0]
    assert args[1:4] == ["-m", "uvicorn", "api:app"]
    assert args[args.index("--port") + 1] == "9001"
    open_mock.assert_called_once_with("http://0.0.0.0:9001/docs")


def test_serve_no_browser(monkeypatch):
    monkeypatch.setattr(main.subprocess, "run", MagicMock())
    open_mock = MagicMock()
    monkeypatch.setattr(main.webbrowser, "open", open_mock)

    result = runner.invoke(app, ["serve", "--no-browser"])

    assert result.exit_code == 0
    open_mock.assert_not_called()
