from unittest.mock import patch

import pytest
from typer.testing import CliRunner

import database
from main import app

runner = CliRunner()


@pytest.fixture
def cli_db(lib, monkeypatch):
    # Point the CLI at the per-test database
    monkeypatch.setattr(database, "DATABASE_FILE", lib.db_file)
    return lib


@pytest.fixture
def admin_token(cli_db):
    return cli_db.tokens.issue(1, 3)


def test_add_book(cli_db):
    result = runner.invoke(app, ["add-book", "Dune", "Frank Herbert", "--stock", "2"])
    assert result.exit_code == 0
    assert "Added book 1: Dune by Frank Herbert (stock 2)" in result.stdout
    assert cli_db.inventory.get_book(1).stock == 2


def test_restock(cli_db, add_book):
    add_book(stock=0)
    result = runner.invoke(app, ["restock", "1", "4"])
    assert result.exit_code == 0
    assert "Book 1 stock set to 4 (available)" in result.stdout


def test_issue_token(cli_db):
    result = runner.invoke(app, ["issue-token", "7", "--level", "2"])
    assert result.exit_code == 0

    principal = cli_db.tokens.resolve(result.stdout.strip())
    assert (principal.id, principal.privilege_level) == (7, 2)


def test_lend_and_return(cli_db, add_book, admin_token):
    add_book(stock=1)

    lent = runner.invoke(app, ["lend", "10", "1", "--due", "2099-01-31", "--token", admin_token])
    assert lent.exit_code == 0
    assert "Book lent successfully. Lending 1, due 2099-01-31" in lent.stdout
    assert cli_db.inventory.get_book(1).stock == 0

    returned = runner.invoke(app, ["return", "1", "--date", "2099-01-10", "--token", admin_token])
    assert returned.exit_code == 0
    assert "Lending 1 returned on 2099-01-10" in returned.stdout
    assert cli_db.inventory.get_book(1).stock == 1


def test_token_from_environment(cli_db, add_book, admin_token):
    add_book(stock=1)
    result = runner.invoke(app, ["lend", "10", "1"], env={"LIBRARY_TOKEN": admin_token})
    assert result.exit_code == 0
    assert "Book lent successfully." in result.stdout


def test_lend_unavailable_book_fails(cli_db, add_book, admin_token):
    add_book(stock=0)
    result = runner.invoke(app, ["lend", "10", "1", "--token", admin_token])
    assert result.exit_code == 1
    assert "Error: Book is not available for lending or out of stock." in result.stdout


def test_lend_with_member_token_fails(cli_db, add_book):
    add_book(stock=1)
    token = cli_db.tokens.issue(5, 1)
    result = runner.invoke(app, ["lend", "10", "1", "--token", token])
    assert result.exit_code == 1
    assert "Forbidden" in result.stdout


def test_set_status(cli_db, add_book, admin_token):
    add_book(stock=1)
    runner.invoke(app, ["lend", "10", "1", "--token", admin_token])

    result = runner.invoke(app, ["set-status", "1", "lost", "--token", admin_token])
    assert result.exit_code == 0
    assert "Lending 1 is now lost" in result.stdout

    bad = runner.invoke(app, ["set-status", "1", "archived", "--token", admin_token])
    assert bad.exit_code == 1
    assert "Invalid status value." in bad.stdout


def test_lendings_table(cli_db, add_book, admin_token):
    add_book(stock=1, title="Emma", author="Jane Austen")
    runner.invoke(app, ["lend", "10", "1", "--due", "2099-01-31", "--token", admin_token])

    result = runner.invoke(app, ["lendings", "10", "--token", admin_token])
    assert result.exit_code == 0
    assert "Emma" in result.stdout
    assert "borrowed" in result.stdout


def test_lendings_empty(cli_db, admin_token):
    result = runner.invoke(app, ["lendings", "10", "--token", admin_token])
    assert result.exit_code == 0
    assert "No lending records found for this user." in result.stdout


def test_mark_overdue(cli_db, add_book, admin_token):
    from datetime import date

    add_book(stock=1)
    cli_db.lendings.create(10, 1, date(2024, 1, 1))

    result = runner.invoke(app, ["mark-overdue", "--as-of", "2024-02-01", "--token", admin_token])
    assert result.exit_code == 0
    assert "1 lending record(s) marked overdue." in result.stdout


@patch("subprocess.run")
def test_serve_command(mock_subprocess_run, cli_db):
    result = runner.invoke(app, ["serve", "--port", "9000"])
    assert result.exit_code == 0
    assert "Starting API on http://127.0.0.1:9000" in result.stdout
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args and "api:app" in args
