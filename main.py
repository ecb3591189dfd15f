import subprocess
import sys
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

import database
from book import Book
from config import settings
from errors import LibraryError
from lending_record import LendingUpdate
from library import Library

APP_NAME = "Library Lending CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _library() -> Library:
    return Library(db_file=database.DATABASE_FILE)


def _fail(error: LibraryError) -> NoReturn:
    console.print(f"[bold red]Error:[/] {escape(error.message)}")
    raise typer.Exit(code=1)


TokenOption = typer.Option(..., "--token", "-t", envvar="LIBRARY_TOKEN", help="Auth token of the acting staff member")


@app.command("init-db")
def cli_init_db():
    """Create the database tables."""
    database.initialize_database(database.DATABASE_FILE)
    console.print(f"Database initialized: {database.DATABASE_FILE}")


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    stock: int = typer.Option(1, "--stock", "-s", min=0, help="Copies on the shelf"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    genre: Optional[str] = typer.Option(None, "--genre"),
    year: Optional[int] = typer.Option(None, "--year", help="Publication year"),
):
    """Add a title to the catalog."""
    lib = _library()
    try:
        book = lib.inventory.add_book(
            Book(title=title, author=author, stock=stock, isbn=isbn, genre=genre, publication_year=year)
        )
    except LibraryError as e:
        _fail(e)
    console.print(f"Added book {book.id}: {escape(book.title)} by {escape(book.author)} (stock {book.stock})")


@app.command("restock")
def cli_restock(book_id: int, stock: int = typer.Argument(..., min=0)):
    """Set the number of copies on the shelf for a book."""
    lib = _library()
    try:
        book = lib.inventory.set_stock(book_id, stock)
    except LibraryError as e:
        _fail(e)
    state = "available" if book.is_available else "unavailable"
    console.print(f"Book {book.id} stock set to {book.stock} ({state})")


@app.command("issue-token")
def cli_issue_token(
    user_id: int,
    level: int = typer.Option(1, "--level", "-l", min=1, help="Privilege level: 1 member, 2 staff, 3 admin"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Lifetime in minutes"),
):
    """Issue an auth token for a user."""
    lib = _library()
    try:
        token = lib.tokens.issue(user_id, level, ttl)
    except LibraryError as e:
        _fail(e)
    console.print(token)


@app.command("lend")
def cli_lend(
    user_id: int,
    book_id: int,
    due: Optional[str] = typer.Option(None, "--due", help="Due date YYYY-MM-DD"),
    token: str = TokenOption,
):
    """Lend one copy of a book to a user."""
    lib = _library()
    try:
        principal = lib.tokens.resolve(token)
        record = lib.borrow(principal, user_id, book_id, due)
    except LibraryError as e:
        _fail(e)
    console.print(f"Book lent successfully. Lending {record.id}, due {record.due_date}")


@app.command("return")
def cli_return(
    lending_id: int,
    returned: Optional[str] = typer.Option(None, "--date", help="Return date YYYY-MM-DD (default today)"),
    token: str = TokenOption,
):
    """Record the return of a lent copy."""
    lib = _library()
    try:
        principal = lib.tokens.resolve(token)
        record = lib.update_lending(principal, lending_id, LendingUpdate(status="returned", returned_date=returned))
    except LibraryError as e:
        _fail(e)
    console.print(f"Lending {record.id} returned on {record.returned_date}")


@app.command("set-status")
def cli_set_status(
    lending_id: int,
    status: str = typer.Argument(..., help="borrowed | returned | overdue | lost"),
    token: str = TokenOption,
):
    """Change the status of a lending."""
    lib = _library()
    try:
        principal = lib.tokens.resolve(token)
        record = lib.update_lending(principal, lending_id, LendingUpdate(status=status))
    except LibraryError as e:
        _fail(e)
    console.print(f"Lending {record.id} is now {record.status.value}")


@app.command("lendings")
def cli_lendings(user_id: int, token: str = TokenOption):
    """List a user's lendings, newest first."""
    lib = _library()
    try:
        principal = lib.tokens.resolve(token)
        rows = lib.list_user_lendings(principal, user_id)
    except LibraryError as e:
        _fail(e)
    if not rows:
        console.print("No lending records found for this user.")
        return

    table = Table(title=f"Lendings of user {user_id}", header_style="bold cyan")
    table.add_column("ID", style="magenta", no_wrap=True)
    table.add_column("Book")
    table.add_column("Due", no_wrap=True)
    table.add_column("Returned", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    for row in rows:
        table.add_row(
            str(row["lending_id"]),
            escape(row["book_title"] or f"#{row['book_id']}"),
            row["due_date"],
            row["returned_date"] or "-",
            row["status"],
        )
    console.print(table)


@app.command("mark-overdue")
def cli_mark_overdue(
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Cutoff date YYYY-MM-DD (default today)"),
    token: str = TokenOption,
):
    """Flag borrowed lendings past their due date as overdue."""
    lib = _library()
    try:
        principal = lib.tokens.resolve(token)
        count = lib.mark_overdue(principal, as_of)
    except LibraryError as e:
        _fail(e)
    console.print(f"{count} lending record(s) marked overdue.")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
):
    """Run the HTTP API with uvicorn."""
    console.print(f"Starting API on http://{host}:{port}")
    try:
        subprocess.run(
            [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)],
            check=False,
        )
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
