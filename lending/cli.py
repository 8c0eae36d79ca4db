import logging
import os
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer
from rich.console import Console

from lending.config import settings
from lending.errors import LendingError
from lending.library import Library
from lending.ui_helpers import (
    BOOK_COLUMNS,
    MEMBER_COLUMNS,
    RECORD_COLUMNS,
    print_error,
    print_result,
    print_rows,
    print_stats_result,
    set_output_mode,
)
from lending.validators import IdValidator

logging.basicConfig(level=logging.WARNING)

APP_NAME = "Library Lending CLI"

console = Console()

_state = {"data_dir": settings.data_dir}


def get_library() -> Library:
    return Library(_state["data_dir"], loan_days=settings.loan_days)


def handle_lending_errors(func):
    """Report lending failures as 'Error [code]: message' and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LendingError as e:
            print_error(e.code, e.message)
            raise typer.Exit(code=1)
    return wrapper


def _optional_id(raw: Optional[str], label: str) -> Optional[int]:
    if raw is None:
        return None
    value = IdValidator.parse_id(raw)
    if value is None:
        print_error("InvalidRequest", f"Invalid {label} ID")
        raise typer.Exit(code=1)
    return value


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    data_dir: str = typer.Option(settings.data_dir, "--data-dir", "-d", help="Directory holding the JSON collections"),
    output: str = typer.Option("plain", "--output", "-o", help="Output format: plain | json | rich"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log messages"),
):
    """Global options for the CLI (data directory, output mode)."""
    _state["data_dir"] = data_dir
    set_output_mode(output)
    if verbose:
        logging.getLogger().setLevel(settings.log_level)


@app.command("books")
def cli_books(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Match title or author"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    available: Optional[bool] = typer.Option(None, "--available/--unavailable"),
):
    """List books in the catalog."""
    books = get_library().list_books(search=search, genre=genre, available=available)
    print_rows("📚 Books", BOOK_COLUMNS, [b.to_dict() for b in books], "No books in library.")


@app.command("members")
def cli_members(
    membership_type: Optional[str] = typer.Option(None, "--type", "-t"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive"),
):
    """List library members."""
    members = get_library().list_members(membership_type=membership_type, active=active)
    print_rows("👥 Members", MEMBER_COLUMNS, [m.to_dict() for m in members], "No members registered.")


@app.command("add-book")
@handle_lending_errors
def cli_add_book(title: str, author: str, genre: str):
    """Add a book to the catalog."""
    book = get_library().add_book({"title": title, "author": author, "genre": genre})
    print_result(f"Added book #{book.id}", book.to_dict())


@app.command("add-member")
@handle_lending_errors
def cli_add_member(
    name: str,
    email: Optional[str] = typer.Option(None, "--email"),
    membership_type: Optional[str] = typer.Option(None, "--membership-type"),
):
    """Register a new member."""
    member = get_library().add_member({"name": name, "email": email, "membershipType": membership_type})
    print_result(f"Added member #{member.id}", member.to_dict())


@app.command("borrow")
@handle_lending_errors
def cli_borrow(user_id: str, book_id: str):
    """Lend a book to a member."""
    result = get_library().borrow(user_id, book_id)
    print_result(f"{result.user.name} borrowed '{result.book.title}'", result.record.to_dict())


@app.command("return")
@handle_lending_errors
def cli_return(user_id: str, book_id: str):
    """Take a borrowed book back."""
    result = get_library().return_book(user_id, book_id)
    print_result(f"'{result.book.title}' returned", result.record.to_dict())


@app.command("history")
def cli_history(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only records of this member"),
    status: Optional[str] = typer.Option(None, "--status", help="borrowed | returned"),
):
    """Show the borrowing history."""
    records = get_library().list_history(status=status, user_id=_optional_id(user, "user"))
    print_rows("📖 Borrowing History", RECORD_COLUMNS, [r.to_dict() for r in records], "No borrowing records.")


@app.command("overdue")
def cli_overdue():
    """Show open borrowings past their due date."""
    records = get_library().overdue()
    print_rows("⏰ Overdue", RECORD_COLUMNS, [r.to_dict() for r in records], "No overdue borrowings.")


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(get_library().get_statistics())


@app.command("check")
def cli_check():
    """Verify that book availability matches the open borrowing records."""
    library = get_library()
    problems = library.check_consistency()
    for name, message in library.diagnostics().items():
        print_error("ReadFailure", message)
    if not problems:
        print("All books consistent with borrowing history.")
        return
    print_rows("⚠️ Inconsistencies", [("Book", "bookId"), ("Problem", "problem"), ("Records", "recordIds")],
               [p.to_dict() for p in problems], "")
    raise typer.Exit(code=1)


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Start the HTTP API with uvicorn."""
    env = dict(os.environ, LENDING_DATA_DIR=str(_state["data_dir"]))
    args = [sys.executable, "-m", "uvicorn", "lending.api:app", "--host", host, "--port", str(port)]
    if reload:
        args.append("--reload")
    console.print(f"Starting API on http://{host}:{port} (data: {_state['data_dir']})")
    try:
        subprocess.run(args, env=env)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
