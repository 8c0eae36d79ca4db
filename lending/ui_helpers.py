import json
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODES = ("plain", "json", "rich")

_console = Console()
_output_mode = "plain"

Column = Tuple[str, str]  # (header, dict key)

BOOK_COLUMNS: List[Column] = [("ID", "id"), ("Title", "title"), ("Author", "author"),
                              ("Genre", "genre"), ("Available", "available")]
MEMBER_COLUMNS: List[Column] = [("ID", "id"), ("Name", "name"), ("Email", "email"),
                                ("Type", "membershipType"), ("Joined", "joinDate"), ("Active", "active")]
RECORD_COLUMNS: List[Column] = [("ID", "id"), ("User", "userId"), ("Book", "bookId"), ("Borrowed", "borrowDate"),
                                ("Due", "dueDate"), ("Returned", "returnDate"), ("Status", "status")]


def set_output_mode(mode: str) -> None:
    global _output_mode
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        _output_mode = mode


def get_output_mode() -> str:
    return _output_mode


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def print_rows(title: str, columns: Sequence[Column], rows: List[Dict[str, Any]], empty_message: str) -> None:
    """Print a list of records in the current output mode.
    - plain: one 'key=value' line per record, or ``empty_message``
    - json: JSON array of the records
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
        return

    if not rows:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for header, _ in columns:
            table.add_column(header, style="white")
        for row in rows:
            table.add_row(*(escape(_cell(row.get(key))) for _, key in columns))
        _console.print(table)
    else:
        for row in rows:
            print("  ".join(f"{key}={_cell(row.get(key))}" for _, key in columns))


def print_result(message: str, data: Dict[str, Any]) -> None:
    """Print the outcome of a single operation."""
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(data, ensure_ascii=False))
    elif mode == "rich":
        body = "\n".join(f"[bold]{key}:[/] {escape(_cell(value))}" for key, value in data.items())
        _console.print(Panel.fit(body, title=message, border_style="green"))
    else:
        print(message)
        for key, value in data.items():
            print(f"  {key}: {_cell(value)}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {key: key.replace("_", " ").title() for key in stats}
    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{labels[key]}:[/] {value}" for key, value in stats.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{labels[key]}: {value}")


def print_error(code: str, message: str) -> None:
    if get_output_mode() == "json":
        print(json.dumps({"success": False, "code": code, "message": message}, ensure_ascii=False))
    elif get_output_mode() == "rich":
        _console.print(f"[bold red]Error {escape(f'[{code}]')}:[/] {escape(message)}")
    else:
        print(f"Error [{code}]: {message}")
