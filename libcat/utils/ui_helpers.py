import os
import json
from typing import List, Any, Dict, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from ..config import settings

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, settings.default_output).lower()

def _book_row(book: Any, viewer_id: Optional[int]) -> Dict[str, Any]:
    status = book.status_for(viewer_id) if viewer_id is not None else book.status
    return {
        "id": book.id,
        "title": book.title,
        "publisher": book.publisher,
        "year": book.year,
        "isbn": book.isbn,
        "status": status.value,
    }

def print_book_list(books: List[Any], viewer_id: Optional[int] = None) -> None:
    """Print books in the current output mode.
    - plain: one '<id> - <title> (<publisher>, <year>) ISBN <isbn> [<status>]' line each
    - json: array of objects
    - rich: table
    Author is never shown.
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    rows = [_book_row(b, viewer_id) for b in books]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=False, header_style="bold cyan")
        table.add_column("ID", style="magenta", justify="right")
        table.add_column("Title", style="white")
        table.add_column("Publisher", style="white")
        table.add_column("Year", justify="right")
        table.add_column("ISBN", no_wrap=True)
        table.add_column("Status")
        for r in rows:
            style = "green" if r["status"] == "Available" else "yellow"
            table.add_row(str(r["id"]), escape(r["title"]), escape(r["publisher"]), str(r["year"]), r["isbn"],
                          f"[{style}]{r['status']}[/]")
        _console.print(table)
    else:
        for r in rows:
            print(f"{r['id']} - {r['title']} ({r['publisher']}, {r['year']}) ISBN {r['isbn']} [{r['status']}]")

def print_user_list(users: List[Any]) -> None:
    mode = get_output_mode()

    if not users:
        print("No users.")
        return

    rows = [
        {"id": u.id, "username": u.username, "role": u.role.value,
         "borrowed": len(u.account.records), "fine": u.account.fine}
        for u in users
    ]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👥 Users", header_style="bold cyan")
        table.add_column("ID", style="magenta", justify="right")
        table.add_column("Username")
        table.add_column("Role")
        table.add_column("Borrowed", justify="right")
        table.add_column("Fine", justify="right")
        for r in rows:
            table.add_row(str(r["id"]), escape(r["username"]), r["role"], str(r["borrowed"]), f"{r['fine']:g}")
        _console.print(table)
    else:
        for r in rows:
            print(f"{r['id']} - {r['username']} ({r['role']}) borrowed={r['borrowed']} fine={r['fine']:g}")

def print_account(summary: Dict[str, Any]) -> None:
    """Print an account summary as built by Library.account_summary."""
    mode = get_output_mode()
    currency = settings.currency

    if mode == "json":
        print(json.dumps(summary, ensure_ascii=False))
        return

    def record_lines(records: List[Dict[str, Any]], empty: str) -> List[str]:
        if not records:
            return [empty]
        return [
            f"Book ID: {r['book_id']}, Borrow Date: {r['borrowed_at']}, "
            f"Intended Borrow Days: {r['days']}, Days Elapsed: {r['elapsed_days']}"
            for r in records
        ]

    lines = [f"User ID: {summary['user_id']}", f"Username: {summary['username']} ({summary['role']})", "",
             "Borrowed Books:"]
    lines += record_lines(summary["borrowed"], "No currently borrowed (non-overdue) books.")
    lines += ["", "Overdue Books:"]
    lines += record_lines(summary["overdue"], "No overdue books.")
    lines += ["", f"Fine Due: {summary['fine']:g} {currency}"]
    if summary["role"] == "Student":
        lines.append(f"Computed Overdue Fine (for active borrows): {summary['accrued_fine']:g} {currency}")
    lines += ["", "Reserved Books:"]
    if summary["reserved"]:
        lines += [f"Book ID: {r['book_id']}, Title: {r['title']}" for r in summary["reserved"]]
    else:
        lines.append("No reserved books.")

    if mode == "rich":
        _console.print(Panel(escape("\n".join(lines)), title=f"👤 {summary['role']} Account", border_style="blue"))
    else:
        print("\n".join(lines))

def print_log(entries: List[str]) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(entries, ensure_ascii=False))
        return
    if not entries:
        print("Transaction log is empty.")
        return
    if mode == "rich":
        _console.print(Panel(escape("\n".join(entries)), title="🧾 Transaction Log", border_style="cyan"))
    else:
        for entry in entries:
            print(entry)
