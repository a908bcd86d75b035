import logging
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .circulation import LibraryError, ReturnReceipt
from .config import settings
from .library import Library
from .user import Role, User
from .utils.ui_helpers import (
    print_account,
    print_book_list,
    print_log,
    print_user_list,
    set_output_mode,
)

APP_NAME = settings.app_name

console = Console()
logger = logging.getLogger(__name__)


class LibraryManager:
    """Holds the one Library the process works on."""

    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = Library()
            logger.info("Library opened on %s", settings.data_file)
        return cls._instance

    @classmethod
    def reset(cls, instance: Optional[Library] = None) -> None:
        cls._instance = instance


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def describe_return(receipt: ReturnReceipt, user: User) -> List[str]:
    lines = [f"Book was kept for {receipt.elapsed_days} days."]
    if receipt.overdue_days:
        if receipt.fine:
            lines.append(
                f"Book is overdue by {receipt.overdue_days} days. "
                f"Fine of {receipt.fine:g} {settings.currency} imposed."
            )
        else:
            lines.append(
                f"Book is overdue by {receipt.overdue_days} days. "
                f"(No fine imposed for {user.role.value.lower()})"
            )
        if receipt.long_overdue:
            lines.append(f"Warning: You have an overdue book for more than {user.policy.overdue_block_days} days.")
    if receipt.handed_off_to is not None:
        lines.append(f"Book handed over to reserving user {receipt.handed_off_to.username}.")
    lines.append("Book returned successfully.")
    return lines


# --- Typer CLI app ---
app = typer.Typer(help="Library catalog CLI")

def _username_option():
    return typer.Option(..., "--username", "-u", help="Your username")


def _password_option():
    return typer.Option(..., "--password", "-p", help="Your password")


def _login(username: str, password: str, role: Optional[Role] = None) -> tuple:
    lib = LibraryManager.get_instance()
    try:
        return lib, lib.login(username, password, role)
    except LibraryError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)


def _fail(e: LibraryError) -> None:
    print(f"Error: {e}")
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global CLI options. With no command, opens the interactive menu."""
    _configure_logging()
    if output:
        set_output_mode(output)
    if ctx.invoked_subcommand is None:
        run_menu()


@app.command("books")
def cli_books(user: Optional[str] = typer.Option(None, "--user", help="Show status as seen by this username")):
    """List every book copy with its status."""
    lib = LibraryManager.get_instance()
    viewer = lib.store.find_user_by_username(user) if user else None
    if user and viewer is None:
        print(f"User {user} not found.")
        raise typer.Exit(code=1)
    print_book_list(lib.list_books(), viewer.id if viewer else None)


@app.command("borrow")
def cli_borrow(book_id: int, days: int, username: str = _username_option(), password: str = _password_option()):
    """Borrow a book for a number of days."""
    lib, user = _login(username, password)
    try:
        lib.borrow(user, book_id, days)
    except LibraryError as e:
        _fail(e)
    book = lib.find_book(book_id)
    print(f'Book "{book.title}" successfully borrowed for {days} days.')


@app.command("reserve")
def cli_reserve(book_id: int, username: str = _username_option(), password: str = _password_option()):
    """Reserve a borrowed book; it passes to you when it is returned."""
    lib, user = _login(username, password)
    try:
        book = lib.reserve(user, book_id)
    except LibraryError as e:
        _fail(e)
    print(f'Book "{book.title}" reserved successfully. It will be automatically borrowed for you upon return.')


@app.command("return")
def cli_return(book_id: int, username: str = _username_option(), password: str = _password_option()):
    """Return a borrowed book."""
    lib, user = _login(username, password)
    try:
        receipt = lib.return_book(user, book_id)
    except LibraryError as e:
        _fail(e)
    for line in describe_return(receipt, user):
        print(line)


@app.command("pay-fine")
def cli_pay_fine(username: str = _username_option(), password: str = _password_option()):
    """Pay off the outstanding fine."""
    lib, user = _login(username, password)
    try:
        paid = lib.pay_fine(user)
    except LibraryError as e:
        _fail(e)
    if paid:
        print(f"Paid fine of {paid:g} {settings.currency}. Fine cleared.")
    else:
        print("No fine due.")


@app.command("account")
def cli_account(username: str = _username_option(), password: str = _password_option()):
    """Show borrowed, overdue and reserved books and the fine."""
    lib, user = _login(username, password)
    print_account(lib.account_summary(user))


@app.command("register")
def cli_register(
    new_username: str,
    new_password: str,
    confirm: str,
    role: str = typer.Option("student", "--role", "-r", help="student or faculty"),
):
    """Create a Student or Faculty account."""
    lib = LibraryManager.get_instance()
    try:
        user = lib.register(new_username, new_password, confirm, Role.parse(role))
    except (LibraryError, ValueError) as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Registration successful. Your user ID is {user.id}.")


# --- Librarian commands ---
@app.command("users")
def cli_users(username: str = _username_option(), password: str = _password_option()):
    """List all users (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    print_user_list(lib.list_users())


@app.command("log")
def cli_log(username: str = _username_option(), password: str = _password_option()):
    """Show the transaction log (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    print_log(lib.transaction_log())


@app.command("add-book")
def cli_add_book(title: str, author: str, publisher: str, year: int, isbn: str,
                 username: str = _username_option(), password: str = _password_option()):
    """Add a new book copy (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    try:
        book = lib.add_book(title, author, publisher, year, isbn)
    except LibraryError as e:
        _fail(e)
    print(f"Book added successfully with ID {book.id}.")


@app.command("remove-book")
def cli_remove_book(book_id: int, username: str = _username_option(), password: str = _password_option()):
    """Remove a book copy (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    try:
        lib.remove_book(book_id)
    except LibraryError as e:
        _fail(e)
    print(f"Book with ID {book_id} has been removed.")


@app.command("update-book")
def cli_update_book(
    book_id: int,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    publisher: Optional[str] = typer.Option(None, "--publisher"),
    year: Optional[int] = typer.Option(None, "--year"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    username: str = _username_option(),
    password: str = _password_option(),
):
    """Update book details (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    try:
        lib.update_book(book_id, title=title, author=author, publisher=publisher, year=year, isbn=isbn)
    except LibraryError as e:
        _fail(e)
    print("Book updated successfully.")


@app.command("add-user")
def cli_add_user(
    new_username: str,
    new_password: str,
    role: str = typer.Option("student", "--role", "-r", help="student or faculty"),
    username: str = _username_option(),
    password: str = _password_option(),
):
    """Add a Student or Faculty account (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    try:
        user = lib.add_user(new_username, new_password, Role.parse(role))
    except (LibraryError, ValueError) as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"User added successfully with ID {user.id}.")


@app.command("remove-user")
def cli_remove_user(user_id: int, username: str = _username_option(), password: str = _password_option()):
    """Remove a user account (librarians only)."""
    lib, librarian = _login(username, password, Role.LIBRARIAN)
    try:
        removed = lib.remove_user(librarian, user_id)
    except LibraryError as e:
        _fail(e)
    print(f"User {removed.username} removed.")


@app.command("update-user")
def cli_update_user(
    user_id: int,
    new_username: Optional[str] = typer.Option(None, "--new-username"),
    new_password: Optional[str] = typer.Option(None, "--new-password"),
    username: str = _username_option(),
    password: str = _password_option(),
):
    """Change a user's username and/or password (librarians only)."""
    lib, _ = _login(username, password, Role.LIBRARIAN)
    try:
        lib.update_user(user_id, username=new_username, password=new_password)
    except LibraryError as e:
        _fail(e)
    print("User updated successfully.")


@app.command("menu")
def cli_menu():
    """Open the interactive menu."""
    run_menu()


# --- Interactive menu ---
def _render_menu(title: str, items: List[tuple]) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(justify="right", style="bold cyan", width=4)
    table.add_column(justify="left", style="white")
    for key, label in items:
        table.add_row(f"[reverse]{key}[/]", label)
    console.print(Panel(table, title=title, border_style="cyan", box=box.HEAVY, padding=(1, 2)))


def _show_books(lib: Library, viewer: Optional[User]) -> None:
    print_book_list(lib.list_books(), viewer.id if viewer else None)


def _borrow(lib: Library, user: User) -> None:
    book_id = IntPrompt.ask("Enter the Book ID to borrow")
    days = IntPrompt.ask(f"Enter number of days to borrow (maximum {user.policy.max_days})")
    lib.borrow(user, book_id, days)
    book = lib.find_book(book_id)
    console.print(f'[green]Book "{escape(book.title)}" successfully borrowed for {days} days.[/]')


def _reserve(lib: Library, user: User) -> None:
    book_id = IntPrompt.ask("Enter the Book ID to reserve")
    book = lib.reserve(user, book_id)
    console.print(
        f'[green]Book "{escape(book.title)}" reserved successfully. '
        "It will be automatically borrowed for you upon return.[/]"
    )


def _return(lib: Library, user: User) -> None:
    borrowed = lib.borrowed_books_for(user)
    if not borrowed:
        console.print("[yellow]You have not borrowed any books.[/]")
        return
    print_book_list(borrowed, user.id)
    book_id = IntPrompt.ask("Enter the Book ID to return")
    receipt = lib.return_book(user, book_id)
    for line in describe_return(receipt, user):
        console.print(escape(line))


def _pay_fine(lib: Library, user: User) -> None:
    paid = lib.pay_fine(user)
    if paid:
        console.print(f"[green]Paid fine of {paid:g} {settings.currency}. Fine cleared.[/]")
    else:
        console.print("No fine due.")


def user_portal(lib: Library, user: User) -> None:
    """Borrow/reserve/return loop for students and faculty."""
    actions = {
        "1": ("View Book List", lambda: _show_books(lib, user)),
        "2": ("Borrow Book", lambda: _borrow(lib, user)),
        "3": ("Reserve Book", lambda: _reserve(lib, user)),
        "4": ("Return Book", lambda: _return(lib, user)),
        "5": ("View Account Details", lambda: print_account(lib.account_summary(user))),
        "6": ("Pay Fine", lambda: _pay_fine(lib, user)),
    }
    _portal_loop(f"{user.role.value} Portal - {user.username}", actions, logout_key="7")


def _add_book(lib: Library) -> None:
    title = Prompt.ask("Enter title")
    author = Prompt.ask("Enter author")
    publisher = Prompt.ask("Enter publisher")
    year = IntPrompt.ask("Enter publication year")
    isbn = Prompt.ask("Enter ISBN")
    book = lib.add_book(title, author, publisher, year, isbn)
    console.print(f"[green]Book added successfully with ID {book.id}.[/]")


def _remove_book(lib: Library) -> None:
    book_id = IntPrompt.ask("Enter Book ID to remove")
    lib.remove_book(book_id)
    console.print(f"[green]Book with ID {book_id} has been removed.[/]")


def _update_book(lib: Library) -> None:
    book_id = IntPrompt.ask("Enter Book ID to update")
    book = lib.find_book(book_id)
    if book is None:
        console.print("[yellow]Book not found.[/]")
        return
    console.print("Updating book details. Press ENTER to skip a field.")
    title = Prompt.ask(f"Current Title: {escape(book.title)}. New Title", default="", show_default=False)
    publisher = Prompt.ask(f"Current Publisher: {escape(book.publisher)}. New Publisher", default="", show_default=False)
    year_raw = Prompt.ask(f"Current Year: {book.year}. New Year", default="", show_default=False)
    isbn = Prompt.ask(f"Current ISBN: {book.isbn}. New ISBN", default="", show_default=False)
    year = int(year_raw) if year_raw.strip().isdigit() else None
    lib.update_book(book_id, title=title, publisher=publisher, year=year, isbn=isbn)
    console.print("[green]Book updated successfully.[/]")


def _add_user(lib: Library) -> None:
    choice = Prompt.ask("Enter user type (1 for Student, 2 for Faculty)", choices=["1", "2"])
    role = Role.STUDENT if choice == "1" else Role.FACULTY
    username = Prompt.ask("Enter username")
    password = Prompt.ask("Enter password", password=True)
    user = lib.add_user(username, password, role)
    console.print(f"[green]User added successfully with ID {user.id}.[/]")


def _remove_user(lib: Library, librarian: User) -> None:
    user_id = IntPrompt.ask("Enter User ID to remove")
    removed = lib.remove_user(librarian, user_id)
    console.print(f"[green]User {escape(removed.username)} removed.[/]")


def _update_user(lib: Library) -> None:
    user_id = IntPrompt.ask("Enter User ID to update")
    username = Prompt.ask("Enter new username (or press ENTER to leave unchanged)", default="", show_default=False)
    password = Prompt.ask("Enter new password (or press ENTER to leave unchanged)", default="",
                          show_default=False, password=True)
    lib.update_user(user_id, username=username, password=password)
    console.print("[green]User updated successfully.[/]")


def librarian_portal(lib: Library, librarian: User) -> None:
    actions = {
        "1": ("Add Book", lambda: _add_book(lib)),
        "2": ("Remove Book", lambda: _remove_book(lib)),
        "3": ("Update Book", lambda: _update_book(lib)),
        "4": ("Add User", lambda: _add_user(lib)),
        "5": ("Remove User", lambda: _remove_user(lib, librarian)),
        "6": ("Update User", lambda: _update_user(lib)),
        "7": ("View All Books", lambda: _show_books(lib, None)),
        "8": ("View All Users", lambda: print_user_list(lib.list_users())),
        "9": ("View Transaction Log", lambda: print_log(lib.transaction_log())),
    }
    _portal_loop(f"Librarian Portal - {librarian.username}", actions, logout_key="10")


def _portal_loop(title: str, actions: dict, logout_key: str) -> None:
    items = [(key, label) for key, (label, _) in actions.items()] + [(logout_key, "Logout")]
    while True:
        _render_menu(title, items)
        choice = Prompt.ask("Enter your choice", choices=[k for k, _ in items]).strip()
        if choice == logout_key:
            console.print("Logging out...")
            return
        _, action = actions[choice]
        try:
            action()
        except LibraryError as e:
            console.print(f"[bold red]Error:[/] {escape(str(e))}")
        console.print()


def _login_prompt(lib: Library, role: Role) -> None:
    username = Prompt.ask("Enter username")
    password = Prompt.ask("Enter password", password=True)
    try:
        user = lib.login(username, password, role)
    except LibraryError as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        return
    if role is Role.LIBRARIAN:
        console.print("[green]Login successful. Welcome, Librarian![/]")
        librarian_portal(lib, user)
    else:
        console.print(f"[green]Login successful. Welcome, {escape(user.username)}![/]")
        user_portal(lib, user)


def _registration_prompt(lib: Library, role: Role) -> None:
    username = Prompt.ask("Enter desired username (no spaces)")
    password = Prompt.ask("Enter password", password=True)
    confirm = Prompt.ask("Confirm password", password=True)
    try:
        user = lib.register(username, password, confirm, role)
    except LibraryError as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        return
    console.print(f"[green]Registration successful (ID {user.id}). Please log in with your new credentials.[/]")


def run_menu(lib: Optional[Library] = None) -> None:
    """Role selection, then login or registration, then the matching portal."""
    lib = lib or LibraryManager.get_instance()
    roles = {"1": Role.STUDENT, "2": Role.FACULTY, "3": Role.LIBRARIAN}
    while True:
        _render_menu(APP_NAME, [("1", "Student"), ("2", "Faculty"), ("3", "Librarian"), ("4", "Exit")])
        choice = Prompt.ask("Select your role", choices=["1", "2", "3", "4"]).strip()
        if choice == "4":
            console.print("[green]Exiting the system. Goodbye![/]")
            break
        role = roles[choice]
        if role is Role.LIBRARIAN or Confirm.ask("Are you already registered?"):
            _login_prompt(lib, role)
        else:
            _registration_prompt(lib, role)


if __name__ == "__main__":
    app()
