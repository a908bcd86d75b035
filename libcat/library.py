import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from . import circulation
from .account import BorrowRecord
from .book import Book
from .circulation import (
    AuthenticationError,
    InputMalformed,
    InvalidStateError,
    NotFoundError,
    PolicyViolation,
    ReturnReceipt,
    StorageError,
)
from .config import settings
from .database import Database
from .store import RecordStore
from .transactions import TransactionLog
from .user import Role, User
from .utils.validators import ISBNValidator, TextValidator

logger = logging.getLogger(__name__)


class _Snapshot:
    """In-memory state of a store, kept on the same objects so callers' references stay valid."""

    def __init__(self, store: RecordStore) -> None:
        self.books = list(store.books)
        self.users = list(store.users)
        self.book_fields = [(b, b.to_dict()) for b in self.books]
        self.user_fields = [(u, u.username, u.password, u.account.snapshot()) for u in self.users]

    def restore(self, store: RecordStore) -> None:
        store.books = list(self.books)
        store.users = list(self.users)
        for book, fields in self.book_fields:
            for name, value in fields.items():
                setattr(book, name, value)
        for user, username, password, account in self.user_fields:
            user.username = username
            user.password = password
            user.account.restore(account)


class Library:
    """Manages the book and user collections and keeps them on disk.

    Every method that changes something saves both collections before it
    returns and only then writes the transaction log line, so an operation
    reported as successful is never lost and a failed save leaves memory,
    disk and log as they were.
    """

    def __init__(self, db_file: Optional[str] = None, log_file: Optional[str] = None) -> None:
        self.database = Database(db_file or settings.data_file)
        self.log = TransactionLog(log_file or settings.transaction_log_file)
        books, users = self.database.load()
        self.store = RecordStore(books, users)

    # ------------------------- Persistence ------------------------- #
    @contextmanager
    def _change(self) -> Iterator[List[str]]:
        """Run a change, save it, then log it.

        The block appends its transaction log lines to the yielded list. If
        the block or the save raises, the store is put back as it was.
        """
        snapshot = _Snapshot(self.store)
        entries: List[str] = []
        try:
            yield entries
            self.database.save(self.store.books, self.store.users)
        except sqlite3.Error as e:
            snapshot.restore(self.store)
            logger.error("Could not save changes to %s: %s", self.database.db_file, e)
            raise StorageError(f"Could not save changes: {e}") from e
        except BaseException:
            snapshot.restore(self.store)
            raise
        for entry in entries:
            self.log.record(entry)

    # ------------------------- Lookups ------------------------- #
    def list_books(self) -> List[Book]:
        return list(self.store.books)

    def list_users(self) -> List[User]:
        return list(self.store.users)

    def find_book(self, book_id: int) -> Optional[Book]:
        return self.store.find_book_by_id(book_id)

    def find_user(self, user_id: int) -> Optional[User]:
        return self.store.find_user_by_id(user_id)

    def reserved_books_for(self, user: User) -> List[Book]:
        return self.store.reserved_books_for(user.id)

    def borrowed_books_for(self, user: User) -> List[Book]:
        return self.store.borrowed_books_for(user)

    def transaction_log(self) -> List[str]:
        return self.log.entries()

    def account_summary(self, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Everything the account screen shows, as plain data."""
        now = now or datetime.now()

        def describe(record: BorrowRecord) -> Dict[str, Any]:
            book = self.store.find_book_by_id(record.book_id)
            return {
                "book_id": record.book_id,
                "title": book.title if book else None,
                "borrowed_at": record.borrowed_at.isoformat(timespec="seconds"),
                "days": record.days,
                "elapsed_days": record.elapsed_days(now),
            }

        return {
            "user_id": user.id,
            "username": user.username,
            "role": user.role.value,
            "borrowed": [describe(r) for r in circulation.current_records(user.account, now)],
            "overdue": [describe(r) for r in circulation.overdue_records(user.account, now)],
            "reserved": [{"book_id": b.id, "title": b.title} for b in self.reserved_books_for(user)],
            "fine": user.account.fine,
            "accrued_fine": circulation.accrued_fine(user, now),
        }

    # ------------------------- Circulation ------------------------- #
    def borrow(self, user: User, book_id: int, days: int, now: Optional[datetime] = None) -> BorrowRecord:
        with self._change() as log:
            record = circulation.borrow(self.store, user, book_id, days, now)
            book = self.store.find_book_by_id(book_id)
            log.append(f'{user.role.value} {user.username} borrowed book "{book.title}" for {days} days.')
        return record

    def reserve(self, user: User, book_id: int) -> Book:
        with self._change() as log:
            book = circulation.reserve(self.store, user, book_id)
            log.append(f'{user.role.value} {user.username} reserved book "{book.title}".')
        return book

    def return_book(self, user: User, book_id: int, now: Optional[datetime] = None) -> ReturnReceipt:
        with self._change() as log:
            receipt = circulation.return_book(self.store, user, book_id, now)
            title = receipt.book.title
            if receipt.handed_off_to is not None:
                holder = receipt.handed_off_to
                log.append(
                    f'Book "{title}" automatically borrowed by reserving user {holder.username} '
                    f'for {holder.policy.handoff_days} days upon return.'
                )
            label = "allowed" if user.role is Role.STUDENT else "intended"
            log.append(
                f'{user.role.value} {user.username} returned book "{title}"; '
                f'kept for {receipt.elapsed_days} days ({label}: {receipt.allowed_days}).'
            )
        return receipt

    def pay_fine(self, user: User, now: Optional[datetime] = None) -> float:
        if user.account.fine <= 0:
            return 0.0
        with self._change() as log:
            paid = circulation.pay_fine(user, now)
            log.append(f"{user.role.value} {user.username} paid fine of {paid:g} {settings.currency}.")
        return paid

    # ------------------------- Book administration ------------------------- #
    def add_book(self, title: str, author: str, publisher: str, year: int, isbn: str) -> Book:
        if not TextValidator.validate_title(title):
            raise InputMalformed("Title cannot be empty.")
        if not TextValidator.validate_year(year):
            raise InputMalformed(f"Invalid publication year: {year}.")
        if not ISBNValidator.is_valid_isbn(isbn):
            raise InputMalformed("Invalid ISBN format.")
        with self._change() as log:
            book = Book(self.store.next_book_id(), title, author, publisher, year, ISBNValidator.normalize_isbn(isbn))
            self.store.add_book(book)
            log.append(f"Book added: {book.title}")
        return book

    def remove_book(self, book_id: int) -> Book:
        book = self.store.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book with ID {book_id} not found.")
        if book.is_borrowed:
            raise InvalidStateError(f"Book {book_id} is currently borrowed and cannot be removed.")
        with self._change() as log:
            self.store.remove_book(book_id)
            log.append(f"Book removed (ID): {book_id}")
        return book

    def update_book(self, book_id: int, *, title: Optional[str] = None, author: Optional[str] = None,
                    publisher: Optional[str] = None, year: Optional[int] = None,
                    isbn: Optional[str] = None) -> Book:
        """Change the given fields; ``None`` or blank strings leave a field as it is."""
        book = self.store.find_book_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book with ID {book_id} not found.")
        if year is not None and not TextValidator.validate_year(year):
            raise InputMalformed(f"Invalid publication year: {year}.")
        if isbn is not None and isbn.strip() and not ISBNValidator.is_valid_isbn(isbn):
            raise InputMalformed("Invalid ISBN format.")

        with self._change() as log:
            if title is not None and title.strip():
                book.title = title.strip()
            if author is not None and author.strip():
                book.author = author.strip()
            if publisher is not None and publisher.strip():
                book.publisher = publisher.strip()
            if year is not None:
                book.year = year
            if isbn is not None and isbn.strip():
                book.isbn = ISBNValidator.normalize_isbn(isbn)
            log.append(f"Librarian updated book (ID): {book_id}")
        return book

    # ------------------------- User administration ------------------------- #
    def _check_username(self, username: str, exclude: Optional[User] = None) -> None:
        if not TextValidator.validate_username(username):
            raise InputMalformed("Username must be non-empty, without spaces and not only digits.")
        existing = self.store.find_user_by_username(username)
        if existing is not None and existing is not exclude:
            raise InputMalformed(f"Username {username.strip()} is already taken.")

    def add_user(self, username: str, password: str, role: Role) -> User:
        if role is Role.LIBRARIAN:
            raise PolicyViolation("Only Student and Faculty accounts can be created.")
        self._check_username(username)
        if not TextValidator.validate_password(password):
            raise InputMalformed("Password cannot be empty.")
        with self._change() as log:
            user = User(self.store.next_user_id(), username, password, role)
            self.store.add_user(user)
            log.append(f"User added: {user.username}")
        return user

    def register(self, username: str, password: str, confirm: str, role: Role) -> User:
        if password != confirm:
            raise InputMalformed("Passwords do not match. Registration failed.")
        return self.add_user(username, password, role)

    def remove_user(self, acting: User, user_id: int) -> User:
        """Delete an account; any reservations it holds are cancelled."""
        if acting.id == user_id:
            raise PolicyViolation("You cannot remove your own account.")
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found.")
        if user.account.records:
            raise InvalidStateError(f"User {user.username} still has borrowed books.")
        with self._change() as log:
            # ids are reused, so a leftover reservation would pass to the next new user
            for book in self.store.reserved_books_for(user_id):
                book.reserved_by = None
            self.store.remove_user(user_id)
            log.append(f"User removed: {user.username}")
        return user

    def update_user(self, user_id: int, *, username: Optional[str] = None,
                    password: Optional[str] = None) -> User:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found.")
        if username is not None and username.strip():
            self._check_username(username, exclude=user)
        with self._change() as log:
            if username is not None and username.strip():
                user.username = username.strip()
            if password is not None and password.strip():
                user.password = password.strip()
            log.append(f"User updated: {user.username}")
        return user

    # ------------------------- Sessions ------------------------- #
    def login(self, username: str, password: str, role: Optional[Role] = None) -> User:
        user = self.store.authenticate(username, password)
        if user is None:
            raise AuthenticationError("Invalid credentials.")
        if role is not None and user.role is not role:
            raise PolicyViolation("Your account does not match the selected role.")
        return user
