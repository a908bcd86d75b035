import logging
import os
import sqlite3
from datetime import datetime
from typing import Dict, List, Tuple

from .account import Account, BorrowRecord
from .book import Book
from .seed import default_books, default_users
from .user import Role, User

logger = logging.getLogger(__name__)


class MalformedDataError(Exception):
    """Stored rows could not be turned back into objects."""


class Database:
    """Loads and saves the book and user collections in one SQLite file.

    Every save replaces the stored books, users and borrow records together.
    If the file is missing, empty, not a database at all or holds rows we
    cannot read, loading falls back to the default seed instead of failing.
    """

    def __init__(self, db_file: str) -> None:
        self.db_file = db_file
        self.initialize_database()

    def get_db_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file)
        conn.row_factory = sqlite3.Row
        return conn

    def create_tables(self) -> None:
        """Create the tables if they are not there yet."""
        conn = self.get_db_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    publisher TEXT,
                    year INTEGER,
                    isbn TEXT,
                    borrowed_by INTEGER DEFAULT 0,
                    reserved_by INTEGER DEFAULT 0
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY,
                    username TEXT NOT NULL,
                    password TEXT NOT NULL,
                    role TEXT NOT NULL,
                    fine REAL DEFAULT 0
                )
            """)
            # rowid order keeps each account's records in insertion order
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS borrow_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    book_id INTEGER NOT NULL,
                    borrowed_at TEXT NOT NULL,
                    days INTEGER NOT NULL
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user_id ON borrow_records(user_id)")
            conn.commit()
        finally:
            conn.close()

    def initialize_database(self) -> None:
        """Make sure the schema exists; a file that is not a database is set aside."""
        try:
            self.create_tables()
        except sqlite3.DatabaseError as e:
            corrupt = self.db_file + ".corrupt"
            logger.warning("%s is not a usable database (%s); moving it to %s", self.db_file, e, corrupt)
            os.replace(self.db_file, corrupt)
            self.create_tables()

    # ------------------------- Loading ------------------------- #
    def load(self) -> Tuple[List[Book], List[User]]:
        """Return the stored books and users, ready to use together.

        Unreadable rows in either table reseed both, since book links and
        borrow records only make sense against the users they were saved
        with. An empty table is seeded on its own.
        """
        try:
            books = self._read_books()
            users = self._read_users()
        except (sqlite3.DatabaseError, MalformedDataError) as e:
            logger.warning("Stored data invalid (%s). Loading default books and users.", e)
            return default_books(), default_users()
        if not books:
            logger.info("No stored books. Loading default books.")
            books = default_books()
        if not users:
            logger.info("No stored users. Loading default users.")
            users = default_users()
        reconcile(books, users)
        logger.info("Loaded %d books and %d users from %s", len(books), len(users), self.db_file)
        return books, users

    def _read_books(self) -> List[Book]:
        conn = self.get_db_connection()
        try:
            rows = conn.execute(
                "SELECT id, title, author, publisher, year, isbn, borrowed_by, reserved_by FROM books ORDER BY id"
            ).fetchall()
        finally:
            conn.close()
        books = []
        for row in rows:
            try:
                book = Book.from_dict(dict(row))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise MalformedDataError(f"bad book row {dict(row)!r}") from e
            if not book.title:
                raise MalformedDataError(f"book {book.id} has no title")
            books.append(book)
        return books


    def _read_users(self) -> List[User]:
        conn = self.get_db_connection()
        try:
            user_rows = conn.execute("SELECT id, username, password, role, fine FROM users ORDER BY id").fetchall()
            record_rows = conn.execute(
                "SELECT user_id, book_id, borrowed_at, days FROM borrow_records ORDER BY id"
            ).fetchall()
        finally:
            conn.close()

        records = {}
        try:
            for row in record_rows:
                records.setdefault(int(row["user_id"]), []).append(BorrowRecord(
                    book_id=int(row["book_id"]),
                    borrowed_at=datetime.fromisoformat(row["borrowed_at"]),
                    days=int(row["days"]),
                ))
            users = []
            for row in user_rows:
                user_id = int(row["id"])
                users.append(User(
                    id=user_id,
                    username=row["username"],
                    password=row["password"],
                    role=Role.parse(row["role"]),
                    account=Account(records.get(user_id), float(row["fine"] or 0)),
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedDataError(str(e)) from e
        return users


    # ------------------------- Saving ------------------------- #
    def save(self, books: List[Book], users: List[User]) -> None:
        """Replace all three tables in one transaction."""
        conn = self.get_db_connection()
        try:
            with conn:
                conn.execute("DELETE FROM books")
                conn.execute("DELETE FROM borrow_records")
                conn.execute("DELETE FROM users")
                conn.executemany(
                    "INSERT INTO books (id, title, author, publisher, year, isbn, borrowed_by, reserved_by) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (b.id, b.title, b.author, b.publisher, b.year, b.isbn,
                         b.borrowed_by or 0, b.reserved_by or 0)
                        for b in books
                    ],
                )
                conn.executemany(
                    "INSERT INTO users (id, username, password, role, fine) VALUES (?, ?, ?, ?, ?)",
                    [(u.id, u.username, u.password, u.role.value, u.account.fine) for u in users],
                )
                conn.executemany(
                    "INSERT INTO borrow_records (user_id, book_id, borrowed_at, days) VALUES (?, ?, ?, ?)",
                    [
                        (u.id, r.book_id, r.borrowed_at.isoformat(), r.days)
                        for u in users
                        for r in u.account.records
                    ],
                )
        finally:
            conn.close()
        logger.info("Saved %d books and %d users", len(books), len(users))


def reconcile(books: List[Book], users: List[User]) -> int:
    """Drop links between books and users that do not match up.

    A book stays borrowed only if its borrower exists and holds a record
    for it; a reservation stays only on a borrowed book held for another
    existing user; a record stays only if its book is lent to that user.
    Returns how many links were dropped.
    """
    by_id: Dict[int, User] = {u.id: u for u in users}
    lent_to = {}
    dropped = 0
    for book in books:
        borrower = by_id.get(book.borrowed_by) if book.is_borrowed else None
        if book.is_borrowed and (borrower is None or borrower.account.find_record(book.id) is None):
            dropped += 1 + int(book.is_reserved)
            book.release()
            continue
        if book.is_reserved and (not book.is_borrowed or book.reserved_by == book.borrowed_by
                                 or book.reserved_by not in by_id):
            book.reserved_by = None
            dropped += 1
        if book.is_borrowed:
            lent_to[book.id] = book.borrowed_by
    for user in users:
        for record in user.account.records:
            if lent_to.get(record.book_id) != user.id:
                dropped += user.account.remove_records(record.book_id)
    if dropped:
        logger.warning("Dropped %d stale book/user links while loading", dropped)
    return dropped
