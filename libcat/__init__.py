"""Library Catalog - core application package

This package contains:
- Book copies and their derived status (book.py)
- Borrow records and fines (account.py)
- Users and per-role borrowing policy (user.py)
- In-memory record store (store.py)
- Borrow / reserve / return / fine rules (circulation.py)
- SQLite persistence and default data (database.py, seed.py)
- Transaction log (transactions.py)
- Library facade (library.py)
- CLI and interactive menu (main.py)
"""

from .book import Book, BookStatus
from .account import Account, BorrowRecord
from .user import Role, RolePolicy, POLICIES, User
from .store import RecordStore
from .circulation import (
    LibraryError,
    NotFoundError,
    PolicyViolation,
    InvalidStateError,
    InputMalformed,
    AuthenticationError,
    StorageError,
    ReturnReceipt,
)
from .library import Library

__all__ = [
    # model
    "Book",
    "BookStatus",
    "Account",
    "BorrowRecord",
    "Role",
    "RolePolicy",
    "POLICIES",
    "User",
    "RecordStore",
    # errors
    "LibraryError",
    "NotFoundError",
    "PolicyViolation",
    "InvalidStateError",
    "InputMalformed",
    "AuthenticationError",
    "StorageError",
    "ReturnReceipt",
    # facade
    "Library",
]
