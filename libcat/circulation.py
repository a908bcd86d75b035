"""Borrow, reserve, return and fine rules.

Every function here works purely on in-memory objects: preconditions are
checked first and nothing is touched until all of them pass. Writing the
result to disk and recording the transaction is the caller's job (see
``libcat.library.Library``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .account import SECONDS_PER_DAY, Account, BorrowRecord
from .book import Book
from .store import RecordStore
from .user import Role, User

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for every rejected library operation."""


class NotFoundError(LibraryError, LookupError):
    pass


class PolicyViolation(LibraryError, ValueError):
    pass


class InvalidStateError(LibraryError, ValueError):
    pass


class InputMalformed(LibraryError, ValueError):
    pass


class AuthenticationError(LibraryError):
    pass


class StorageError(LibraryError):
    """A change could not be written to disk and was undone."""


@dataclass
class ReturnReceipt:
    book: Book
    elapsed_days: int
    allowed_days: int
    overdue_days: int = 0
    fine: float = 0.0
    long_overdue: bool = False
    handed_off_to: Optional[User] = None


def _get_book(store: RecordStore, book_id: int) -> Book:
    book = store.find_book_by_id(book_id)
    if book is None:
        raise NotFoundError(f"Book with ID {book_id} not found.")
    return book


def _long_overdue(record: BorrowRecord, grace_days: int, now: datetime) -> bool:
    waited = (now - record.borrowed_at).total_seconds()
    return waited > (record.days + grace_days) * SECONDS_PER_DAY


def borrow(store: RecordStore, user: User, book_id: int, days: int,
           now: Optional[datetime] = None) -> BorrowRecord:
    now = now or datetime.now()
    policy = user.policy
    account = user.account

    if not policy.can_borrow:
        raise PolicyViolation(f"{user.role.value}s cannot borrow books.")

    if user.role is Role.STUDENT and account.fine > 0:
        raise PolicyViolation(
            f"Outstanding fine of {account.fine:g}. Please pay the fine before borrowing."
        )
    if policy.overdue_block_days is not None:
        for record in account.records:
            if _long_overdue(record, policy.overdue_block_days, now):
                raise PolicyViolation(
                    f"You have a book overdue by more than {policy.overdue_block_days} days. "
                    "You cannot borrow new books until you return it."
                )

    if len(account.records) >= policy.max_books:
        raise PolicyViolation(f"Borrowing limit reached ({policy.max_books} books maximum).")

    book = _get_book(store, book_id)
    if book.is_borrowed:
        raise InvalidStateError(f"Book {book_id} is not available.")

    if days < 1:
        raise InputMalformed("Number of days must be at least 1.")
    if days > policy.max_days:
        raise PolicyViolation(
            f"Borrowing period exceeds the maximum of {policy.max_days} days for {user.role.value.lower()}s."
        )

    book.borrowed_by = user.id
    record = account.add_record(book.id, days, now)
    logger.debug("user %s borrowed book %s for %s days", user.id, book.id, days)
    return record


def reserve(store: RecordStore, user: User, book_id: int) -> Book:
    if not user.policy.can_borrow:
        raise PolicyViolation(f"{user.role.value}s cannot reserve books.")

    book = _get_book(store, book_id)
    if not book.is_borrowed:
        raise InvalidStateError("You can only reserve a book that is currently borrowed.")
    if book.is_reserved:
        raise InvalidStateError("Book is already reserved by another user.")
    if book.borrowed_by == user.id:
        raise PolicyViolation("You have already borrowed this book; reservation not allowed.")

    book.reserved_by = user.id
    logger.debug("user %s reserved book %s", user.id, book.id)
    return book


def return_book(store: RecordStore, user: User, book_id: int,
                now: Optional[datetime] = None) -> ReturnReceipt:
    now = now or datetime.now()
    book = _get_book(store, book_id)
    account = user.account
    record = account.find_record(book.id)
    if record is None:
        raise InvalidStateError("You did not borrow this book.")

    elapsed = record.elapsed_days(now)
    policy = user.policy

    if policy.fine_threshold_days is not None:
        # Students: fixed threshold, independent of the days they asked for
        allowed = policy.fine_threshold_days
        receipt = ReturnReceipt(book=book, elapsed_days=elapsed, allowed_days=allowed)
        if elapsed > allowed:
            receipt.overdue_days = elapsed - allowed
            receipt.fine = receipt.overdue_days * policy.fine_rate
            account.add_fine(receipt.fine)
    else:
        allowed = record.days
        receipt = ReturnReceipt(book=book, elapsed_days=elapsed, allowed_days=allowed)
        if elapsed > allowed:
            receipt.overdue_days = elapsed - allowed
            if policy.overdue_block_days is not None:
                receipt.long_overdue = receipt.overdue_days > policy.overdue_block_days

    if book.is_reserved:
        holder = store.find_user_by_id(book.reserved_by)
        if holder is not None:
            book.borrowed_by = holder.id
            book.reserved_by = None
            holder.account.add_record(book.id, holder.policy.handoff_days, now)
            receipt.handed_off_to = holder
        else:
            logger.info("reserving user %s for book %s no longer exists", book.reserved_by, book.id)
            book.release()
    else:
        book.release()

    account.remove_records(book.id)
    return receipt


def pay_fine(user: User, now: Optional[datetime] = None) -> float:
    """Clear the user's fine and return how much was paid (0 if none was due)."""
    account = user.account
    amount = account.fine
    if amount <= 0:
        return 0.0
    account.reset_fine()
    if user.role is Role.STUDENT:
        account.reset_timestamps(now or datetime.now())
    return amount


def accrued_fine(user: User, now: Optional[datetime] = None) -> float:
    """Fine building up on books the user still holds."""
    policy = user.policy
    if policy.fine_threshold_days is None:
        return 0.0
    total = 0.0
    for record in user.account.records:
        over = record.elapsed_days(now) - policy.fine_threshold_days
        if over > 0:
            total += over * policy.fine_rate
    return total


def current_records(account: Account, now: Optional[datetime] = None) -> List[BorrowRecord]:
    """Records still inside the days asked for at borrow time."""
    return [r for r in account.records if not r.is_overdue(now)]


def overdue_records(account: Account, now: Optional[datetime] = None) -> List[BorrowRecord]:
    return [r for r in account.records if r.is_overdue(now)]
