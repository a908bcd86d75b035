from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple

SECONDS_PER_DAY = 86400


@dataclass
class BorrowRecord:
    book_id: int
    borrowed_at: datetime
    days: int

    def elapsed_days(self, now: Optional[datetime] = None) -> int:
        """Whole days since the borrow, rounded down."""
        now = now or datetime.now()
        return int((now - self.borrowed_at).total_seconds() // SECONDS_PER_DAY)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.elapsed_days(now) > self.days


class Account:
    """Borrow records and running fine for one user."""

    def __init__(self, records: Optional[List[BorrowRecord]] = None, fine: float = 0.0) -> None:
        self._records: List[BorrowRecord] = list(records or [])
        self.fine = fine

    @property
    def records(self) -> Tuple[BorrowRecord, ...]:
        return tuple(self._records)

    def add_record(self, book_id: int, days: int, now: Optional[datetime] = None) -> BorrowRecord:
        record = BorrowRecord(book_id=book_id, borrowed_at=now or datetime.now(), days=days)
        self._records.append(record)
        return record

    def find_record(self, book_id: int) -> Optional[BorrowRecord]:
        # first match in insertion order
        for record in self._records:
            if record.book_id == book_id:
                return record
        return None

    def remove_records(self, book_id: int) -> int:
        """Drop every record for ``book_id``; returns how many went."""
        before = len(self._records)
        self._records = [r for r in self._records if r.book_id != book_id]
        return before - len(self._records)

    def add_fine(self, amount: float) -> None:
        self.fine += amount

    def reset_fine(self) -> None:
        self.fine = 0.0

    def snapshot(self) -> Tuple[Tuple[BorrowRecord, ...], float]:
        """Copy of the records and fine, for `restore`."""
        return tuple(replace(r) for r in self._records), self.fine

    def restore(self, state: Tuple[Tuple[BorrowRecord, ...], float]) -> None:
        records, self.fine = state
        self._records = [replace(r) for r in records]

    def reset_timestamps(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        for record in self._records:
            record.borrowed_at = now
