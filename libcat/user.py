from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .account import Account


class Role(Enum):
    STUDENT = "Student"
    FACULTY = "Faculty"
    LIBRARIAN = "Librarian"

    @classmethod
    def parse(cls, raw: str) -> "Role":
        """Accept 'student', 'Student', 'STUDENT' and the like."""
        for role in cls:
            if role.value.lower() == (raw or "").strip().lower():
                return role
        raise ValueError(f"Unknown role: {raw!r}")


@dataclass(frozen=True)
class RolePolicy:
    can_borrow: bool
    max_books: int = 0
    max_days: int = 0
    fine_rate: float = 0.0
    # Students are fined past this many days no matter what they asked for
    fine_threshold_days: Optional[int] = None
    # Faculty lose borrowing rights once a book is this far past its own due date
    overdue_block_days: Optional[int] = None
    # Loan length given when a reservation turns into a borrow
    handoff_days: int = 15


POLICIES: Dict[Role, RolePolicy] = {
    Role.STUDENT: RolePolicy(
        can_borrow=True,
        max_books=3,
        max_days=15,
        fine_rate=10.0,
        fine_threshold_days=15,
        handoff_days=15,
    ),
    Role.FACULTY: RolePolicy(
        can_borrow=True,
        max_books=5,
        max_days=30,
        overdue_block_days=60,
        handoff_days=30,
    ),
    Role.LIBRARIAN: RolePolicy(can_borrow=False),
}


class User:
    """A library member of any role, together with their account."""

    def __init__(self, id: int, username: str, password: str, role: Role = Role.STUDENT,
                 account: Optional[Account] = None) -> None:
        self.id = id
        self.username = username.strip()
        self.password = password.strip()
        self.role = role
        self.account = account if account is not None else Account()

    def __repr__(self) -> str:  # pragma: no cover
        return f"User(id={self.id!r}, username={self.username!r}, role={self.role.value})"

    @property
    def policy(self) -> RolePolicy:
        return POLICIES[self.role]

    def check_password(self, password: str) -> bool:
        return self.password == password.strip()
