from __future__ import annotations

from typing import Iterable, List, Optional

from .book import Book
from .user import User


class RecordStore:
    """In-memory Book and User collections for one session."""

    def __init__(self, books: Optional[Iterable[Book]] = None, users: Optional[Iterable[User]] = None) -> None:
        self.books: List[Book] = list(books or [])
        self.users: List[User] = list(users or [])

    # books
    def find_book_by_id(self, book_id: int) -> Optional[Book]:
        for book in self.books:
            if book.id == book_id:
                return book
        return None

    def next_book_id(self) -> int:
        return max((b.id for b in self.books), default=0) + 1

    def add_book(self, book: Book) -> None:
        self.books.append(book)

    def remove_book(self, book_id: int) -> Optional[Book]:
        book = self.find_book_by_id(book_id)
        if book is not None:
            self.books = [b for b in self.books if b.id != book_id]
        return book

    def reserved_books_for(self, user_id: int) -> List[Book]:
        return [b for b in self.books if b.reserved_by == user_id]

    def borrowed_books_for(self, user: User) -> List[Book]:
        """Books behind each of the user's borrow records, in record order."""
        books = []
        for record in user.account.records:
            book = self.find_book_by_id(record.book_id)
            if book is not None:
                books.append(book)
        return books

    # users
    def find_user_by_id(self, user_id: int) -> Optional[User]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def find_user_by_username(self, username: str) -> Optional[User]:
        name = username.strip()
        for user in self.users:
            if user.username == name:
                return user
        return None

    def next_user_id(self) -> int:
        return max((u.id for u in self.users), default=0) + 1

    def add_user(self, user: User) -> None:
        self.users.append(user)

    def remove_user(self, user_id: int) -> Optional[User]:
        user = self.find_user_by_id(user_id)
        if user is not None:
            self.users = [u for u in self.users if u.id != user_id]
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        name = username.strip()
        for user in self.users:
            if user.username == name and user.check_password(password):
                return user
        return None
