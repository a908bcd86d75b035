from __future__ import annotations

from enum import Enum


class BookStatus(Enum):
    AVAILABLE = "Available"
    BORROWED = "Borrowed"
    RESERVED = "Reserved"
    RESERVED_FOR_YOU = "Reserved (For You)"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Book:
    """A single copy of a title held by the library.

    ``borrowed_by`` and ``reserved_by`` are user ids or ``None``. The status
    shown to users is never stored; it is recomputed from those two fields.
    """

    def __init__(self, id: int, title: str, author: str, publisher: str, year: int, isbn: str,
                 borrowed_by: int | None = None, reserved_by: int | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.publisher = publisher.strip()
        self.year = year
        self.isbn = isbn.strip()
        self.borrowed_by = borrowed_by or None
        self.reserved_by = reserved_by or None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.title} ({self.publisher}, {self.year})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r}, borrowed_by={self.borrowed_by!r}, reserved_by={self.reserved_by!r})"

    @property
    def is_borrowed(self) -> bool:
        return self.borrowed_by is not None

    @property
    def is_reserved(self) -> bool:
        return self.reserved_by is not None

    @property
    def status(self) -> BookStatus:
        """Status as seen by nobody in particular (administrative views)."""
        if not self.is_borrowed:
            return BookStatus.AVAILABLE
        if self.is_reserved:
            return BookStatus.RESERVED
        return BookStatus.BORROWED

    def status_for(self, viewer_id: int | None) -> BookStatus:
        """Status as seen by ``viewer_id``."""
        if not self.is_borrowed:
            return BookStatus.AVAILABLE
        if self.borrowed_by == viewer_id:
            return BookStatus.BORROWED
        if self.is_reserved:
            if self.reserved_by == viewer_id:
                return BookStatus.RESERVED_FOR_YOU
            return BookStatus.RESERVED
        return BookStatus.BORROWED

    def release(self) -> None:
        """Mark the copy as back on the shelf."""
        self.borrowed_by = None
        self.reserved_by = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "year": self.year,
            "isbn": self.isbn,
            "borrowed_by": self.borrowed_by,
            "reserved_by": self.reserved_by,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # Stored rows use 0 for "nobody"
        return Book(
            id=int(data["id"]),
            title=data["title"],
            author=data.get("author") or "",
            publisher=data.get("publisher") or "",
            year=int(data.get("year") or 0),
            isbn=data.get("isbn") or "",
            borrowed_by=int(data.get("borrowed_by") or 0) or None,
            reserved_by=int(data.get("reserved_by") or 0) or None,
        )
