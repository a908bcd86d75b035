from __future__ import annotations

from typing import List

from .book import Book
from .user import Role, User

COPIES_PER_TITLE = 5

DEFAULT_TITLES = [
    ("The C++ Programming Language", "Bjarne Stroustrup", "Addison-Wesley", 2013, "9780321563842"),
    ("Effective C++", "Scott Meyers", "O'Reilly", 2005, "9780321334879"),
    ("Clean Code", "Robert C. Martin", "Prentice Hall", 2008, "9780132350884"),
    ("Design Patterns", "Erich Gamma et al.", "Addison-Wesley", 1994, "9780201633610"),
    ("Modern Operating Systems", "Andrew Tanenbaum", "Pearson", 2014, "9780133591620"),
    ("Introduction to Algorithms", "Cormen et al.", "MIT Press", 2009, "9780262033848"),
    ("Artificial Intelligence: A Modern Approach", "Stuart Russell", "Pearson", 2009, "9780136042594"),
    ("The Pragmatic Programmer", "Andrew Hunt", "Addison-Wesley", 1999, "9780201616224"),
    ("Code Complete", "Steve McConnell", "Microsoft Press", 2004, "9780735619678"),
    ("Refactoring", "Martin Fowler", "Addison-Wesley", 1999, "9780201485677"),
]

# (username, password, role); ids are assigned in this order starting at 1
DEFAULT_USERS = [
    ("alice", "pass1", Role.STUDENT),
    ("bob", "pass2", Role.STUDENT),
    ("charlie", "pass3", Role.STUDENT),
    ("diana", "pass4", Role.STUDENT),
    ("eric", "pass5", Role.STUDENT),
    ("profX", "pass6", Role.FACULTY),
    ("drY", "pass7", Role.FACULTY),
    ("mrZ", "pass8", Role.FACULTY),
    ("librarian1", "admin1", Role.LIBRARIAN),
    ("librarian2", "admin2", Role.LIBRARIAN),
    ("librarian3", "admin3", Role.LIBRARIAN),
]


def default_books() -> List[Book]:
    books: List[Book] = []
    next_id = 1
    for title, author, publisher, year, isbn in DEFAULT_TITLES:
        for _ in range(COPIES_PER_TITLE):
            books.append(Book(next_id, title, author, publisher, year, isbn))
            next_id += 1
    return books


def default_users() -> List[User]:
    return [
        User(id=i, username=name, password=password, role=role)
        for i, (name, password, role) in enumerate(DEFAULT_USERS, 1)
    ]
