import sqlite3
from datetime import datetime, timedelta

import pytest

from libcat.book import BookStatus
from libcat.circulation import (
    AuthenticationError,
    InputMalformed,
    InvalidStateError,
    NotFoundError,
    PolicyViolation,
    StorageError,
)
from libcat.library import Library
from libcat.user import Role

T0 = datetime(2024, 5, 1, 8, 30, 0)


def reopen(lib):
    return Library(db_file=lib.database.db_file, log_file=lib.log.path)


def test_seeded_on_first_start(lib):
    assert len(lib.list_books()) == 50
    assert len(lib.list_users()) == 11
    assert lib.find_book(50).title == "Refactoring"
    assert lib.find_user(9).role is Role.LIBRARIAN


def test_borrow_is_saved_and_logged(lib, alice):
    lib.borrow(alice, 1, 10, now=T0)

    entries = lib.transaction_log()
    assert len(entries) == 1
    assert entries[0].startswith("[")
    assert entries[0].endswith('Student alice borrowed book "The C++ Programming Language" for 10 days.')

    again = reopen(lib)
    assert again.find_book(1).borrowed_by == alice.id
    (record,) = again.find_user(alice.id).account.records
    assert record.book_id == 1
    assert record.days == 10
    assert record.borrowed_at == T0


def test_failed_operation_writes_nothing(lib, alice):
    with pytest.raises(PolicyViolation):
        lib.borrow(alice, 1, 99, now=T0)
    assert lib.transaction_log() == []
    assert reopen(lib).find_book(1).borrowed_by is None


def test_return_with_fine_is_persisted(lib, alice):
    lib.borrow(alice, 1, 5, now=T0)
    receipt = lib.return_book(alice, 1, now=T0 + timedelta(days=20))
    assert receipt.fine == 50

    again = reopen(lib)
    assert again.find_user(alice.id).account.fine == 50
    assert again.find_user(alice.id).account.records == ()
    assert again.find_book(1).borrowed_by is None
    assert lib.transaction_log()[-1].endswith(
        'Student alice returned book "The C++ Programming Language"; kept for 20 days (allowed: 15).'
    )


def test_reservation_hand_off_is_logged_and_persisted(lib, alice, bob):
    lib.borrow(alice, 1, 5, now=T0)
    lib.reserve(bob, 1)
    lib.return_book(alice, 1, now=T0 + timedelta(days=2))

    entries = lib.transaction_log()
    assert entries[1].endswith('Student bob reserved book "The C++ Programming Language".')
    assert "automatically borrowed by reserving user bob for 15 days" in entries[2]
    assert "alice returned book" in entries[3]

    again = reopen(lib)
    book = again.find_book(1)
    assert book.borrowed_by == bob.id
    assert book.reserved_by is None
    assert again.find_user(bob.id).account.records[0].days == 15


def test_pay_fine_logs_only_when_something_was_paid(lib, alice):
    assert lib.pay_fine(alice) == 0
    assert lib.transaction_log() == []

    lib.borrow(alice, 1, 5, now=T0)
    lib.return_book(alice, 1, now=T0 + timedelta(days=17))
    assert lib.pay_fine(alice, now=T0 + timedelta(days=18)) == 20
    assert lib.transaction_log()[-1].endswith("Student alice paid fine of 20 rupees.")
    assert reopen(lib).find_user(alice.id).account.fine == 0


def test_account_summary(lib, alice, bob):
    lib.borrow(alice, 1, 10, now=T0)
    lib.borrow(alice, 2, 15, now=T0)
    lib.borrow(bob, 6, 5, now=T0)
    lib.reserve(alice, 6)

    summary = lib.account_summary(alice, now=T0 + timedelta(days=12))
    assert summary["user_id"] == alice.id
    assert summary["role"] == "Student"
    assert [r["book_id"] for r in summary["borrowed"]] == [2]
    assert [r["book_id"] for r in summary["overdue"]] == [1]
    assert summary["overdue"][0]["elapsed_days"] == 12
    assert summary["reserved"] == [{"book_id": 6, "title": "Effective C++"}]
    assert summary["fine"] == 0
    assert summary["accrued_fine"] == 0

    later = lib.account_summary(alice, now=T0 + timedelta(days=20))
    assert later["accrued_fine"] == 100


def test_borrowed_and_reserved_lookups(lib, alice, bob):
    lib.borrow(alice, 3, 5, now=T0)
    lib.reserve(bob, 3)
    assert [b.id for b in lib.borrowed_books_for(alice)] == [3]
    assert [b.id for b in lib.reserved_books_for(bob)] == [3]
    assert lib.reserved_books_for(alice) == []


# --- book administration ---

def test_add_book_gets_next_id(lib):
    book = lib.add_book("Fluent Python", "Luciano Ramalho", "O'Reilly", 2022, "978-1-4920-5635-5")
    assert book.id == 51
    assert book.isbn == "9781492056355"
    assert lib.transaction_log()[-1].endswith("Book added: Fluent Python")
    assert reopen(lib).find_book(51).title == "Fluent Python"


@pytest.mark.parametrize("title, year, isbn", [
    ("", 2020, "9781492056355"),
    ("Fluent Python", 0, "9781492056355"),
    ("Fluent Python", 2020, "123"),
])
def test_add_book_rejects_bad_input(lib, title, year, isbn):
    with pytest.raises(InputMalformed):
        lib.add_book(title, "Someone", "Someone Press", year, isbn)
    assert len(lib.list_books()) == 50


def test_remove_book(lib, alice):
    lib.remove_book(50)
    assert lib.find_book(50) is None
    assert lib.transaction_log()[-1].endswith("Book removed (ID): 50")
    with pytest.raises(NotFoundError):
        lib.remove_book(50)

    lib.borrow(alice, 1, 5, now=T0)
    with pytest.raises(InvalidStateError):
        lib.remove_book(1)


def test_update_book_skips_blank_fields(lib):
    book = lib.update_book(1, title="  ", publisher="Pearson", year=2014, isbn="")
    assert book.title == "The C++ Programming Language"
    assert book.publisher == "Pearson"
    assert book.year == 2014
    assert book.isbn == "9780321563842"
    assert lib.transaction_log()[-1].endswith("Librarian updated book (ID): 1")
    with pytest.raises(NotFoundError):
        lib.update_book(999, title="Nothing")


# --- user administration and sessions ---

def test_add_user_and_login(lib):
    user = lib.add_user("zoe", "secret", Role.FACULTY)
    assert user.id == 12
    assert lib.login("zoe", "secret").role is Role.FACULTY
    assert lib.transaction_log()[-1].endswith("User added: zoe")
    assert reopen(lib).login("zoe", "secret").id == 12


def test_add_user_rejects_librarian_and_duplicates(lib):
    with pytest.raises(PolicyViolation):
        lib.add_user("newlib", "pw", Role.LIBRARIAN)
    with pytest.raises(InputMalformed, match="taken"):
        lib.add_user("alice", "pw", Role.STUDENT)
    with pytest.raises(InputMalformed):
        lib.add_user("with space", "pw", Role.STUDENT)


def test_register_requires_matching_passwords(lib):
    with pytest.raises(InputMalformed, match="do not match"):
        lib.register("zoe", "one", "two", Role.STUDENT)
    user = lib.register("zoe", "one", "one", Role.STUDENT)
    assert user.role is Role.STUDENT


def test_remove_user_rules(lib, librarian, alice):
    with pytest.raises(PolicyViolation):
        lib.remove_user(librarian, librarian.id)
    with pytest.raises(NotFoundError):
        lib.remove_user(librarian, 999)

    lib.borrow(alice, 1, 5, now=T0)
    with pytest.raises(InvalidStateError):
        lib.remove_user(librarian, alice.id)

    removed = lib.remove_user(librarian, 2)
    assert removed.username == "bob"
    assert lib.find_user(2) is None
    assert lib.transaction_log()[-1].endswith("User removed: bob")


def test_removed_reserver_does_not_receive_the_book(lib, librarian, alice, bob):
    lib.borrow(alice, 1, 5, now=T0)
    lib.reserve(bob, 1)
    lib.remove_user(librarian, bob.id)
    receipt = lib.return_book(alice, 1, now=T0)
    assert receipt.handed_off_to is None
    assert reopen(lib).find_book(1).borrowed_by is None


def test_removed_users_reservation_does_not_pass_to_next_new_user(lib, librarian, alice):
    lib.borrow(alice, 1, 5, now=T0)
    zoe = lib.register("zoe", "pw", "pw", Role.STUDENT)
    lib.reserve(zoe, 1)
    lib.remove_user(librarian, zoe.id)
    assert lib.find_book(1).reserved_by is None

    dan = lib.register("dan", "pw", "pw", Role.STUDENT)
    assert dan.id == zoe.id
    assert lib.find_book(1).status_for(dan.id) is BookStatus.BORROWED
    receipt = lib.return_book(alice, 1, now=T0)
    assert receipt.handed_off_to is None
    assert dan.account.records == ()
    assert reopen(lib).find_book(1).reserved_by is None


def failing_save(*args, **kwargs):
    raise sqlite3.OperationalError("disk I/O error")


def test_failed_save_undoes_the_borrow(lib, alice, monkeypatch):
    monkeypatch.setattr(lib.database, "save", failing_save)
    with pytest.raises(StorageError):
        lib.borrow(alice, 1, 10, now=T0)

    assert lib.transaction_log() == []
    assert lib.find_book(1).borrowed_by is None
    assert alice.account.records == ()
    assert reopen(lib).find_book(1).borrowed_by is None


def test_failed_save_undoes_return_and_admin_changes(lib, alice, bob, librarian, monkeypatch):
    lib.borrow(alice, 1, 5, now=T0)
    lib.reserve(bob, 1)
    monkeypatch.setattr(lib.database, "save", failing_save)

    with pytest.raises(StorageError):
        lib.return_book(alice, 1, now=T0 + timedelta(days=20))
    book = lib.find_book(1)
    assert (book.borrowed_by, book.reserved_by) == (alice.id, bob.id)
    assert [r.book_id for r in alice.account.records] == [1]
    assert alice.account.fine == 0
    assert bob.account.records == ()

    with pytest.raises(StorageError):
        lib.remove_user(librarian, 3)
    assert lib.find_user(3).username == "charlie"

    with pytest.raises(StorageError):
        lib.update_user(alice.id, username="alicia")
    assert alice.username == "alice"
    assert len(lib.transaction_log()) == 2


def test_update_user(lib, alice):
    lib.update_user(alice.id, username="alicia", password="")
    assert lib.login("alicia", "pass1").id == alice.id
    with pytest.raises(InputMalformed):
        lib.update_user(alice.id, username="bob")
    lib.update_user(alice.id, username="alicia")


def test_login_failures(lib):
    with pytest.raises(AuthenticationError):
        lib.login("alice", "wrong")
    with pytest.raises(AuthenticationError):
        lib.login("nobody", "pass1")
    with pytest.raises(PolicyViolation, match="does not match"):
        lib.login("alice", "pass1", Role.FACULTY)
    assert lib.login(" alice ", "pass1", Role.STUDENT).username == "alice"
