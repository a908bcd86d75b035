from datetime import datetime, timedelta

from libcat.account import Account, BorrowRecord

T0 = datetime(2024, 1, 1, 9, 0, 0)


def test_elapsed_days_rounds_down():
    record = BorrowRecord(book_id=1, borrowed_at=T0, days=5)
    assert record.elapsed_days(T0) == 0
    assert record.elapsed_days(T0 + timedelta(hours=23, minutes=59)) == 0
    assert record.elapsed_days(T0 + timedelta(days=1)) == 1
    assert record.elapsed_days(T0 + timedelta(days=6, hours=12)) == 6


def test_record_is_overdue_only_after_its_days():
    record = BorrowRecord(book_id=1, borrowed_at=T0, days=5)
    assert not record.is_overdue(T0 + timedelta(days=5))
    assert record.is_overdue(T0 + timedelta(days=6))


def test_records_are_kept_in_insertion_order():
    account = Account()
    account.add_record(3, 10, T0)
    account.add_record(1, 5, T0 + timedelta(days=1))
    assert [r.book_id for r in account.records] == [3, 1]
    assert account.find_record(1).days == 5
    assert account.find_record(2) is None


def test_records_view_is_read_only():
    account = Account()
    account.add_record(1, 5, T0)
    snapshot = account.records
    account.add_record(2, 5, T0)
    assert len(snapshot) == 1
    assert len(account.records) == 2


def test_remove_records_drops_every_match():
    account = Account()
    account.add_record(1, 5, T0)
    account.add_record(2, 5, T0)
    account.add_record(1, 7, T0)
    assert account.remove_records(1) == 2
    assert [r.book_id for r in account.records] == [2]
    assert account.remove_records(9) == 0


def test_fine_and_timestamps():
    account = Account()
    account.add_record(1, 5, T0)
    account.add_fine(30)
    account.add_fine(20)
    assert account.fine == 50
    account.reset_fine()
    assert account.fine == 0
    later = T0 + timedelta(days=30)
    account.reset_timestamps(later)
    assert account.records[0].borrowed_at == later


def test_restore_puts_records_and_fine_back():
    account = Account()
    account.add_record(1, 5, T0)
    state = account.snapshot()

    account.add_fine(40)
    account.reset_timestamps(T0 + timedelta(days=9))
    account.remove_records(1)
    account.add_record(2, 3, T0)

    account.restore(state)
    assert account.fine == 0
    assert [(r.book_id, r.borrowed_at) for r in account.records] == [(1, T0)]
