from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from libraryms.core.clock import FixedClock
from libraryms.core.database import init_db
from libraryms.core.exceptions import ConcurrencyError
from libraryms.repositories.sql import SqlAlchemyUnitOfWork
from libraryms.schemas.schemas import (
    BookCopyCreate,
    BookCreate,
    BorrowCreate,
    CategoryCreate,
    ReaderCreate,
)
from libraryms.use_cases.books import CreateBook
from libraryms.use_cases.borrows import BorrowBook, RenewBorrow, ReturnBook
from libraryms.use_cases.categories import CreateCategory
from libraryms.use_cases.copies import CreateBookCopy
from libraryms.use_cases.readers import CreateReader

NOW = datetime(2024, 3, 1, 9, 0, 0)


class InterleavingClock(FixedClock):
    """Runs ``competing`` the first time the caller asks for the time.

    Use cases read the clock after loading their rows, so the competing
    operation commits between the load and the write.
    """

    def __init__(self, moment, competing):
        super().__init__(moment)
        self.competing = competing

    def now(self):
        if self.competing is not None:
            competing, self.competing = self.competing, None
            competing()
        return super().now()


@pytest.fixture
def file_sessions(tmp_path):
    # separate connections, so each session sees only committed rows
    engine = create_engine(f"sqlite:///{tmp_path / 'library.db'}")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def run(session_factory, action):
    db = session_factory()
    try:
        return action(SqlAlchemyUnitOfWork(db))
    finally:
        db.close()


def seed_copy(session_factory, clock, total_copies=1):
    def action(uow):
        category = CreateCategory(uow, clock).execute(CategoryCreate(name="Poetry"))
        book = CreateBook(uow, clock).execute(BookCreate(
            title="Leaves of Grass", author="Walt Whitman", publisher="Self",
            category_id=category.id))
        copy = CreateBookCopy(uow, clock).execute(
            BookCopyCreate(book_id=book.id, type="PHYSICAL", total_copies=total_copies))
        return copy.id
    return run(session_factory, action)


def seed_reader(session_factory, clock, user_id="walt"):
    def action(uow):
        return CreateReader(uow, clock).execute(ReaderCreate(user_id=user_id, name=user_id)).id
    return run(session_factory, action)


def lend(session_factory, clock, copy_id, reader_id):
    return run(session_factory, lambda uow: BorrowBook(uow, clock=clock).execute(
        BorrowCreate(book_copy_id=copy_id, reader_id=reader_id)).id)


def stock(session_factory, copy_id):
    def action(uow):
        copy = uow.copies.find_by_id(copy_id)
        active = uow.borrows.count(book_copy_id=copy_id, status="BORROWED")
        return copy.available_copies, active
    return run(session_factory, action)


def test_stale_copy_write_is_rejected(file_sessions):
    clock = FixedClock(NOW)
    copy_id = seed_copy(file_sessions, clock)

    first, second = file_sessions(), file_sessions()
    try:
        mine = SqlAlchemyUnitOfWork(first)
        theirs = SqlAlchemyUnitOfWork(second)

        # both load the last copy on the shelf
        copy_a = mine.copies.find_by_id(copy_id)
        copy_b = theirs.copies.find_by_id(copy_id)

        clock.advance(minutes=1)
        copy_b.borrow(clock.now())
        theirs.copies.save(copy_b)
        theirs.commit()

        copy_a.borrow(clock.now())
        with pytest.raises(ConcurrencyError):
            mine.copies.save(copy_a)
        mine.rollback()

        assert mine.copies.find_by_id(copy_id).available_copies == 0
    finally:
        first.close()
        second.close()


def test_racing_borrows_of_last_copy_lend_it_once(file_sessions):
    clock = FixedClock(NOW)
    copy_id = seed_copy(file_sessions, clock)
    walt = seed_reader(file_sessions, clock, "walt")
    emily = seed_reader(file_sessions, clock, "emily")

    racing = InterleavingClock(NOW, lambda: lend(file_sessions, clock, copy_id, emily))
    with pytest.raises(ConcurrencyError):
        run(file_sessions, lambda uow: BorrowBook(uow, clock=racing).execute(
            BorrowCreate(book_copy_id=copy_id, reader_id=walt)))

    assert stock(file_sessions, copy_id) == (0, 1)


def test_returning_same_record_twice_concurrently_restores_stock_once(file_sessions):
    clock = FixedClock(NOW)
    copy_id = seed_copy(file_sessions, clock, total_copies=3)
    reader_id = seed_reader(file_sessions, clock)
    first = lend(file_sessions, clock, copy_id, reader_id)
    lend(file_sessions, clock, copy_id, reader_id)
    assert stock(file_sessions, copy_id) == (1, 2)

    clock.advance(days=3)
    racing = InterleavingClock(clock.now(), lambda: run(
        file_sessions, lambda uow: ReturnBook(uow, clock).execute(first)))
    with pytest.raises(ConcurrencyError):
        run(file_sessions, lambda uow: ReturnBook(uow, racing).execute(first))

    # one copy back on the shelf, one still out
    assert stock(file_sessions, copy_id) == (2, 1)


def test_concurrent_renewals_do_not_lose_an_update(file_sessions):
    clock = FixedClock(NOW)
    copy_id = seed_copy(file_sessions, clock)
    reader_id = seed_reader(file_sessions, clock)
    record_id = lend(file_sessions, clock, copy_id, reader_id)

    racing = InterleavingClock(NOW, lambda: run(
        file_sessions, lambda uow: RenewBorrow(uow, clock=clock).execute(record_id)))
    with pytest.raises(ConcurrencyError):
        run(file_sessions, lambda uow: RenewBorrow(uow, clock=racing).execute(record_id))

    record = run(file_sessions, lambda uow: uow.borrows.find_by_id(record_id))
    assert record.renew_count == 1


def test_overdue_sweep_invalidates_a_loaded_record(file_sessions):
    clock = FixedClock(NOW)
    copy_id = seed_copy(file_sessions, clock)
    reader_id = seed_reader(file_sessions, clock)
    record_id = lend(file_sessions, clock, copy_id, reader_id)

    clock.advance(days=31)
    session = file_sessions()
    try:
        mine = SqlAlchemyUnitOfWork(session)
        record = mine.borrows.find_by_id_for_update(record_id)

        def sweep(uow):
            assert uow.borrows.update_overdue_status(clock.now()) == 1
            uow.commit()
        run(file_sessions, sweep)

        record.renew(15, 2, NOW)
        with pytest.raises(ConcurrencyError):
            mine.borrows.save(record)
        mine.rollback()
    finally:
        session.close()

    record = run(file_sessions, lambda uow: uow.borrows.find_by_id(record_id))
    assert record.status.value == "OVERDUE"
