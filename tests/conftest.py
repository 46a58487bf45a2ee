import os

# the app creates its tables at import; keep that off the working directory
os.environ.setdefault("LIBRARY_DB", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from libraryms.api import routes
from libraryms.core.clock import FixedClock
from libraryms.core.database import get_db, init_db
from libraryms.repositories.sql import SqlAlchemyUnitOfWork
from libraryms.schemas.schemas import BookCopyCreate, BookCreate, CategoryCreate, ReaderCreate
from libraryms.use_cases.books import CreateBook
from libraryms.use_cases.categories import CreateCategory
from libraryms.use_cases.copies import CreateBookCopy
from libraryms.use_cases.readers import CreateReader

NOW = datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False},
                           poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def uow(db):
    return SqlAlchemyUnitOfWork(db)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def client(session_factory, clock):
    from libraryms.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[routes.get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---- seed helpers for use-case tests
@pytest.fixture
def category(uow, clock):
    return CreateCategory(uow, clock).execute(CategoryCreate(name="Computer Science"))


@pytest.fixture
def book(uow, clock, category):
    return CreateBook(uow, clock).execute(BookCreate(
        title="Refactoring", author="Martin Fowler", publisher="Addison-Wesley",
        category_id=category.id, isbn="978-0-13-475759-9"))


@pytest.fixture
def physical_copy(uow, clock, book):
    return CreateBookCopy(uow, clock).execute(BookCopyCreate(
        book_id=book.id, type="PHYSICAL", total_copies=2, location="A-3-12"))


@pytest.fixture
def ebook_copy(uow, clock, book):
    return CreateBookCopy(uow, clock).execute(BookCopyCreate(
        book_id=book.id, type="EBOOK", ebook_format="epub", file_id="file-001", file_size=2048))


@pytest.fixture
def reader(uow, clock):
    return CreateReader(uow, clock).execute(ReaderCreate(
        user_id="user-1", name="Alice", student_id="S2024001", email="alice@example.com"))
