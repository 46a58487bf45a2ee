"""SQLAlchemy implementations of the repository contracts.

Rows from ``libraryms.models.models`` are converted to and from the domain
dataclasses at this boundary; nothing above this module sees ORM objects.
All repositories of a unit of work share one ``Session``.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from libraryms.core.clock import system_clock
from libraryms.core.exceptions import ConcurrencyError, ConflictError
from libraryms.domain import repositories as contracts
from libraryms.domain.book import Book
from libraryms.domain.book_copy import (
    EBOOK_FIELDS,
    PHYSICAL_FIELDS,
    BookCopy,
    CopyStatus,
    CopyType,
    new_book_copy,
)
from libraryms.domain.borrow_record import ACTIVE_STATUSES, BorrowRecord, BorrowStatus
from libraryms.domain.category import Category
from libraryms.domain.reader import Reader, ReaderStatus
from libraryms.domain.repositories import Page
from libraryms.models import models

logger = logging.getLogger(__name__)

ACTIVE = [s.value for s in ACTIVE_STATUSES]


def _paginate(query, page: int, page_size: int, convert) -> Page:
    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return Page(items=[convert(r) for r in rows], total=total, page=page, page_size=page_size)


class _SqlAlchemyRepository:
    model = None

    def __init__(self, db: Session):
        self.db = db

    def _row_for(self, entity):
        row = self.db.get(self.model, entity.id)
        if row is None:
            row = self.model(id=entity.id)
            self.db.add(row)
        if entity.created_at is None:
            entity.created_at = system_clock.now()
        if entity.updated_at is None:
            entity.updated_at = entity.created_at
        row.created_at = entity.created_at
        row.updated_at = entity.updated_at
        return row

    def _flush(self, what: str) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConcurrencyError(f"{what} was modified concurrently, please retry") from e
        except IntegrityError as e:
            raise ConflictError(f"{what} conflicts with an existing record") from e

    def _delete(self, entity_id: str) -> None:
        row = self.db.get(self.model, entity_id)
        if row is not None:
            self.db.delete(row)
            self.db.flush()


# -----------------------------
# Categories
# -----------------------------
class SqlAlchemyCategoryRepository(_SqlAlchemyRepository, contracts.CategoryRepository):
    model = models.Category

    @staticmethod
    def to_domain(row: models.Category) -> Category:
        return Category(id=row.id, name=row.name, parent_id=row.parent_id, sort=row.sort,
                        created_at=row.created_at, updated_at=row.updated_at)

    def save(self, category: Category) -> Category:
        row = self._row_for(category)
        row.name = category.name
        row.parent_id = category.parent_id
        row.sort = category.sort
        self._flush("category")
        return category

    def find_by_id(self, category_id: str) -> Optional[Category]:
        row = self.db.get(models.Category, category_id)
        return self.to_domain(row) if row else None

    def find_all(self) -> List[Category]:
        rows = self.db.query(models.Category).order_by(models.Category.sort, models.Category.name).all()
        return [self.to_domain(r) for r in rows]

    def delete(self, category_id: str) -> None:
        self._delete(category_id)

    def exists_by_name(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(models.Category).filter(models.Category.name == name)
        if exclude_id:
            query = query.filter(models.Category.id != exclude_id)
        return query.first() is not None

    def has_children(self, category_id: str) -> bool:
        return self.db.query(models.Category).filter(
            models.Category.parent_id == category_id).first() is not None


# -----------------------------
# Books
# -----------------------------
class SqlAlchemyBookRepository(_SqlAlchemyRepository, contracts.BookRepository):
    model = models.Book

    @staticmethod
    def to_domain(row: models.Book) -> Book:
        return Book(id=row.id, isbn=row.isbn, title=row.title, author=row.author,
                    publisher=row.publisher, category_id=row.category_id,
                    cover_file_id=row.cover_file_id, description=row.description,
                    publish_date=row.publish_date, created_at=row.created_at,
                    updated_at=row.updated_at)

    def save(self, book: Book) -> Book:
        row = self._row_for(book)
        for name in ("isbn", "title", "author", "publisher", "category_id", "cover_file_id",
                     "description", "publish_date"):
            setattr(row, name, getattr(book, name))
        self._flush("book")
        return book

    def find_by_id(self, book_id: str) -> Optional[Book]:
        row = self.db.get(models.Book, book_id)
        return self.to_domain(row) if row else None

    def find_all(self, page: int = 1, page_size: int = 20, category_id: Optional[str] = None,
                 search: Optional[str] = None) -> Page[Book]:
        query = self.db.query(models.Book)
        if category_id:
            query = query.filter(models.Book.category_id == category_id)
        if search:
            like_q = f"%{search.strip()}%"
            query = query.filter((models.Book.title.ilike(like_q))
                                 | (models.Book.author.ilike(like_q))
                                 | (models.Book.isbn.ilike(like_q)))
        query = query.order_by(models.Book.created_at.desc(), models.Book.title)
        return _paginate(query, page, page_size, self.to_domain)

    def find_by_category_id(self, category_id: str) -> List[Book]:
        rows = self.db.query(models.Book).filter(
            models.Book.category_id == category_id).order_by(models.Book.title).all()
        return [self.to_domain(r) for r in rows]

    def delete(self, book_id: str) -> None:
        self._delete(book_id)

    def exists_by_isbn(self, isbn: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(models.Book).filter(models.Book.isbn == isbn)
        if exclude_id:
            query = query.filter(models.Book.id != exclude_id)
        return query.first() is not None

    def has_active_borrows(self, book_id: str) -> bool:
        return self.db.query(models.BorrowRecord).join(models.BookCopy).filter(
            models.BookCopy.book_id == book_id,
            models.BorrowRecord.status.in_(ACTIVE)).first() is not None

    def count_by_category(self, category_id: str) -> int:
        return self.db.query(models.Book).filter(models.Book.category_id == category_id).count()

    def find_popular(self, limit: int = 10) -> List[Book]:
        borrows = func.count(models.BorrowRecord.id)
        rows = self.db.query(models.Book).join(models.BookCopy).join(models.BorrowRecord).group_by(
            models.Book.id).order_by(borrows.desc(), models.Book.title).limit(limit).all()
        return [self.to_domain(r) for r in rows]


# -----------------------------
# Book copies
# -----------------------------
class SqlAlchemyBookCopyRepository(_SqlAlchemyRepository, contracts.BookCopyRepository):
    model = models.BookCopy

    @staticmethod
    def to_domain(row: models.BookCopy) -> BookCopy:
        fields = {name: getattr(row, name) for name in PHYSICAL_FIELDS + EBOOK_FIELDS}
        return new_book_copy(row.type, id=row.id, book_id=row.book_id, status=row.status,
                             created_at=row.created_at, updated_at=row.updated_at, **fields)

    def save(self, copy: BookCopy) -> BookCopy:
        row = self._row_for(copy)
        row.book_id = copy.book_id
        row.type = copy.type.value
        row.status = copy.status.value
        for name in PHYSICAL_FIELDS + EBOOK_FIELDS:
            value = getattr(copy, name, None)
            setattr(row, name, value.value if name == "ebook_format" and value else value)
        self._flush("book copy")
        return copy

    def find_by_id(self, copy_id: str) -> Optional[BookCopy]:
        row = self.db.get(models.BookCopy, copy_id)
        return self.to_domain(row) if row else None

    def find_by_id_for_update(self, copy_id: str) -> Optional[BookCopy]:
        # FOR UPDATE is a no-op on SQLite; the version column still guards the write
        row = self.db.query(models.BookCopy).filter(
            models.BookCopy.id == copy_id).with_for_update().first()
        return self.to_domain(row) if row else None

    def find_all(self, page: int = 1, page_size: int = 20, book_id: Optional[str] = None,
                 type: Optional[CopyType] = None,
                 status: Optional[CopyStatus] = None) -> Page[BookCopy]:
        query = self.db.query(models.BookCopy)
        if book_id:
            query = query.filter(models.BookCopy.book_id == book_id)
        if type:
            query = query.filter(models.BookCopy.type == CopyType(type).value)
        if status:
            query = query.filter(models.BookCopy.status == CopyStatus(status).value)
        query = query.order_by(models.BookCopy.created_at.desc())
        return _paginate(query, page, page_size, self.to_domain)

    def find_by_book_id(self, book_id: str) -> List[BookCopy]:
        rows = self.db.query(models.BookCopy).filter(
            models.BookCopy.book_id == book_id).order_by(models.BookCopy.created_at).all()
        return [self.to_domain(r) for r in rows]

    def delete(self, copy_id: str) -> None:
        self._delete(copy_id)

    def has_active_borrows(self, copy_id: str) -> bool:
        return self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.book_copy_id == copy_id,
            models.BorrowRecord.status.in_(ACTIVE)).first() is not None

    def has_borrow_history(self, copy_id: str) -> bool:
        return self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.book_copy_id == copy_id).first() is not None


# -----------------------------
# Readers
# -----------------------------
class SqlAlchemyReaderRepository(_SqlAlchemyRepository, contracts.ReaderRepository):
    model = models.Reader

    @staticmethod
    def to_domain(row: models.Reader) -> Reader:
        return Reader(id=row.id, user_id=row.user_id, name=row.name, student_id=row.student_id,
                      phone=row.phone, email=row.email, status=row.status,
                      max_borrow_limit=row.max_borrow_limit, created_at=row.created_at,
                      updated_at=row.updated_at)

    def save(self, reader: Reader) -> Reader:
        row = self._row_for(reader)
        for name in ("user_id", "name", "student_id", "phone", "email", "max_borrow_limit"):
            setattr(row, name, getattr(reader, name))
        row.status = reader.status.value
        self._flush("reader")
        return reader

    def find_by_id(self, reader_id: str) -> Optional[Reader]:
        row = self.db.get(models.Reader, reader_id)
        return self.to_domain(row) if row else None

    def find_all(self, page: int = 1, page_size: int = 20, keyword: Optional[str] = None,
                 status: Optional[ReaderStatus] = None) -> Page[Reader]:
        query = self.db.query(models.Reader)
        if keyword:
            like_q = f"%{keyword.strip()}%"
            query = query.filter((models.Reader.name.ilike(like_q))
                                 | (models.Reader.student_id.ilike(like_q)))
        if status:
            query = query.filter(models.Reader.status == ReaderStatus(status).value)
        query = query.order_by(models.Reader.name)
        return _paginate(query, page, page_size, self.to_domain)

    def delete(self, reader_id: str) -> None:
        self._delete(reader_id)

    def find_by_student_id(self, student_id: str) -> Optional[Reader]:
        row = self.db.query(models.Reader).filter(models.Reader.student_id == student_id).first()
        return self.to_domain(row) if row else None

    def exists_by_user_id(self, user_id: str) -> bool:
        return self.db.query(models.Reader).filter(
            models.Reader.user_id == user_id).first() is not None

    def exists_by_student_id(self, student_id: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(models.Reader).filter(models.Reader.student_id == student_id)
        if exclude_id:
            query = query.filter(models.Reader.id != exclude_id)
        return query.first() is not None


# -----------------------------
# Borrow records
# -----------------------------
class SqlAlchemyBorrowRepository(_SqlAlchemyRepository, contracts.BorrowRepository):
    model = models.BorrowRecord

    @staticmethod
    def to_domain(row: models.BorrowRecord) -> BorrowRecord:
        return BorrowRecord(id=row.id, book_copy_id=row.book_copy_id, reader_id=row.reader_id,
                            borrow_date=row.borrow_date, due_date=row.due_date,
                            return_date=row.return_date, renew_count=row.renew_count,
                            status=row.status, created_at=row.created_at,
                            updated_at=row.updated_at)

    def save(self, record: BorrowRecord) -> BorrowRecord:
        row = self._row_for(record)
        for name in ("book_copy_id", "reader_id", "borrow_date", "due_date", "return_date",
                     "renew_count"):
            setattr(row, name, getattr(record, name))
        row.status = record.status.value
        self._flush("borrow record")
        return record

    def find_by_id(self, record_id: str) -> Optional[BorrowRecord]:
        row = self.db.get(models.BorrowRecord, record_id)
        return self.to_domain(row) if row else None

    def find_by_id_for_update(self, record_id: str) -> Optional[BorrowRecord]:
        row = self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.id == record_id).with_for_update().first()
        return self.to_domain(row) if row else None

    def _filtered(self, reader_id=None, book_copy_id=None, status=None):
        query = self.db.query(models.BorrowRecord)
        if reader_id:
            query = query.filter(models.BorrowRecord.reader_id == reader_id)
        if book_copy_id:
            query = query.filter(models.BorrowRecord.book_copy_id == book_copy_id)
        if status:
            query = query.filter(models.BorrowRecord.status == BorrowStatus(status).value)
        return query

    def find_all(self, page: int = 1, page_size: int = 20, reader_id: Optional[str] = None,
                 book_copy_id: Optional[str] = None,
                 status: Optional[BorrowStatus] = None) -> Page[BorrowRecord]:
        query = self._filtered(reader_id, book_copy_id, status).order_by(
            models.BorrowRecord.borrow_date.desc())
        return _paginate(query, page, page_size, self.to_domain)

    def find_by_reader_id(self, reader_id: str,
                          status: Optional[BorrowStatus] = None) -> List[BorrowRecord]:
        rows = self._filtered(reader_id=reader_id, status=status).order_by(
            models.BorrowRecord.borrow_date.desc()).all()
        return [self.to_domain(r) for r in rows]

    def find_by_book_copy_id(self, book_copy_id: str,
                             status: Optional[BorrowStatus] = None) -> List[BorrowRecord]:
        rows = self._filtered(book_copy_id=book_copy_id, status=status).order_by(
            models.BorrowRecord.borrow_date.desc()).all()
        return [self.to_domain(r) for r in rows]

    @staticmethod
    def _overdue_clause(now: datetime):
        return or_(
            models.BorrowRecord.status == BorrowStatus.OVERDUE.value,
            and_(models.BorrowRecord.status == BorrowStatus.BORROWED.value,
                 models.BorrowRecord.return_date.is_(None),
                 models.BorrowRecord.due_date < now),
        )

    def find_overdue(self, now: datetime, limit: int = 100) -> List[BorrowRecord]:
        rows = self.db.query(models.BorrowRecord).filter(self._overdue_clause(now)).order_by(
            models.BorrowRecord.due_date).limit(limit).all()
        return [self.to_domain(r) for r in rows]

    def count(self, reader_id: Optional[str] = None, book_copy_id: Optional[str] = None,
              status: Optional[BorrowStatus] = None) -> int:
        return self._filtered(reader_id, book_copy_id, status).count()

    def count_active_by_reader(self, reader_id: str) -> int:
        return self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.reader_id == reader_id,
            models.BorrowRecord.status.in_(ACTIVE)).count()

    def has_overdue_by_reader(self, reader_id: str, now: datetime) -> bool:
        return self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.reader_id == reader_id,
            self._overdue_clause(now)).first() is not None

    def update_overdue_status(self, now: datetime) -> int:
        # conditional UPDATE: only rows still BORROWED and past due change
        updated = self.db.query(models.BorrowRecord).filter(
            models.BorrowRecord.status == BorrowStatus.BORROWED.value,
            models.BorrowRecord.return_date.is_(None),
            models.BorrowRecord.due_date < now,
        ).update({models.BorrowRecord.status: BorrowStatus.OVERDUE.value,
                  models.BorrowRecord.updated_at: now,
                  models.BorrowRecord.version: models.BorrowRecord.version + 1},
            synchronize_session="fetch")
        return updated


class SqlAlchemyUnitOfWork(contracts.UnitOfWork):
    def __init__(self, db: Session):
        self.db = db
        self.categories = SqlAlchemyCategoryRepository(db)
        self.books = SqlAlchemyBookRepository(db)
        self.copies = SqlAlchemyBookCopyRepository(db)
        self.readers = SqlAlchemyReaderRepository(db)
        self.borrows = SqlAlchemyBorrowRepository(db)

    def commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrencyError("data was modified concurrently, please retry") from e

    def rollback(self) -> None:
        self.db.rollback()
