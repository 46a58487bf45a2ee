"""Persistence contracts consumed by the use cases.

Implementations live in ``libraryms.repositories``. ``save`` adds or updates
and returns the entity; nothing is committed until the unit of work commits.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from libraryms.domain.book import Book
from libraryms.domain.book_copy import BookCopy, CopyStatus, CopyType
from libraryms.domain.borrow_record import BorrowRecord, BorrowStatus
from libraryms.domain.category import Category
from libraryms.domain.reader import Reader, ReaderStatus

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class CategoryRepository(ABC):
    @abstractmethod
    def save(self, category: Category) -> Category: ...

    @abstractmethod
    def find_by_id(self, category_id: str) -> Optional[Category]: ...

    @abstractmethod
    def find_all(self) -> List[Category]: ...

    @abstractmethod
    def delete(self, category_id: str) -> None: ...

    @abstractmethod
    def exists_by_name(self, name: str, exclude_id: Optional[str] = None) -> bool: ...

    @abstractmethod
    def has_children(self, category_id: str) -> bool: ...


class BookRepository(ABC):
    @abstractmethod
    def save(self, book: Book) -> Book: ...

    @abstractmethod
    def find_by_id(self, book_id: str) -> Optional[Book]: ...

    @abstractmethod
    def find_all(self, page: int = 1, page_size: int = 20, category_id: Optional[str] = None,
                 search: Optional[str] = None) -> Page[Book]: ...

    @abstractmethod
    def find_by_category_id(self, category_id: str) -> List[Book]: ...

    @abstractmethod
    def delete(self, book_id: str) -> None: ...

    @abstractmethod
    def exists_by_isbn(self, isbn: str, exclude_id: Optional[str] = None) -> bool: ...

    @abstractmethod
    def has_active_borrows(self, book_id: str) -> bool: ...

    @abstractmethod
    def count_by_category(self, category_id: str) -> int: ...

    @abstractmethod
    def find_popular(self, limit: int = 10) -> List[Book]:
        """Books ordered by how many times any of their copies was borrowed."""


class BookCopyRepository(ABC):
    @abstractmethod
    def save(self, copy: BookCopy) -> BookCopy: ...

    @abstractmethod
    def find_by_id(self, copy_id: str) -> Optional[BookCopy]: ...

    @abstractmethod
    def find_by_id_for_update(self, copy_id: str) -> Optional[BookCopy]:
        """Load a copy and lock it until the unit of work ends."""

    @abstractmethod
    def find_all(self, page: int = 1, page_size: int = 20, book_id: Optional[str] = None,
                 type: Optional[CopyType] = None,
                 status: Optional[CopyStatus] = None) -> Page[BookCopy]: ...

    @abstractmethod
    def find_by_book_id(self, book_id: str) -> List[BookCopy]: ...

    @abstractmethod
    def delete(self, copy_id: str) -> None: ...

    @abstractmethod
    def has_active_borrows(self, copy_id: str) -> bool: ...

    @abstractmethod
    def has_borrow_history(self, copy_id: str) -> bool: ...


class ReaderRepository(ABC):
    @abstractmethod
    def save(self, reader: Reader) -> Reader: ...

    @abstractmethod
    def find_by_id(self, reader_id: str) -> Optional[Reader]: ...

    @abstractmethod
    def find_all(self, page: int = 1, page_size: int = 20, keyword: Optional[str] = None,
                 status: Optional[ReaderStatus] = None) -> Page[Reader]: ...

    @abstractmethod
    def delete(self, reader_id: str) -> None: ...

    @abstractmethod
    def find_by_student_id(self, student_id: str) -> Optional[Reader]: ...

    @abstractmethod
    def exists_by_user_id(self, user_id: str) -> bool: ...

    @abstractmethod
    def exists_by_student_id(self, student_id: str, exclude_id: Optional[str] = None) -> bool: ...


class BorrowRepository(ABC):
    @abstractmethod
    def save(self, record: BorrowRecord) -> BorrowRecord: ...

    @abstractmethod
    def find_by_id(self, record_id: str) -> Optional[BorrowRecord]: ...

    @abstractmethod
    def find_by_id_for_update(self, record_id: str) -> Optional[BorrowRecord]:
        """Load a record and lock it until the unit of work ends."""

    @abstractmethod
    def find_all(self, page: int = 1, page_size: int = 20, reader_id: Optional[str] = None,
                 book_copy_id: Optional[str] = None,
                 status: Optional[BorrowStatus] = None) -> Page[BorrowRecord]: ...

    @abstractmethod
    def find_by_reader_id(self, reader_id: str,
                          status: Optional[BorrowStatus] = None) -> List[BorrowRecord]: ...

    @abstractmethod
    def find_by_book_copy_id(self, book_copy_id: str,
                             status: Optional[BorrowStatus] = None) -> List[BorrowRecord]: ...

    @abstractmethod
    def find_overdue(self, now: datetime, limit: int = 100) -> List[BorrowRecord]: ...

    @abstractmethod
    def count(self, reader_id: Optional[str] = None, book_copy_id: Optional[str] = None,
              status: Optional[BorrowStatus] = None) -> int: ...

    @abstractmethod
    def count_active_by_reader(self, reader_id: str) -> int: ...

    @abstractmethod
    def has_overdue_by_reader(self, reader_id: str, now: datetime) -> bool: ...

    @abstractmethod
    def update_overdue_status(self, now: datetime) -> int:
        """Flip every BORROWED, unreturned record due before ``now`` to OVERDUE."""


class UnitOfWork(ABC):
    """One transaction spanning all repositories.

    Used as a context manager; leaving the block without ``commit()`` (or by
    an exception) rolls back.
    """

    categories: CategoryRepository
    books: BookRepository
    copies: BookCopyRepository
    readers: ReaderRepository
    borrows: BorrowRepository

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.rollback()

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...
