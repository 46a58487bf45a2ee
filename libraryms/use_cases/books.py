import logging
from dataclasses import dataclass
from typing import List, Optional

from libraryms.core.clock import Clock, system_clock
from libraryms.core.exceptions import ConflictError, NotFoundError
from libraryms.domain.book import Book, normalize_isbn
from libraryms.domain.borrow_service import BorrowDomainService
from libraryms.domain.repositories import Page, UnitOfWork
from libraryms.schemas.schemas import BookCreate, BookUpdate
from libraryms.use_cases.common import new_id, page_args

logger = logging.getLogger(__name__)


def _require_category(uow: UnitOfWork, category_id: str) -> None:
    if uow.categories.find_by_id(category_id) is None:
        raise NotFoundError.for_entity("category", category_id)


class CreateBook:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, dto: BookCreate) -> Book:
        now = self.clock.now()
        book = Book(id=new_id(), created_at=now, updated_at=now, **dto.model_dump())
        with self.uow:
            if book.isbn and self.uow.books.exists_by_isbn(book.isbn):
                raise ConflictError(f"ISBN already exists: {book.isbn}")
            _require_category(self.uow, book.category_id)
            self.uow.books.save(book)
            self.uow.commit()
        logger.info(f"Created book id={book.id} title={book.title}")
        return book


class UpdateBook:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, book_id: str, dto: BookUpdate) -> Book:
        data = dto.model_dump(exclude_unset=True)
        now = self.clock.now()
        with self.uow:
            book = self.uow.books.find_by_id(book_id)
            if book is None:
                raise NotFoundError.for_entity("book", book_id)

            if data.get("isbn"):
                isbn = normalize_isbn(data["isbn"])
                if self.uow.books.exists_by_isbn(isbn, exclude_id=book_id):
                    raise ConflictError(f"ISBN already exists: {isbn}")
            if "category_id" in data:
                book.update_category(data.pop("category_id"), now)
                _require_category(self.uow, book.category_id)
            if "cover_file_id" in data:
                book.update_cover_file(data.pop("cover_file_id"), now)
            book.update_info(now, **data)

            self.uow.books.save(book)
            self.uow.commit()
        logger.info(f"Updated book id={book.id}")
        return book


class DeleteBook:
    """Delete a book and its copies.

    Refused while any copy is lent out, and while any copy has borrow
    history, since borrow records are kept permanently.
    """

    def __init__(self, uow: UnitOfWork, service: Optional[BorrowDomainService] = None):
        self.uow = uow
        self.service = service or BorrowDomainService()

    def execute(self, book_id: str) -> None:
        with self.uow:
            book = self.uow.books.find_by_id(book_id)
            if book is None:
                raise NotFoundError.for_entity("book", book_id)

            verdict = self.service.can_delete_book(self.uow.books.has_active_borrows(book_id))
            if not verdict.can:
                raise ConflictError(verdict.reason)
            copies = self.uow.copies.find_by_book_id(book_id)
            if any(self.uow.copies.has_borrow_history(c.id) for c in copies):
                raise ConflictError("the book has borrow history; mark its copies unavailable instead")

            for copy in copies:
                self.uow.copies.delete(copy.id)
            self.uow.books.delete(book_id)
            self.uow.commit()
        logger.info(f"Deleted book id={book_id} with {len(copies)} copies")


@dataclass
class BookQuery:
    page: int = 1
    page_size: Optional[int] = None
    category_id: Optional[str] = None
    search: Optional[str] = None


class GetBooks:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, query: Optional[BookQuery] = None) -> Page[Book]:
        query = query or BookQuery()
        page, page_size = page_args(query.page, query.page_size)
        return self.uow.books.find_all(page=page, page_size=page_size,
                                       category_id=query.category_id, search=query.search)

    def get_by_id(self, book_id: str) -> Book:
        book = self.uow.books.find_by_id(book_id)
        if book is None:
            raise NotFoundError.for_entity("book", book_id)
        return book

    def get_by_category(self, category_id: str) -> List[Book]:
        return self.uow.books.find_by_category_id(category_id)

    def get_popular(self, limit: int = 10) -> List[Book]:
        return self.uow.books.find_popular(limit)
