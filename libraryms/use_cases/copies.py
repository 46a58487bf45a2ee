import logging
from dataclasses import dataclass
from typing import List, Optional

from libraryms.core.clock import Clock, system_clock
from libraryms.core.exceptions import ConflictError, NotFoundError, ValidationError
from libraryms.domain.book_copy import BookCopy, CopyStatus, CopyType, new_book_copy
from libraryms.domain.repositories import Page, UnitOfWork
from libraryms.schemas.schemas import BookCopyCreate, BookCopyUpdate
from libraryms.use_cases.common import new_id, page_args

logger = logging.getLogger(__name__)


class CreateBookCopy:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, dto: BookCopyCreate) -> BookCopy:
        now = self.clock.now()
        with self.uow:
            if self.uow.books.find_by_id(dto.book_id) is None:
                raise NotFoundError.for_entity("book", dto.book_id)
            fields = dto.model_dump(exclude={"type"})
            # a new physical copy starts with everything on the shelf
            copy = new_book_copy(dto.type, id=new_id(), created_at=now, updated_at=now, **fields)
            self.uow.copies.save(copy)
            self.uow.commit()
        logger.info(f"Created {copy.type.value} copy id={copy.id} for book {copy.book_id}")
        return copy


class UpdateBookCopy:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, copy_id: str, dto: BookCopyUpdate) -> BookCopy:
        data = dto.model_dump(exclude_unset=True)
        now = self.clock.now()
        with self.uow:
            copy = self.uow.copies.find_by_id_for_update(copy_id)
            if copy is None:
                raise NotFoundError.for_entity("book copy", copy_id)

            if copy.is_physical():
                if data.get("file_id") is not None or data.get("file_size") is not None:
                    raise ValidationError("physical copy must not carry ebook fields")
                if data.get("total_copies") is not None:
                    copy.update_total_copies(data["total_copies"], now)
                if "location" in data:
                    copy.update_location(data["location"], now)
            else:
                if data.get("total_copies") is not None or data.get("location") is not None:
                    raise ValidationError("ebook must not carry physical stock or location fields")
                if "file_id" in data or "file_size" in data:
                    copy.update_ebook_file(data.get("file_id") or copy.file_id,
                                           data.get("file_size"), now)

            if data.get("status") is not None:
                status = CopyStatus(data["status"])
                # lent-out copies stay lent out; their returns are still accepted
                if status != CopyStatus.AVAILABLE and copy.borrowed_count() > 0:
                    logger.warning(f"Copy {copy.id} set to {status.value} with "
                                   f"{copy.borrowed_count()} still borrowed")
                copy.update_status(status, now)

            self.uow.copies.save(copy)
            self.uow.commit()
        logger.info(f"Updated copy id={copy.id}")
        return copy


class DeleteBookCopy:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, copy_id: str) -> None:
        with self.uow:
            if self.uow.copies.find_by_id(copy_id) is None:
                raise NotFoundError.for_entity("book copy", copy_id)
            if self.uow.copies.has_active_borrows(copy_id):
                raise ConflictError("the copy has active borrows and cannot be deleted")
            if self.uow.copies.has_borrow_history(copy_id):
                raise ConflictError("the copy has borrow history; mark it unavailable instead")
            self.uow.copies.delete(copy_id)
            self.uow.commit()
        logger.info(f"Deleted copy id={copy_id}")


@dataclass
class BookCopyQuery:
    page: int = 1
    page_size: Optional[int] = None
    book_id: Optional[str] = None
    type: Optional[CopyType] = None
    status: Optional[CopyStatus] = None


class GetBookCopies:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, query: Optional[BookCopyQuery] = None) -> Page[BookCopy]:
        query = query or BookCopyQuery()
        page, page_size = page_args(query.page, query.page_size)
        return self.uow.copies.find_all(page=page, page_size=page_size, book_id=query.book_id,
                                        type=query.type, status=query.status)

    def get_by_book_id(self, book_id: str) -> List[BookCopy]:
        if self.uow.books.find_by_id(book_id) is None:
            raise NotFoundError.for_entity("book", book_id)
        return self.uow.copies.find_by_book_id(book_id)

    def get_by_id(self, copy_id: str) -> BookCopy:
        copy = self.uow.copies.find_by_id(copy_id)
        if copy is None:
            raise NotFoundError.for_entity("book copy", copy_id)
        return copy
