import logging
from dataclasses import dataclass
from typing import Optional

from libraryms.core.clock import Clock, system_clock
from libraryms.core.exceptions import ConflictError, NotFoundError
from libraryms.domain.borrow_service import BorrowDomainService
from libraryms.domain.reader import Reader, ReaderStatus
from libraryms.domain.borrow_record import BorrowStatus
from libraryms.domain.repositories import Page, UnitOfWork
from libraryms.schemas.schemas import ReaderCreate, ReaderUpdate
from libraryms.use_cases.common import new_id, page_args

logger = logging.getLogger(__name__)


def _load(uow: UnitOfWork, reader_id: str) -> Reader:
    reader = uow.readers.find_by_id(reader_id)
    if reader is None:
        raise NotFoundError.for_entity("reader", reader_id)
    return reader


class CreateReader:
    """Register the reader profile of an existing user account.

    One reader per user; student ids are unique when given.
    """

    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, dto: ReaderCreate) -> Reader:
        now = self.clock.now()
        reader = Reader(id=new_id(), status=ReaderStatus.ACTIVE, created_at=now, updated_at=now,
                        **dto.model_dump())
        with self.uow:
            if self.uow.readers.exists_by_user_id(reader.user_id):
                raise ConflictError(f"user already has a reader profile: {reader.user_id}")
            if reader.student_id and self.uow.readers.exists_by_student_id(reader.student_id):
                raise ConflictError(f"student id already exists: {reader.student_id}")
            self.uow.readers.save(reader)
            self.uow.commit()
        logger.info(f"Created reader id={reader.id} user={reader.user_id}")
        return reader


class UpdateReader:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, reader_id: str, dto: ReaderUpdate) -> Reader:
        data = dto.model_dump(exclude_unset=True)
        with self.uow:
            reader = _load(self.uow, reader_id)
            student_id = (data.get("student_id") or "").strip()
            if student_id and student_id != reader.student_id:
                if self.uow.readers.exists_by_student_id(student_id, exclude_id=reader_id):
                    raise ConflictError(f"student id already exists: {student_id}")
            reader.update_info(self.clock.now(), **data)
            self.uow.readers.save(reader)
            self.uow.commit()
        logger.info(f"Updated reader id={reader.id}")
        return reader


class ActivateReader:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, reader_id: str) -> Reader:
        with self.uow:
            reader = _load(self.uow, reader_id)
            reader.activate(self.clock.now())
            self.uow.readers.save(reader)
            self.uow.commit()
        logger.info(f"Activated reader id={reader_id}")
        return reader


class DeactivateReader:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, reader_id: str) -> Reader:
        with self.uow:
            reader = _load(self.uow, reader_id)
            reader.deactivate(self.clock.now())
            self.uow.readers.save(reader)
            self.uow.commit()
        logger.info(f"Deactivated reader id={reader_id}")
        return reader


class DeleteReader:
    """Hard-delete a reader with no borrowing at all.

    Readers with unreturned items are refused; readers with only past
    borrows keep their history and should be deactivated instead.
    """

    def __init__(self, uow: UnitOfWork, service: Optional[BorrowDomainService] = None):
        self.uow = uow
        self.service = service or BorrowDomainService()

    def execute(self, reader_id: str) -> None:
        with self.uow:
            _load(self.uow, reader_id)
            active = self.uow.borrows.count_active_by_reader(reader_id)
            verdict = self.service.can_delete_reader(active > 0)
            if not verdict.can:
                raise ConflictError(f"{verdict.reason} ({active} unreturned)")
            if self.uow.borrows.count(reader_id=reader_id) > 0:
                raise ConflictError("the reader has borrow history; deactivate instead")
            self.uow.readers.delete(reader_id)
            self.uow.commit()
        logger.info(f"Deleted reader id={reader_id}")


@dataclass
class ReaderQuery:
    page: int = 1
    page_size: Optional[int] = None
    keyword: Optional[str] = None
    status: Optional[ReaderStatus] = None


class GetReaders:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, query: Optional[ReaderQuery] = None) -> Page[Reader]:
        query = query or ReaderQuery()
        page, page_size = page_args(query.page, query.page_size)
        return self.uow.readers.find_all(page=page, page_size=page_size, keyword=query.keyword,
                                         status=query.status)

    def get_by_id(self, reader_id: str) -> Reader:
        return _load(self.uow, reader_id)

    def get_by_student_id(self, student_id: str) -> Reader:
        reader = self.uow.readers.find_by_student_id(student_id)
        if reader is None:
            raise NotFoundError.for_entity("reader", student_id)
        return reader


@dataclass
class ReaderStatistics:
    reader_id: str
    total_borrow_count: int
    current_borrow_count: int
    overdue_count: int
    max_borrow_limit: int
    available_borrow_count: int


class GetReaderStatistics:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, reader_id: str) -> ReaderStatistics:
        reader = _load(self.uow, reader_id)
        current = self.uow.borrows.count_active_by_reader(reader_id)
        return ReaderStatistics(
            reader_id=reader_id,
            total_borrow_count=self.uow.borrows.count(reader_id=reader_id),
            current_borrow_count=current,
            overdue_count=self.uow.borrows.count(reader_id=reader_id, status=BorrowStatus.OVERDUE),
            max_borrow_limit=reader.max_borrow_limit,
            available_borrow_count=max(0, reader.max_borrow_limit - current),
        )
