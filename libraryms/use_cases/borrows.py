"""Borrow, return, renew and the overdue sweep.

Each use case loads the aggregates it needs through the unit of work, lets
the entities and ``BorrowDomainService`` decide, and commits every write of
the operation in a single transaction.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from libraryms.core.clock import Clock, system_clock
from libraryms.core.exceptions import ConflictError, NotFoundError
from libraryms.domain.borrow_policy import BorrowPolicy
from libraryms.domain.borrow_record import BorrowRecord, BorrowStatus
from libraryms.domain.borrow_service import BorrowDomainService
from libraryms.domain.repositories import Page, UnitOfWork
from libraryms.schemas.schemas import BorrowCreate, RenewRequest
from libraryms.use_cases.common import new_id, page_args

logger = logging.getLogger(__name__)


class BorrowBook:
    def __init__(self, uow: UnitOfWork, policy: Optional[BorrowPolicy] = None,
                 clock: Clock = system_clock, service: Optional[BorrowDomainService] = None):
        self.uow = uow
        self.policy = policy or BorrowPolicy.default()
        self.clock = clock
        self.service = service or BorrowDomainService()

    def execute(self, dto: BorrowCreate) -> BorrowRecord:
        with self.uow:
            # the copy row stays locked until commit so two borrows of the
            # last copy cannot both pass the stock check
            copy = self.uow.copies.find_by_id_for_update(dto.book_copy_id)
            if copy is None:
                raise NotFoundError.for_entity("book copy", dto.book_copy_id)
            reader = self.uow.readers.find_by_id(dto.reader_id)
            if reader is None:
                raise NotFoundError.for_entity("reader", dto.reader_id)

            now = self.clock.now()
            current = self.uow.borrows.count_active_by_reader(reader.id)
            has_overdue = self.uow.borrows.has_overdue_by_reader(reader.id, now)
            verdict = self.service.can_borrow(copy, reader, current, has_overdue)
            if not verdict.can:
                logger.info(f"Borrow refused reader={reader.id} copy={copy.id}: {verdict.reason}")
                raise ConflictError(verdict.reason)

            # ebook loans have nothing to bring back, so no due date
            borrow_days = None
            if copy.is_physical():
                borrow_days = dto.borrow_days or self.policy.default_borrow_days
            record = BorrowRecord.open(id=new_id(), book_copy_id=copy.id, reader_id=reader.id,
                                       now=now, borrow_days=borrow_days)
            copy.borrow(now)

            self.uow.borrows.save(record)
            self.uow.copies.save(copy)
            self.uow.commit()
        logger.info(f"Reader {reader.id} borrowed copy {copy.id} record {record.id}")
        return record


class ReturnBook:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, record_id: str) -> BorrowRecord:
        with self.uow:
            # a second return of the same record fails on the record version
            record = self.uow.borrows.find_by_id_for_update(record_id)
            if record is None:
                raise NotFoundError.for_entity("borrow record", record_id)
            copy = self.uow.copies.find_by_id_for_update(record.book_copy_id)
            if copy is None:
                raise NotFoundError.for_entity("book copy", record.book_copy_id)

            now = self.clock.now()
            record.return_book(now)
            copy.return_copy(now)

            self.uow.borrows.save(record)
            self.uow.copies.save(copy)
            self.uow.commit()
        logger.info(f"Borrow record {record_id} returned")
        return record


class RenewBorrow:
    def __init__(self, uow: UnitOfWork, policy: Optional[BorrowPolicy] = None,
                 clock: Clock = system_clock):
        self.uow = uow
        self.policy = policy or BorrowPolicy.default()
        self.clock = clock

    def execute(self, record_id: str, dto: Optional[RenewRequest] = None) -> BorrowRecord:
        renew_days = (dto.renew_days if dto else None) or self.policy.renew_days
        with self.uow:
            record = self.uow.borrows.find_by_id_for_update(record_id)
            if record is None:
                raise NotFoundError.for_entity("borrow record", record_id)
            record.renew(renew_days, self.policy.max_renew_count, self.clock.now())
            self.uow.borrows.save(record)
            self.uow.commit()
        logger.info(f"Borrow record {record_id} renewed, due {record.due_date:%Y-%m-%d}, "
                    f"renewals={record.renew_count}")
        return record


class CheckOverdue:
    """Promote BORROWED records past their due date to OVERDUE.

    Meant to be triggered periodically; running it again with nothing new
    past due updates nothing.
    """

    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self) -> int:
        with self.uow:
            updated = self.uow.borrows.update_overdue_status(self.clock.now())
            self.uow.commit()
        logger.info(f"Overdue sweep marked {updated} borrow record(s) overdue")
        return updated


@dataclass
class BorrowQuery:
    page: int = 1
    page_size: Optional[int] = None
    reader_id: Optional[str] = None
    book_copy_id: Optional[str] = None
    status: Optional[BorrowStatus] = None


class GetBorrows:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, query: Optional[BorrowQuery] = None) -> Page[BorrowRecord]:
        query = query or BorrowQuery()
        page, page_size = page_args(query.page, query.page_size)
        return self.uow.borrows.find_all(page=page, page_size=page_size,
                                         reader_id=query.reader_id,
                                         book_copy_id=query.book_copy_id, status=query.status)

    def get_by_id(self, record_id: str) -> BorrowRecord:
        record = self.uow.borrows.find_by_id(record_id)
        if record is None:
            raise NotFoundError.for_entity("borrow record", record_id)
        return record

    def get_overdue(self, limit: int = 100) -> List[BorrowRecord]:
        return self.uow.borrows.find_overdue(self.clock.now(), limit)

    def get_by_reader(self, reader_id: str) -> List[BorrowRecord]:
        return self.uow.borrows.find_by_reader_id(reader_id)

    def get_by_book_copy(self, book_copy_id: str) -> List[BorrowRecord]:
        return self.uow.borrows.find_by_book_copy_id(book_copy_id)
