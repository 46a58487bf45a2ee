"""One lending transaction between a reader and a book copy.

Status moves through a small state machine::

    BORROWED --return--> RETURNED
    BORROWED --due date passes--> OVERDUE
    OVERDUE  --return--> RETURNED

RETURNED is terminal. Renewal keeps the record BORROWED and pushes the due
date out; overdue records cannot be renewed. Records without a due date
(ebook loans) never become overdue.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from libraryms.core.exceptions import (
    InvalidStateError,
    LimitExceededError,
    OverdueError,
    ValidationError,
)

DAY = timedelta(days=1)


class BorrowStatus(str, Enum):
    BORROWED = "BORROWED"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


ACTIVE_STATUSES = (BorrowStatus.BORROWED, BorrowStatus.OVERDUE)


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / DAY)


@dataclass(kw_only=True)
class BorrowRecord:
    id: str
    book_copy_id: str
    reader_id: str
    borrow_date: datetime
    due_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    renew_count: int = 0
    status: BorrowStatus = BorrowStatus.BORROWED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.book_copy_id:
            raise ValidationError("borrow record requires a book copy id")
        if not self.reader_id:
            raise ValidationError("borrow record requires a reader id")
        if self.due_date and self.due_date < self.borrow_date:
            raise ValidationError("due date cannot be earlier than the borrow date")
        if self.return_date and self.return_date < self.borrow_date:
            raise ValidationError("return date cannot be earlier than the borrow date")
        if self.renew_count < 0:
            raise ValidationError("renew count cannot be negative")
        try:
            self.status = BorrowStatus(self.status)
        except ValueError:
            raise ValidationError(f"invalid borrow status: {self.status}") from None
        if self.created_at is None:
            self.created_at = self.borrow_date
        if self.updated_at is None:
            self.updated_at = self.created_at

    @classmethod
    def open(cls, *, id: str, book_copy_id: str, reader_id: str, now: datetime,
             borrow_days: Optional[int]) -> "BorrowRecord":
        """Start a new loan. ``borrow_days=None`` means there is nothing to return by."""
        if borrow_days is not None and borrow_days < 1:
            raise ValidationError("borrow days must be at least 1")
        due_date = now + timedelta(days=borrow_days) if borrow_days is not None else None
        return cls(
            id=id,
            book_copy_id=book_copy_id,
            reader_id=reader_id,
            borrow_date=now,
            due_date=due_date,
            status=BorrowStatus.BORROWED,
            created_at=now,
            updated_at=now,
        )

    # ---- transitions
    def return_book(self, now: datetime) -> None:
        if self.status == BorrowStatus.RETURNED:
            raise InvalidStateError("this borrow has already been returned")
        self.return_date = max(now, self.borrow_date)
        self.status = BorrowStatus.RETURNED
        self.updated_at = now

    def renew(self, additional_days: int, max_renew_count: int, now: datetime) -> None:
        if self.status == BorrowStatus.RETURNED:
            raise InvalidStateError("a returned borrow cannot be renewed")
        if self.status == BorrowStatus.OVERDUE or self.is_overdue(now):
            raise OverdueError("overdue items cannot be renewed, return them first")
        if self.renew_count >= max_renew_count:
            raise LimitExceededError(f"renewal limit reached ({max_renew_count} times)")
        if self.due_date is None:
            raise InvalidStateError("this borrow has no due date to extend")
        if additional_days < 1:
            raise ValidationError("renew days must be at least 1")

        self.due_date = self.due_date + timedelta(days=additional_days)
        self.renew_count += 1
        self.updated_at = now

    def mark_overdue(self, now: datetime) -> bool:
        """Move a BORROWED record past its due date to OVERDUE.

        Returns True when the status changed.
        """
        if self.status == BorrowStatus.BORROWED and self.is_overdue(now):
            self.status = BorrowStatus.OVERDUE
            self.updated_at = now
            return True
        return False

    # ---- queries
    def is_overdue(self, now: datetime) -> bool:
        if self.return_date is not None or self.due_date is None:
            return False
        return now > self.due_date

    def is_returned(self) -> bool:
        return self.status == BorrowStatus.RETURNED

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def can_renew(self, max_renew_count: int, now: datetime) -> bool:
        return (
            self.status == BorrowStatus.BORROWED
            and self.due_date is not None
            and self.renew_count < max_renew_count
            and not self.is_overdue(now)
        )

    def days_remaining(self, now: datetime) -> Optional[int]:
        """Days until due; negative once overdue, 0 after return, None with no due date."""
        if self.return_date is not None:
            return 0
        if self.due_date is None:
            return None
        return _ceil_days(self.due_date - now)

    def borrow_days(self, now: datetime) -> int:
        end = self.return_date or now
        return _ceil_days(end - self.borrow_date)

    def overdue_days(self, now: datetime) -> int:
        if not self.is_overdue(now):
            return 0
        return _ceil_days(now - self.due_date)
