"""Lendable units of a book.

A book has one or more copies. A ``PhysicalCopy`` is a block of shelf stock
with total/available counters; an ``EbookCopy`` is a single file reference
that any number of readers may borrow at once. Both share status handling
through ``BookCopy``; everything type specific lives on the subclass, so a
physical copy cannot carry ebook fields and vice versa.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from libraryms.core.exceptions import (
    InvalidStateError,
    OutOfStockError,
    OverReturnError,
    ValidationError,
)


class CopyType(str, Enum):
    PHYSICAL = "PHYSICAL"
    EBOOK = "EBOOK"


class CopyStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"
    MAINTENANCE = "MAINTENANCE"


class EbookFormat(str, Enum):
    PDF = "pdf"
    EPUB = "epub"
    MOBI = "mobi"


PHYSICAL_FIELDS = ("total_copies", "available_copies", "location")
EBOOK_FIELDS = ("ebook_format", "file_id", "file_size")


@dataclass(kw_only=True)
class BookCopy(ABC):
    id: str
    book_id: str
    status: CopyStatus = CopyStatus.AVAILABLE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    type: ClassVar[CopyType]

    def __post_init__(self):
        if not self.book_id:
            raise ValidationError("book copy requires a book id")
        try:
            self.status = CopyStatus(self.status)
        except ValueError:
            raise ValidationError(f"invalid copy status: {self.status}") from None
        self.validate()

    @abstractmethod
    def validate(self) -> None: ...

    # ---- lending
    def borrow(self, now: Optional[datetime] = None) -> None:
        if self.status != CopyStatus.AVAILABLE:
            raise InvalidStateError(f"copy is {self.status.value} and cannot be borrowed")
        self._take(now)

    @abstractmethod
    def return_copy(self, now: Optional[datetime] = None) -> None: ...

    @abstractmethod
    def _take(self, now: Optional[datetime]) -> None: ...

    @abstractmethod
    def has_available_copies(self) -> bool: ...

    def is_available(self) -> bool:
        return self.status == CopyStatus.AVAILABLE and self.has_available_copies()

    def borrowed_count(self) -> int:
        return 0

    def borrow_rate(self) -> float:
        return 0.0

    # ---- status
    def update_status(self, status, now: Optional[datetime] = None) -> None:
        try:
            self.status = CopyStatus(status)
        except ValueError:
            raise ValidationError(f"invalid copy status: {status}") from None
        self._touch(now)

    def mark_as_available(self, now: Optional[datetime] = None) -> None:
        self.update_status(CopyStatus.AVAILABLE, now)

    def mark_as_unavailable(self, now: Optional[datetime] = None) -> None:
        self.update_status(CopyStatus.UNAVAILABLE, now)

    def mark_as_maintenance(self, now: Optional[datetime] = None) -> None:
        self.update_status(CopyStatus.MAINTENANCE, now)

    def is_physical(self) -> bool:
        return self.type == CopyType.PHYSICAL

    def is_ebook(self) -> bool:
        return self.type == CopyType.EBOOK

    def _touch(self, now: Optional[datetime]) -> None:
        if now is not None:
            self.updated_at = now


@dataclass(kw_only=True)
class PhysicalCopy(BookCopy):
    total_copies: int
    available_copies: Optional[int] = None
    location: Optional[str] = None

    type: ClassVar[CopyType] = CopyType.PHYSICAL

    def validate(self) -> None:
        if self.total_copies is None:
            raise ValidationError("physical copy requires totalCopies")
        if self.total_copies < 1:
            raise ValidationError("physical copy requires totalCopies >= 1")
        if self.available_copies is None:
            self.available_copies = self.total_copies
        if self.available_copies < 0:
            raise ValidationError("physical copy availableCopies cannot be negative")
        if self.available_copies > self.total_copies:
            raise ValidationError("physical copy availableCopies cannot exceed totalCopies")

    def _take(self, now):
        if self.available_copies <= 0:
            raise OutOfStockError("physical copy is out of stock")
        self.available_copies -= 1
        self._touch(now)

    def return_copy(self, now: Optional[datetime] = None) -> None:
        if self.available_copies >= self.total_copies:
            raise OverReturnError("all copies are already on the shelf (returned twice?)")
        self.available_copies += 1
        self._touch(now)

    def update_total_copies(self, new_total: int, now: Optional[datetime] = None) -> None:
        if new_total < 1:
            raise ValidationError("physical copy requires totalCopies >= 1")
        borrowed = self.borrowed_count()
        if new_total < borrowed:
            raise ValidationError(
                f"total stock cannot be less than the number currently borrowed ({borrowed})"
            )
        self.total_copies = new_total
        self.available_copies = new_total - borrowed
        self._touch(now)

    def update_location(self, location: Optional[str], now: Optional[datetime] = None) -> None:
        self.location = location.strip() if location and location.strip() else None
        self._touch(now)

    def has_available_copies(self) -> bool:
        return self.available_copies > 0

    def borrowed_count(self) -> int:
        return self.total_copies - self.available_copies

    def borrow_rate(self) -> float:
        return self.borrowed_count() / self.total_copies


@dataclass(kw_only=True)
class EbookCopy(BookCopy):
    ebook_format: EbookFormat
    file_id: str
    file_size: Optional[int] = None

    type: ClassVar[CopyType] = CopyType.EBOOK

    def validate(self) -> None:
        if not self.file_id:
            raise ValidationError("ebook requires a non-empty fileId")
        if not self.ebook_format:
            raise ValidationError("ebook requires a supported format")
        try:
            self.ebook_format = EbookFormat(self.ebook_format)
        except ValueError:
            raise ValidationError(f"unsupported ebook format: {self.ebook_format}") from None
        if self.file_size is not None and self.file_size < 0:
            raise ValidationError("ebook fileSize cannot be negative")

    # concurrent reads are unlimited, so lending never touches stock
    def _take(self, now):
        pass

    def return_copy(self, now: Optional[datetime] = None) -> None:
        pass

    def update_ebook_file(self, file_id: str, file_size: Optional[int] = None,
                          now: Optional[datetime] = None) -> None:
        if not file_id:
            raise ValidationError("ebook requires a non-empty fileId")
        self.file_id = file_id
        if file_size is not None:
            self.file_size = file_size
        self._touch(now)

    def has_available_copies(self) -> bool:
        return True


def new_book_copy(copy_type, **fields) -> BookCopy:
    """Build the right copy class for ``copy_type``.

    Fields belonging to the other type must be absent (None); anything else
    is a ``ValidationError``.
    """
    try:
        copy_type = CopyType(copy_type)
    except ValueError:
        raise ValidationError(f"unknown book copy type: {copy_type}") from None

    if copy_type == CopyType.PHYSICAL:
        own, foreign, cls = PHYSICAL_FIELDS, EBOOK_FIELDS, PhysicalCopy
        rule = "physical copy must not carry ebook fields"
    else:
        own, foreign, cls = EBOOK_FIELDS, PHYSICAL_FIELDS, EbookCopy
        rule = "ebook must not carry physical stock or location fields"

    if any(fields.pop(name, None) is not None for name in foreign):
        raise ValidationError(rule)
    if copy_type == CopyType.PHYSICAL and fields.get("total_copies") is None:
        raise ValidationError("physical copy requires totalCopies >= 1")
    if copy_type == CopyType.EBOOK:
        if not fields.get("file_id"):
            raise ValidationError("ebook requires a non-empty fileId and a supported format")
        if not fields.get("ebook_format"):
            raise ValidationError("ebook requires a non-empty fileId and a supported format")
    for name in own:
        if name in fields and fields[name] is None:
            del fields[name]
    return cls(**fields)
