from dataclasses import asdict
from pydantic import BaseModel, ConfigDict, Field, constr
from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar

from libraryms.domain.book_copy import BookCopy, CopyStatus, CopyType, EbookFormat
from libraryms.domain.borrow_policy import BorrowPolicy
from libraryms.domain.borrow_record import BorrowRecord, BorrowStatus
from libraryms.domain.category import Category
from libraryms.domain.reader import Reader, ReaderStatus

T = TypeVar("T")


class PageOut(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def from_page(cls, page, convert=None):
        items = [convert(i) for i in page.items] if convert else page.items
        return cls(items=items, total=page.total, page=page.page, page_size=page.page_size,
                   total_pages=page.total_pages)


# ---- categories
class CategoryCreate(BaseModel):
    name: constr(min_length=1, max_length=100)
    parent_id: Optional[str] = None
    sort: int = Field(default=0, ge=0)


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[str] = None
    sort: Optional[int] = None


class CategoryOut(BaseModel):
    id: str
    name: str
    parent_id: Optional[str]
    sort: int
    created_at: datetime
    updated_at: datetime
    is_root: bool

    @classmethod
    def from_category(cls, category: Category) -> "CategoryOut":
        return cls(**asdict(category), is_root=category.is_root())


# ---- books
class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    publisher: constr(min_length=1)
    category_id: constr(min_length=1)
    isbn: Optional[str] = None
    cover_file_id: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[date] = None


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    category_id: Optional[str] = None
    isbn: Optional[str] = None
    cover_file_id: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[date] = None


class BookOut(BookBase):
    id: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---- book copies
class BookCopyCreate(BaseModel):
    book_id: constr(min_length=1)
    type: CopyType
    # physical
    total_copies: Optional[int] = None
    location: Optional[str] = None
    # ebook
    ebook_format: Optional[EbookFormat] = None
    file_id: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)


class BookCopyUpdate(BaseModel):
    status: Optional[CopyStatus] = None
    total_copies: Optional[int] = None
    location: Optional[str] = None
    file_id: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)


class BookCopyOut(BaseModel):
    id: str
    book_id: str
    type: CopyType
    status: CopyStatus
    total_copies: Optional[int] = None
    available_copies: Optional[int] = None
    location: Optional[str] = None
    ebook_format: Optional[EbookFormat] = None
    file_id: Optional[str] = None
    file_size: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    borrowed_count: int = 0
    borrow_rate: float = 0.0

    @classmethod
    def from_copy(cls, copy: BookCopy) -> "BookCopyOut":
        # asdict skips the ClassVar type
        return cls(**asdict(copy), type=copy.type, borrowed_count=copy.borrowed_count(),
                   borrow_rate=copy.borrow_rate())


# ---- readers
class ReaderCreate(BaseModel):
    user_id: constr(min_length=1)
    name: constr(min_length=1)
    student_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    max_borrow_limit: int = 5


class ReaderUpdate(BaseModel):
    name: Optional[str] = None
    student_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    max_borrow_limit: Optional[int] = None


class ReaderOut(BaseModel):
    id: str
    user_id: str
    name: str
    student_id: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    status: ReaderStatus
    max_borrow_limit: int
    created_at: datetime
    updated_at: datetime
    display_name: str
    has_contact_info: bool

    @classmethod
    def from_reader(cls, reader: Reader) -> "ReaderOut":
        return cls(**asdict(reader), display_name=reader.display_name(),
                   has_contact_info=reader.has_contact_info())


class ReaderStatisticsOut(BaseModel):
    reader_id: str
    total_borrow_count: int
    current_borrow_count: int
    overdue_count: int
    max_borrow_limit: int
    available_borrow_count: int
    model_config = ConfigDict(from_attributes=True)


# ---- borrows
class BorrowCreate(BaseModel):
    book_copy_id: constr(min_length=1)
    reader_id: constr(min_length=1)
    borrow_days: Optional[int] = Field(default=None, ge=1)


class RenewRequest(BaseModel):
    renew_days: Optional[int] = Field(default=None, ge=1)


class BorrowOut(BaseModel):
    id: str
    book_copy_id: str
    reader_id: str
    borrow_date: datetime
    due_date: Optional[datetime]
    return_date: Optional[datetime]
    renew_count: int
    status: BorrowStatus
    created_at: datetime
    updated_at: datetime
    days_remaining: Optional[int] = None
    overdue_days: Optional[int] = None
    borrow_days: Optional[int] = None
    can_renew: Optional[bool] = None

    @classmethod
    def from_record(cls, record: BorrowRecord, now: datetime, policy: BorrowPolicy) -> "BorrowOut":
        # the computed fields share names with BorrowRecord methods, so build
        # from the dataclass fields rather than from_attributes
        return cls(
            **asdict(record),
            days_remaining=record.days_remaining(now),
            overdue_days=record.overdue_days(now),
            borrow_days=record.borrow_days(now),
            can_renew=record.can_renew(policy.max_renew_count, now),
        )


class OverdueSweepOut(BaseModel):
    updated: int


class BorrowPolicyOut(BaseModel):
    default_borrow_days: int
    max_renew_count: int
    renew_days: int
    max_borrow_days: int

    @classmethod
    def from_policy(cls, policy: BorrowPolicy) -> "BorrowPolicyOut":
        return cls(**asdict(policy), max_borrow_days=policy.max_borrow_days())
