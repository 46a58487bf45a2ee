import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from libraryms.core.exceptions import ValidationError

_ISBN_SEPARATORS = re.compile(r"[-\s]")


def normalize_isbn(isbn: str) -> str:
    """Strip hyphens and spaces and check for a 10 or 13 digit ISBN."""
    cleaned = _ISBN_SEPARATORS.sub("", isbn)
    if len(cleaned) not in (10, 13):
        raise ValidationError("ISBN must be 10 or 13 digits")
    if not cleaned.isdigit():
        raise ValidationError("ISBN may only contain digits")
    return cleaned


def _required(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{label} cannot be blank")
    return value.strip()


@dataclass(kw_only=True)
class Book:
    """Bibliographic metadata. Stock lives on the book's copies."""

    id: str
    title: str
    author: str
    publisher: str
    category_id: str
    isbn: Optional[str] = None
    cover_file_id: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.isbn = normalize_isbn(self.isbn) if self.isbn else None
        self.title = _required(self.title, "title")
        self.author = _required(self.author, "author")
        self.publisher = _required(self.publisher, "publisher")
        if not self.category_id:
            raise ValidationError("category id cannot be empty")

    def update_info(self, now: Optional[datetime] = None, **changes) -> None:
        """Apply metadata changes; only keys present in ``changes`` are touched."""
        if "title" in changes:
            self.title = _required(changes["title"], "title")
        if "author" in changes:
            self.author = _required(changes["author"], "author")
        if "publisher" in changes:
            self.publisher = _required(changes["publisher"], "publisher")
        if "isbn" in changes:
            self.isbn = normalize_isbn(changes["isbn"]) if changes["isbn"] else None
        if "description" in changes:
            description = changes["description"]
            self.description = description.strip() if description and description.strip() else None
        if "publish_date" in changes:
            self.publish_date = changes["publish_date"]
        if now is not None:
            self.updated_at = now

    def update_category(self, category_id: str, now: Optional[datetime] = None) -> None:
        if not category_id:
            raise ValidationError("category id cannot be empty")
        self.category_id = category_id
        if now is not None:
            self.updated_at = now

    def update_cover_file(self, file_id: Optional[str], now: Optional[datetime] = None) -> None:
        self.cover_file_id = file_id or None
        if now is not None:
            self.updated_at = now

    def has_cover(self) -> bool:
        return self.cover_file_id is not None

    def has_isbn(self) -> bool:
        return self.isbn is not None
