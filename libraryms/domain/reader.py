import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from libraryms.core.exceptions import InvalidStateError, ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# mainland China mobile numbers
PHONE_RE = re.compile(r"^1[3-9]\d{9}$")

MAX_BORROW_LIMIT = 20


class ReaderStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def _check_phone(phone: Optional[str]) -> Optional[str]:
    phone = _blank_to_none(phone)
    if phone and not PHONE_RE.match(phone):
        raise ValidationError(f"invalid phone number: {phone}")
    return phone


def _check_email(email: Optional[str]) -> Optional[str]:
    email = _blank_to_none(email)
    if email and not EMAIL_RE.match(email):
        raise ValidationError(f"invalid email address: {email}")
    return email


def _check_limit(limit: int) -> int:
    if limit < 0:
        raise ValidationError("borrow limit cannot be negative")
    if limit > MAX_BORROW_LIMIT:
        raise ValidationError(f"borrow limit cannot exceed {MAX_BORROW_LIMIT}")
    return limit


@dataclass(kw_only=True)
class Reader:
    id: str
    user_id: str
    name: str
    student_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: ReaderStatus = ReaderStatus.ACTIVE
    max_borrow_limit: int = 5
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValidationError("reader requires a user id")
        if not self.name or not self.name.strip():
            raise ValidationError("reader name cannot be blank")
        self.name = self.name.strip()
        self.student_id = _blank_to_none(self.student_id)
        self.phone = _check_phone(self.phone)
        self.email = _check_email(self.email)
        try:
            self.status = ReaderStatus(self.status)
        except ValueError:
            raise ValidationError(f"invalid reader status: {self.status}") from None
        self.max_borrow_limit = _check_limit(self.max_borrow_limit)

    def activate(self, now: Optional[datetime] = None) -> None:
        if self.status == ReaderStatus.ACTIVE:
            raise InvalidStateError("reader is already active")
        self.status = ReaderStatus.ACTIVE
        self._touch(now)

    def deactivate(self, now: Optional[datetime] = None) -> None:
        if self.status == ReaderStatus.INACTIVE:
            raise InvalidStateError("reader is already inactive")
        self.status = ReaderStatus.INACTIVE
        self._touch(now)

    def is_active(self) -> bool:
        return self.status == ReaderStatus.ACTIVE

    def can_borrow(self) -> bool:
        return self.is_active()

    def update_info(self, now: Optional[datetime] = None, **changes) -> None:
        if "name" in changes:
            name = _blank_to_none(changes["name"])
            if name is None:
                raise ValidationError("reader name cannot be blank")
            self.name = name
        if "student_id" in changes:
            self.student_id = _blank_to_none(changes["student_id"])
        if "phone" in changes:
            self.phone = _check_phone(changes["phone"])
        if "email" in changes:
            self.email = _check_email(changes["email"])
        if "max_borrow_limit" in changes and changes["max_borrow_limit"] is not None:
            self.max_borrow_limit = _check_limit(changes["max_borrow_limit"])
        self._touch(now)

    def has_contact_info(self) -> bool:
        return bool(self.phone or self.email)

    def display_name(self) -> str:
        if self.student_id:
            return f"{self.name} ({self.student_id})"
        return self.name

    def _touch(self, now):
        if now is not None:
            self.updated_at = now
