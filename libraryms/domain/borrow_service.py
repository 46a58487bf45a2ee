from dataclasses import dataclass
from typing import Optional

from libraryms.domain.book_copy import BookCopy
from libraryms.domain.reader import Reader


@dataclass(frozen=True)
class Eligibility:
    can: bool
    reason: Optional[str] = None


ELIGIBLE = Eligibility(can=True)


class BorrowDomainService:
    """Borrowing rules that need facts from more than one aggregate.

    Performs no I/O: callers look up the reader's active borrow count and
    overdue flag first and pass them in.
    """

    def can_borrow(self, copy: BookCopy, reader: Reader, current_borrow_count: int,
                   has_overdue_borrows: bool) -> Eligibility:
        # first failing rule wins
        if not copy.has_available_copies():
            return Eligibility(False, "insufficient stock, the book cannot be borrowed right now")
        if not reader.is_active():
            return Eligibility(False, "account disabled, the reader cannot borrow")
        if current_borrow_count >= reader.max_borrow_limit:
            return Eligibility(
                False,
                f"borrow limit reached ({reader.max_borrow_limit} books), return some items first",
            )
        if has_overdue_borrows:
            return Eligibility(False, "has overdue items, must return first")
        return ELIGIBLE

    def can_delete_book(self, has_active_borrows: bool) -> Eligibility:
        if has_active_borrows:
            return Eligibility(False, "the book has unreturned borrows and cannot be deleted")
        return ELIGIBLE

    def can_delete_reader(self, has_active_borrows: bool) -> Eligibility:
        if has_active_borrows:
            return Eligibility(False, "the reader has unreturned items and cannot be deleted")
        return ELIGIBLE
