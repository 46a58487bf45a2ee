from dataclasses import dataclass

from libraryms.core.exceptions import ValidationError


@dataclass(frozen=True)
class BorrowPolicy:
    """Borrowing rules: loan length, renewal cap and renewal length.

    Immutable and compared by value.
    """

    default_borrow_days: int = 30
    max_renew_count: int = 2
    renew_days: int = 30

    def __post_init__(self):
        if self.default_borrow_days <= 0:
            raise ValidationError("default borrow days must be greater than 0")
        if self.default_borrow_days > 365:
            raise ValidationError("default borrow days cannot exceed 365")
        if self.max_renew_count < 0:
            raise ValidationError("max renew count cannot be negative")
        if self.max_renew_count > 5:
            raise ValidationError("max renew count cannot exceed 5")
        if self.renew_days <= 0:
            raise ValidationError("renew days must be greater than 0")

    @classmethod
    def default(cls) -> "BorrowPolicy":
        return cls()

    def max_borrow_days(self) -> int:
        """Longest possible loan: the initial period plus every allowed renewal."""
        return self.default_borrow_days + self.renew_days * self.max_renew_count
