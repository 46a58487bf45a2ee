from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libraryms.core.exceptions import ValidationError


@dataclass(kw_only=True)
class Category:
    id: str
    name: str
    parent_id: Optional[str] = None
    sort: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.update_name(self.name)
        self.update_sort(self.sort)
        self.update_parent(self.parent_id)

    def update_name(self, name: str, now: Optional[datetime] = None) -> None:
        if not name or not name.strip():
            raise ValidationError("category name cannot be blank")
        self.name = name.strip()
        self._touch(now)

    def update_sort(self, sort: int, now: Optional[datetime] = None) -> None:
        if sort < 0:
            raise ValidationError("category sort cannot be negative")
        self.sort = sort
        self._touch(now)

    def update_parent(self, parent_id: Optional[str], now: Optional[datetime] = None) -> None:
        if parent_id and parent_id == self.id:
            raise ValidationError("a category cannot be its own parent")
        self.parent_id = parent_id or None
        self._touch(now)

    def is_root(self) -> bool:
        return self.parent_id is None

    def _touch(self, now):
        if now is not None:
            self.updated_at = now
