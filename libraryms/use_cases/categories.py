import logging
from typing import List

from libraryms.core.clock import Clock, system_clock
from libraryms.core.exceptions import ConflictError, NotFoundError
from libraryms.domain.category import Category
from libraryms.domain.repositories import UnitOfWork
from libraryms.schemas.schemas import CategoryCreate, CategoryUpdate
from libraryms.use_cases.common import new_id

logger = logging.getLogger(__name__)


class CreateCategory:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, dto: CategoryCreate) -> Category:
        now = self.clock.now()
        category = Category(id=new_id(), created_at=now, updated_at=now, **dto.model_dump())
        with self.uow:
            if self.uow.categories.exists_by_name(category.name):
                raise ConflictError(f"category name already exists: {category.name}")
            if category.parent_id and self.uow.categories.find_by_id(category.parent_id) is None:
                raise NotFoundError.for_entity("parent category", category.parent_id)
            self.uow.categories.save(category)
            self.uow.commit()
        logger.info(f"Created category id={category.id} name={category.name}")
        return category


class UpdateCategory:
    def __init__(self, uow: UnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def execute(self, category_id: str, dto: CategoryUpdate) -> Category:
        data = dto.model_dump(exclude_unset=True)
        now = self.clock.now()
        with self.uow:
            category = self.uow.categories.find_by_id(category_id)
            if category is None:
                raise NotFoundError.for_entity("category", category_id)
            if "name" in data:
                category.update_name(data["name"], now)
                if self.uow.categories.exists_by_name(category.name, exclude_id=category_id):
                    raise ConflictError(f"category name already exists: {category.name}")
            if "parent_id" in data:
                parent_id = data["parent_id"]
                if parent_id and self.uow.categories.find_by_id(parent_id) is None:
                    raise NotFoundError.for_entity("parent category", parent_id)
                category.update_parent(parent_id, now)
            if data.get("sort") is not None:
                category.update_sort(data["sort"], now)
            self.uow.categories.save(category)
            self.uow.commit()
        logger.info(f"Updated category id={category.id}")
        return category


class DeleteCategory:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self, category_id: str) -> None:
        with self.uow:
            if self.uow.categories.find_by_id(category_id) is None:
                raise NotFoundError.for_entity("category", category_id)
            if self.uow.categories.has_children(category_id):
                raise ConflictError("the category has sub-categories and cannot be deleted")
            books = self.uow.books.count_by_category(category_id)
            if books:
                raise ConflictError(f"the category still holds {books} book(s) and cannot be deleted")
            self.uow.categories.delete(category_id)
            self.uow.commit()
        logger.info(f"Deleted category id={category_id}")


class GetCategories:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def execute(self) -> List[Category]:
        return self.uow.categories.find_all()

    def get_by_id(self, category_id: str) -> Category:
        category = self.uow.categories.find_by_id(category_id)
        if category is None:
            raise NotFoundError.for_entity("category", category_id)
        return category
