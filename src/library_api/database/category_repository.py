"""
Category repository: CRUD and per-category inventory statistics.

Category names are unique; a category still attached to any book cannot be
deleted.
"""

import logging

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError

from ..models.catalog import (
    Category,
    CategoryCreate,
    CategoryStats,
    CategoryUpdate,
    InventoryTotals,
)
from .repository import BaseRepository, ConflictError, DuplicateError, new_id
from .schema import Book as BookDB
from .schema import Category as CategoryDB
from .schema import Inventory as InventoryDB
from .schema import book_categories
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


def inventory_sum_columns():
    """Aggregate columns shared by the category and bookshelf statistics."""
    return (
        func.count(distinct(BookDB.id)).label("book_titles"),
        func.coalesce(func.sum(InventoryDB.total), 0).label("total_books"),
        func.coalesce(func.sum(InventoryDB.available), 0).label("available_books"),
        func.coalesce(func.sum(InventoryDB.borrowed), 0).label("borrowed_books"),
        func.coalesce(func.sum(InventoryDB.damaged), 0).label("damaged_books"),
        func.coalesce(func.sum(InventoryDB.lost), 0).label("lost_books"),
    )


def inventory_totals(row) -> dict[str, int]:
    return {field: int(getattr(row, field)) for field in InventoryTotals.model_fields}


class CategoryRepository(BaseRepository[CategoryDB, Category]):
    @property
    def model_class(self):
        return CategoryDB

    @property
    def response_schema(self):
        return Category

    def list_all(self) -> list[Category]:
        rows = safe_query(
            self.session,
            lambda s: s.execute(select(CategoryDB).order_by(CategoryDB.name)).scalars().all(),
            "Failed to list categories",
        )
        return [self._to_response_model(row) for row in rows]

    def _ensure_name_free(self, name: str, exclude_id: str | None = None) -> None:
        query = select(CategoryDB.id).where(func.lower(CategoryDB.name) == name.lower())
        if exclude_id:
            query = query.where(CategoryDB.id != exclude_id)
        if safe_query(self.session, lambda s: s.execute(query).first(), "Failed to check name"):
            raise DuplicateError(f"Category '{name}' already exists")

    def create(self, data: CategoryCreate) -> Category:
        """
        Raises:
            DuplicateError: If a category with the same name exists
        """
        self._ensure_name_free(data.name)
        db_category = CategoryDB(id=new_id("category"), **data.model_dump())
        self.session.add(db_category)
        try:
            safe_commit(self.session, "create category")
        except IntegrityError as e:
            raise DuplicateError(f"Category '{data.name}' already exists") from e
        logger.info("Category %s created: %s", db_category.id, db_category.name)
        return self._to_response_model(db_category)

    def update(self, category_id: str, data: CategoryUpdate) -> Category:
        db_category = self._require_db(category_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name"):
            self._ensure_name_free(changes["name"], exclude_id=category_id)

        for field, value in changes.items():
            setattr(db_category, field, value)

        try:
            safe_commit(self.session, "update category")
        except IntegrityError as e:
            raise DuplicateError("Category name already exists") from e
        self.session.refresh(db_category)
        return self._to_response_model(db_category)

    def delete(self, category_id: str) -> None:
        """
        Raises:
            NotFoundError: If the category does not exist
            ConflictError: If any book is filed under it
        """
        db_category = self._require_db(category_id)
        in_use = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(book_categories)
                .where(book_categories.c.category_id == category_id)
            ).scalar(),
            "Failed to count category books",
        )
        if in_use:
            raise ConflictError(f"Cannot delete category: it is used by {in_use} book(s)")

        self.session.delete(db_category)
        safe_commit(self.session, "delete category")
        logger.info("Category %s deleted", category_id)

    def statistics(self) -> list[CategoryStats]:
        """Number of titles and summed copy counters per category."""
        query = (
            select(CategoryDB, *inventory_sum_columns())
            .outerjoin(book_categories, book_categories.c.category_id == CategoryDB.id)
            .outerjoin(BookDB, BookDB.id == book_categories.c.book_id)
            .outerjoin(InventoryDB, InventoryDB.book_id == BookDB.id)
            .group_by(CategoryDB.id)
            .order_by(CategoryDB.name)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to compute category stats"
        )
        return [
            CategoryStats(
                category=self._to_response_model(row[0]),
                **inventory_totals(row),
            )
            for row in rows
        ]
