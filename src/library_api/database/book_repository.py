"""
Book repository implementation for the Library Lending API.

Catalog data access: search with filters and pagination, the book detail
page (inventory, reviews, average rating), and admin writes. Creating a book
also creates its inventory; changing ``quantity`` resizes it through the
ledger in the same transaction.
"""

import enum
import logging

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models.book import (
    BookCreate,
    BookDetail,
    BookSearchParams,
    BookUpdate,
    BookWithInventory,
)
from ..models.borrow import ACTIVE_STATUSES
from ..models.review import Review
from .inventory_repository import InventoryLedger
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    new_id,
)
from .schema import Book as BookDB
from .schema import Bookshelf as BookshelfDB
from .schema import BorrowRecord as BorrowDB
from .schema import Category as CategoryDB
from .schema import Inventory as InventoryDB
from .schema import Review as ReviewDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookSortOptions(str, enum.Enum):
    """Sorting options for book queries."""

    CREATED_AT = "created_at"
    TITLE = "title"
    AUTHOR = "author"
    PUBLISH_YEAR = "publish_year"
    PRICE = "price"


_SORT_COLUMNS = {
    BookSortOptions.CREATED_AT: BookDB.created_at,
    BookSortOptions.TITLE: BookDB.title,
    BookSortOptions.AUTHOR: BookDB.author,
    BookSortOptions.PUBLISH_YEAR: BookDB.publish_year,
    BookSortOptions.PRICE: BookDB.price,
}


def _book_options():
    return (
        selectinload(BookDB.categories),
        selectinload(BookDB.bookshelf),
        selectinload(BookDB.inventory),
    )


class BookRepository(BaseRepository[BookDB, BookWithInventory]):
    """Repository for book data access."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookWithInventory

    def _get_db(self, id: str) -> BookDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB)
                .where(BookDB.id == id)
                .options(*_book_options())
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get book",
        )

    def search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BookWithInventory]:
        """
        Search the catalog.

        ``query`` matches title, author, ISBN or description; ``category`` and
        ``bookshelf`` are ids; ``available_only`` keeps books with at least one
        copy on the shelf. The availability filter is part of the SQL query, so
        page counts stay correct.
        """
        query = select(BookDB).options(*_book_options())
        filters = []

        if search_params.query:
            term = f"%{search_params.query}%"
            filters.append(
                or_(
                    BookDB.title.ilike(term),
                    BookDB.author.ilike(term),
                    BookDB.isbn.like(term),
                    BookDB.description.ilike(term),
                )
            )

        if search_params.category:
            filters.append(BookDB.categories.any(CategoryDB.id == search_params.category))

        if search_params.bookshelf:
            filters.append(BookDB.bookshelf_id == search_params.bookshelf)

        if search_params.author:
            filters.append(BookDB.author.ilike(f"%{search_params.author}%"))

        if search_params.publish_year:
            filters.append(BookDB.publish_year == search_params.publish_year)

        if search_params.available_only:
            query = query.join(InventoryDB, InventoryDB.book_id == BookDB.id)
            filters.append(InventoryDB.available > 0)

        if filters:
            query = query.where(and_(*filters))

        sort_column = _SORT_COLUMNS[BookSortOptions(search_params.sort_by)]
        query = query.order_by(
            sort_column.desc() if search_params.sort_order == "desc" else sort_column.asc(),
            BookDB.id,
        )

        return self._paginate(query, pagination or PaginationParams())

    def get_detail(self, book_id: str) -> BookDetail:
        """
        Book page: catalog data, copy counters, reviews newest first and the
        average rating rounded to one decimal (0 when unreviewed).
        """
        db_book = self._require_db(book_id)
        reviews = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReviewDB)
                .where(ReviewDB.book_id == book_id)
                .options(selectinload(ReviewDB.user))
                .order_by(ReviewDB.created_at.desc())
            )
            .scalars()
            .all(),
            "Failed to get book reviews",
        )

        average = sum(r.rating for r in reviews) / len(reviews) if reviews else 0.0
        book = BookWithInventory.model_validate(db_book)
        return BookDetail(
            **book.model_dump(),
            reviews=[Review.model_validate(r) for r in reviews],
            average_rating=round(average, 1),
            total_reviews=len(reviews),
        )

    def _resolve_categories(self, category_ids: list[str]) -> list[CategoryDB]:
        if not category_ids:
            return []
        categories = safe_query(
            self.session,
            lambda s: s.execute(select(CategoryDB).where(CategoryDB.id.in_(category_ids)))
            .scalars()
            .all(),
            "Failed to get categories",
        )
        missing = set(category_ids) - {c.id for c in categories}
        if missing:
            raise NotFoundError(f"Category not found: {', '.join(sorted(missing))}")
        return list(categories)

    def _check_bookshelf(self, bookshelf_id: str | None) -> None:
        if bookshelf_id is None:
            return
        if self.session.get(BookshelfDB, bookshelf_id) is None:
            raise NotFoundError(f"Bookshelf {bookshelf_id} not found")

    def _ensure_isbn_free(self, isbn: str, exclude_id: str | None = None) -> None:
        query = select(BookDB.id).where(BookDB.isbn == isbn)
        if exclude_id:
            query = query.where(BookDB.id != exclude_id)
        if safe_query(self.session, lambda s: s.execute(query).first(), "Failed to check ISBN"):
            raise DuplicateError(f"Book with ISBN {isbn} already exists")

    def create(self, data: BookCreate) -> BookWithInventory:
        """
        Add a book and its inventory (``quantity`` copies, all available).

        Raises:
            DuplicateError: If the ISBN is already catalogued
            NotFoundError: If a category or the bookshelf does not exist
        """
        self._ensure_isbn_free(data.isbn)
        categories = self._resolve_categories(data.category_ids)
        self._check_bookshelf(data.bookshelf_id)

        fields = data.model_dump(exclude={"category_ids", "quantity"})
        db_book = BookDB(id=new_id("book"), categories=categories, **fields)
        self.session.add(db_book)
        InventoryLedger(self.session).initialize(db_book.id, data.quantity)

        try:
            safe_commit(self.session, "create book")
        except IntegrityError as e:
            raise DuplicateError(f"Book with ISBN {data.isbn} already exists") from e

        logger.info("Book %s created: %s (%d copies)", db_book.id, db_book.title, data.quantity)
        return self.get(db_book.id)

    def update(self, book_id: str, data: BookUpdate) -> BookWithInventory:
        """
        Update catalog fields; a ``quantity`` resizes the inventory.

        Raises:
            NotFoundError: If the book, a category or the bookshelf does not exist
            DuplicateError: If the new ISBN belongs to another book
            InvalidArgumentError: If the new quantity is below the copies out
        """
        db_book = self._require_db(book_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("isbn"):
            self._ensure_isbn_free(changes["isbn"], exclude_id=book_id)
        if "category_ids" in changes:
            db_book.categories = self._resolve_categories(changes.pop("category_ids") or [])
        if "bookshelf_id" in changes:
            self._check_bookshelf(changes["bookshelf_id"])

        quantity = changes.pop("quantity", None)
        for field, value in changes.items():
            if value is None and field in ("title", "isbn", "author", "price"):
                continue
            setattr(db_book, field, value)

        if quantity is not None:
            InventoryLedger(self.session).resize(book_id, quantity)

        try:
            safe_commit(self.session, "update book")
        except IntegrityError as e:
            raise DuplicateError("Book with this ISBN already exists") from e

        return self.get(book_id)

    def count_active_borrows(self, book_id: str) -> int:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(BorrowDB)
                .where(BorrowDB.book_id == book_id, BorrowDB.status.in_(ACTIVE_STATUSES))
            ).scalar(),
            "Failed to count active borrows",
        )

    def delete(self, book_id: str) -> None:
        """
        Delete a book with its inventory and reviews. Past borrow records are
        kept and detached from the book.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the book has pending or borrowed records
        """
        db_book = self._require_db(book_id)
        active = self.count_active_borrows(book_id)
        if active:
            raise ConflictError(
                f"Cannot delete book: it has {active} pending or borrowed record(s)"
            )

        self.session.delete(db_book)
        safe_commit(self.session, "delete book")
        logger.info("Book %s deleted", book_id)
