"""
Bookshelf repository: CRUD, shelf contents, moving books between shelves and
per-shelf inventory statistics.

Shelf codes are unique; a shelf still holding books cannot be deleted.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models.book import BookshelfWithBooks
from ..models.catalog import (
    Bookshelf,
    BookshelfCreate,
    BookshelfStats,
    BookshelfSummary,
    BookshelfUpdate,
    MoveBooksInput,
    MoveBooksResult,
)
from .category_repository import inventory_sum_columns, inventory_totals
from .repository import BaseRepository, ConflictError, DuplicateError, NotFoundError, new_id
from .schema import Book as BookDB
from .schema import Bookshelf as BookshelfDB
from .schema import Inventory as InventoryDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookshelfRepository(BaseRepository[BookshelfDB, Bookshelf]):
    @property
    def model_class(self):
        return BookshelfDB

    @property
    def response_schema(self):
        return Bookshelf

    def list_all(self) -> list[Bookshelf]:
        rows = safe_query(
            self.session,
            lambda s: s.execute(select(BookshelfDB).order_by(BookshelfDB.code)).scalars().all(),
            "Failed to list bookshelves",
        )
        return [self._to_response_model(row) for row in rows]

    def get_with_books(self, bookshelf_id: str) -> BookshelfWithBooks:
        db_shelf = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookshelfDB)
                .where(BookshelfDB.id == bookshelf_id)
                .options(selectinload(BookshelfDB.books))
            ).scalar_one_or_none(),
            "Failed to get bookshelf",
        )
        if db_shelf is None:
            raise NotFoundError(f"Bookshelf {bookshelf_id} not found")
        return BookshelfWithBooks.model_validate(db_shelf)

    def _ensure_code_free(self, code: str, exclude_id: str | None = None) -> None:
        query = select(BookshelfDB.id).where(BookshelfDB.code == code)
        if exclude_id:
            query = query.where(BookshelfDB.id != exclude_id)
        if safe_query(self.session, lambda s: s.execute(query).first(), "Failed to check code"):
            raise DuplicateError(f"Bookshelf code '{code}' already exists")

    def create(self, data: BookshelfCreate) -> Bookshelf:
        """
        Raises:
            DuplicateError: If the shelf code is taken
        """
        self._ensure_code_free(data.code)
        db_shelf = BookshelfDB(id=new_id("shelf"), **data.model_dump())
        self.session.add(db_shelf)
        try:
            safe_commit(self.session, "create bookshelf")
        except IntegrityError as e:
            raise DuplicateError(f"Bookshelf code '{data.code}' already exists") from e
        logger.info("Bookshelf %s created with code %s", db_shelf.id, db_shelf.code)
        return self._to_response_model(db_shelf)

    def update(self, bookshelf_id: str, data: BookshelfUpdate) -> Bookshelf:
        db_shelf = self._require_db(bookshelf_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("code"):
            self._ensure_code_free(changes["code"], exclude_id=bookshelf_id)

        for field, value in changes.items():
            setattr(db_shelf, field, value)

        try:
            safe_commit(self.session, "update bookshelf")
        except IntegrityError as e:
            raise DuplicateError("Bookshelf code already exists") from e
        self.session.refresh(db_shelf)
        return self._to_response_model(db_shelf)

    def delete(self, bookshelf_id: str) -> None:
        """
        Raises:
            NotFoundError: If the shelf does not exist
            ConflictError: If books are still shelved on it
        """
        db_shelf = self._require_db(bookshelf_id)
        book_count = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(BookDB).where(BookDB.bookshelf_id == bookshelf_id)
            ).scalar(),
            "Failed to count shelved books",
        )
        if book_count:
            raise ConflictError(
                f"Cannot delete bookshelf: it holds {book_count} book(s); move them first"
            )

        self.session.delete(db_shelf)
        safe_commit(self.session, "delete bookshelf")
        logger.info("Bookshelf %s deleted", bookshelf_id)

    def move_books(self, data: MoveBooksInput) -> MoveBooksResult:
        """
        Re-shelve books. Only books currently on the source shelf move; other
        ids in the request are ignored.

        Raises:
            NotFoundError: If either shelf does not exist
        """
        source = self._get_db(data.from_bookshelf_id)
        target = self._get_db(data.to_bookshelf_id)
        if source is None or target is None:
            raise NotFoundError("One or both bookshelves not found")

        result = self.session.execute(
            update(BookDB)
            .where(BookDB.id.in_(data.book_ids), BookDB.bookshelf_id == source.id)
            .values(bookshelf_id=target.id)
        )
        safe_commit(self.session, "move books")

        moved = result.rowcount
        logger.info("Moved %d book(s) from shelf %s to %s", moved, source.code, target.code)
        return MoveBooksResult(
            moved_count=moved,
            message=f"Successfully moved {moved} books from {source.name} to {target.name}",
        )

    def statistics(self) -> list[BookshelfStats]:
        """Number of titles and summed copy counters per shelf."""
        query = (
            select(BookshelfDB, *inventory_sum_columns())
            .outerjoin(BookDB, BookDB.bookshelf_id == BookshelfDB.id)
            .outerjoin(InventoryDB, InventoryDB.book_id == BookDB.id)
            .group_by(BookshelfDB.id)
            .order_by(BookshelfDB.code)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to compute bookshelf stats"
        )
        return [
            BookshelfStats(
                bookshelf=BookshelfSummary.model_validate(row[0]),
                **inventory_totals(row),
            )
            for row in rows
        ]
