"""
Inventory ledger for the Library Lending API.

Every change to a book's copy counters goes through this module, and every
change is a single conditional UPDATE: the WHERE clause carries the guard
(``available > 0`` for a reserve, the previously read counters for an admin
correction) and a zero rowcount means another request got there first. No
counter is ever read, modified in Python, and written back.

Only ``adjust`` commits on its own; the other operations are steps inside a
larger unit of work (approve, return, book create/update) and are committed
by their caller.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models.book import Inventory, InventoryUpdate
from ..models.borrow import ReturnCondition
from .repository import ConflictError, InvalidArgumentError, NotFoundError
from .schema import Inventory as InventoryDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)

_RELEASE_TARGET = {
    ReturnCondition.GOOD: "available",
    ReturnCondition.DAMAGED: "damaged",
    ReturnCondition.LOST: "lost",
}


class InventoryLedger:
    """Copy counters for each book, kept balanced at all times."""

    def __init__(self, session: Session):
        self.session = session

    def _get_db(self, book_id: str) -> InventoryDB:
        row = safe_query(
            self.session,
            lambda s: s.execute(
                select(InventoryDB)
                .where(InventoryDB.book_id == book_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get inventory",
        )
        if row is None:
            raise NotFoundError(f"Inventory for book {book_id} not found")
        return row

    def get(self, book_id: str) -> Inventory:
        """Current counters for a book."""
        return Inventory.model_validate(self._get_db(book_id))

    def initialize(self, book_id: str, quantity: int) -> InventoryDB:
        """
        Create the counters for a new book: every copy starts on the shelf.

        The row is added to the session; the caller commits it together with
        the book.
        """
        if quantity < 0:
            raise InvalidArgumentError("Quantity cannot be negative")
        row = InventoryDB(
            book_id=book_id,
            total=quantity,
            available=quantity,
            borrowed=0,
            damaged=0,
            lost=0,
        )
        self.session.add(row)
        return row

    def reserve(self, book_id: str) -> None:
        """
        Move one copy from available to borrowed.

        Raises:
            ConflictError: If no copy is available
        """
        result = self.session.execute(
            update(InventoryDB)
            .where(InventoryDB.book_id == book_id, InventoryDB.available > 0)
            .values(
                available=InventoryDB.available - 1,
                borrowed=InventoryDB.borrowed + 1,
            )
        )
        if result.rowcount != 1:
            raise ConflictError("Book is not available")

    def release(self, book_id: str, condition: ReturnCondition) -> None:
        """
        Move one copy from borrowed to available, damaged or lost.

        Raises:
            ConflictError: If the ledger shows no borrowed copy
        """
        target = _RELEASE_TARGET[ReturnCondition(condition)]
        column = getattr(InventoryDB, target)
        result = self.session.execute(
            update(InventoryDB)
            .where(InventoryDB.book_id == book_id, InventoryDB.borrowed > 0)
            .values({InventoryDB.borrowed: InventoryDB.borrowed - 1, column: column + 1})
        )
        if result.rowcount != 1:
            raise ConflictError("Inventory shows no borrowed copy of this book")

    def adjust(self, book_id: str, changes: InventoryUpdate) -> Inventory:
        """
        Apply an admin correction to the counters.

        Omitted counters keep their current value. The merged counters must
        balance; the write is a compare-and-swap against the values read.

        Raises:
            NotFoundError: If the book has no inventory
            InvalidArgumentError: If the merged counters do not balance
            ConflictError: If the counters changed while the correction was applied
        """
        current = self.get(book_id)
        merged = changes.merged_over(current)

        if not merged.is_balanced:
            raise InvalidArgumentError(
                "Inventory does not balance: available + borrowed + damaged + lost "
                f"= {merged.available + merged.borrowed + merged.damaged + merged.lost}, "
                f"total = {merged.total}"
            )

        result = self.session.execute(
            update(InventoryDB)
            .where(
                InventoryDB.book_id == book_id,
                InventoryDB.total == current.total,
                InventoryDB.available == current.available,
                InventoryDB.borrowed == current.borrowed,
                InventoryDB.damaged == current.damaged,
                InventoryDB.lost == current.lost,
            )
            .values(**merged.model_dump())
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConflictError("Inventory changed concurrently, retry the correction")

        safe_commit(self.session, "adjust inventory")
        logger.info("Inventory for book %s adjusted to %s", book_id, merged.model_dump())
        return self.get(book_id)

    def resize(self, book_id: str, quantity: int) -> None:
        """
        Set the number of copies owned; the difference lands on the shelf.

        Raises:
            InvalidArgumentError: If removing copies would leave fewer than
                zero available
            ConflictError: If the counters changed concurrently
        """
        current = self.get(book_id)
        delta = quantity - current.total
        if delta == 0:
            return
        if current.available + delta < 0:
            raise InvalidArgumentError(
                f"Cannot reduce quantity to {quantity}: only {current.available} "
                "copies are on the shelf"
            )

        result = self.session.execute(
            update(InventoryDB)
            .where(
                InventoryDB.book_id == book_id,
                InventoryDB.total == current.total,
                InventoryDB.available == current.available,
            )
            .values(total=quantity, available=current.available + delta)
        )
        if result.rowcount != 1:
            raise ConflictError("Inventory changed concurrently, retry the update")
