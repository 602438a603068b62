"""
Borrow lifecycle repository for the Library Lending API.

This is the core of the system. It owns every status transition of a borrow
record and is the only caller of the inventory ledger's ``reserve`` and
``release``:

1. **Request**: a reader asks for a book (pending)
2. **Approve / Decline**: staff hand the copy out or refuse
3. **Return**: the copy comes back good, damaged or lost; fines are assessed
4. **Extend**: staff push the due date out for readers without unpaid fines
5. **Cancel**: readers withdraw their own pending request

Each transition is a conditional UPDATE guarded by the expected prior status,
so two staff members acting on the same request cannot both succeed. The
status change, the inventory move and any fine are committed together.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..models.book import BookSummary
from ..models.borrow import (
    ACTIVE_STATUSES,
    BookBorrowCount,
    BorrowerCount,
    BorrowQueryParams,
    BorrowRecord,
    BorrowRequestCreate,
    BorrowStatistics,
    BorrowStatus,
    LendingPolicy,
    OverdueBorrow,
    ReturnCondition,
    ReturnInput,
    is_overdue,
)
from ..models.fine import Fine, FinePolicy, ReturnResult, assess_return_fine, days_late
from ..models.user import UserSummary
from .inventory_repository import InventoryLedger
from .repository import (
    BaseRepository,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    new_id,
)
from .schema import Book as BookDB
from .schema import BorrowRecord as BorrowDB
from .schema import Fine as FineDB
from .schema import User as UserDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)

# Statuses that count as a completed loan in the borrow statistics
_LOAN_STATUSES = (BorrowStatus.BORROWED, BorrowStatus.RETURNED)


class BorrowRepository(BaseRepository[BorrowDB, BorrowRecord]):
    """
    Repository for the borrow lifecycle.

    ``clock`` supplies the current local time; tests pass a fixed clock to
    exercise overdue returns without waiting.
    """

    def __init__(
        self,
        session: Session,
        lending_policy: LendingPolicy | None = None,
        fine_policy: FinePolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(session)
        self.lending_policy = lending_policy or LendingPolicy()
        self.fine_policy = fine_policy or FinePolicy()
        self.clock = clock
        self.ledger = InventoryLedger(session)

    @property
    def model_class(self):
        return BorrowDB

    @property
    def response_schema(self):
        return BorrowRecord

    def _to_response_model(self, db_obj: BorrowDB) -> BorrowRecord:
        record = BorrowRecord.model_validate(db_obj)
        overdue = db_obj.status == BorrowStatus.BORROWED and is_overdue(
            db_obj.due_date, self.clock()
        )
        return record.model_copy(update={"is_overdue": overdue})

    def _get_db(self, id: str) -> BorrowDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB)
                .where(BorrowDB.id == id)
                .options(selectinload(BorrowDB.user), selectinload(BorrowDB.book))
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get borrow record",
        )

    def _require_db(self, id: str) -> BorrowDB:
        db_obj = self._get_db(id)
        if db_obj is None:
            raise NotFoundError(f"Borrow record {id} not found")
        return db_obj

    def _transition(self, borrow_id: str, expected: BorrowStatus, **values) -> bool:
        """Conditional status update; False if the record left ``expected`` meanwhile."""
        result = self.session.execute(
            update(BorrowDB)
            .where(BorrowDB.id == borrow_id, BorrowDB.status == expected)
            .values(**values)
        )
        return result.rowcount == 1

    def _has_active_borrow(self, user_id: str, book_id: str) -> bool:
        row = safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB.id).where(
                    BorrowDB.user_id == user_id,
                    BorrowDB.book_id == book_id,
                    BorrowDB.status.in_(ACTIVE_STATUSES),
                )
            ).first(),
            "Failed to check active borrows",
        )
        return row is not None

    def count_unpaid_fines(self, user_id: str) -> int:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(FineDB)
                .where(FineDB.user_id == user_id, FineDB.paid.is_(False))
            ).scalar(),
            "Failed to count unpaid fines",
        )

    # === Reader operations ===

    def create_request(self, user_id: str, data: BorrowRequestCreate) -> BorrowRecord:
        """
        Open a pending borrow request.

        The due date is fixed now: one day for reading on site, fourteen for
        taking the book home (with the default policy).

        Raises:
            NotFoundError: If the user or book does not exist
            ConflictError: If no copy is available, or the user already has a
                pending or borrowed record for this book
        """
        if self.session.get(UserDB, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        if self.session.get(BookDB, data.book_id) is None:
            raise NotFoundError(f"Book {data.book_id} not found")

        if self.ledger.get(data.book_id).available <= 0:
            raise ConflictError("Book is not available for borrowing")

        if self._has_active_borrow(user_id, data.book_id):
            raise ConflictError(
                "You already have a pending or active borrow request for this book"
            )

        now = self.clock()
        db_record = BorrowDB(
            id=new_id("borrow"),
            user_id=user_id,
            book_id=data.book_id,
            status=BorrowStatus.PENDING,
            is_read_on_site=data.is_read_on_site,
            requested_at=now,
            due_date=self.lending_policy.due_date_for(now, data.is_read_on_site),
            notes=data.notes,
            updated_at=now,
        )
        self.session.add(db_record)
        try:
            safe_commit(self.session, "create borrow request")
        except IntegrityError as e:
            # Lost a race against an identical request
            raise ConflictError(
                "You already have a pending or active borrow request for this book"
            ) from e

        logger.info(
            "Borrow request %s created by user %s for book %s",
            db_record.id,
            user_id,
            data.book_id,
        )
        return self.get(db_record.id)

    def cancel(self, borrow_id: str, user_id: str) -> BorrowRecord:
        """
        Withdraw a pending request. Only its requester may cancel it.

        Raises:
            NotFoundError: If the record does not exist
            ForbiddenError: If the record belongs to another user
            ConflictError: If the record is no longer pending
        """
        db_record = self._require_db(borrow_id)
        if db_record.user_id != user_id:
            raise ForbiddenError("You can only cancel your own requests")
        if db_record.status != BorrowStatus.PENDING:
            raise ConflictError("Only pending requests can be cancelled")

        if not self._transition(
            borrow_id,
            BorrowStatus.PENDING,
            status=BorrowStatus.DECLINED,
            updated_at=self.clock(),
        ):
            self.session.rollback()
            raise ConflictError("Only pending requests can be cancelled")

        safe_commit(self.session, "cancel borrow request")
        logger.info("Borrow request %s cancelled by user %s", borrow_id, user_id)
        return self.get(borrow_id)

    def user_requests(self, user_id: str) -> list[BorrowRecord]:
        """All of a user's borrow records, newest first."""
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB)
                .where(BorrowDB.user_id == user_id)
                .options(selectinload(BorrowDB.book))
                .order_by(desc(BorrowDB.requested_at), BorrowDB.id)
            )
            .scalars()
            .all(),
            "Failed to get user borrow requests",
        )
        return [self._to_response_model(row) for row in rows]

    def user_history(
        self,
        user_id: str,
        status: BorrowStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BorrowRecord]:
        query = (
            select(BorrowDB)
            .where(BorrowDB.user_id == user_id)
            .options(selectinload(BorrowDB.book))
            .order_by(desc(BorrowDB.requested_at), BorrowDB.id)
        )
        if status is not None:
            query = query.where(BorrowDB.status == status)
        return self._paginate(query, pagination or PaginationParams())

    # === Staff operations ===

    def list_records(
        self,
        params: BorrowQueryParams,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BorrowRecord]:
        """
        Staff listing. ``is_overdue`` narrows to borrowed records past due and
        takes precedence over a ``status`` filter.
        """
        query = select(BorrowDB).options(
            selectinload(BorrowDB.user), selectinload(BorrowDB.book)
        )
        if params.is_overdue:
            query = query.where(
                BorrowDB.status == BorrowStatus.BORROWED, BorrowDB.due_date < self.clock()
            )
        elif params.status is not None:
            query = query.where(BorrowDB.status == params.status)
        if params.user_id:
            query = query.where(BorrowDB.user_id == params.user_id)
        if params.book_id:
            query = query.where(BorrowDB.book_id == params.book_id)

        query = query.order_by(desc(BorrowDB.requested_at), BorrowDB.id)
        return self._paginate(query, pagination or PaginationParams())

    def approve(self, borrow_id: str, staff_id: str) -> BorrowRecord:
        """
        Hand out a copy: pending -> borrowed, one copy available -> borrowed.

        Both changes commit together or not at all.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is not pending or no copy is available
        """
        db_record = self._require_db(borrow_id)
        if db_record.status != BorrowStatus.PENDING:
            raise ConflictError("Only pending requests can be approved")
        if db_record.book_id is None:
            raise ConflictError("The requested book no longer exists")

        now = self.clock()
        if not self._transition(
            borrow_id,
            BorrowStatus.PENDING,
            status=BorrowStatus.BORROWED,
            borrow_date=now,
            processed_by=staff_id,
            updated_at=now,
        ):
            self.session.rollback()
            raise ConflictError("Only pending requests can be approved")

        try:
            self.ledger.reserve(db_record.book_id)
        except ConflictError:
            self.session.rollback()
            raise ConflictError("Book is not available for borrowing") from None

        safe_commit(self.session, "approve borrow request")
        logger.info("Borrow request %s approved by %s", borrow_id, staff_id)
        return self.get(borrow_id)

    def decline(self, borrow_id: str, staff_id: str, reason: str | None = None) -> BorrowRecord:
        """
        Refuse a pending request; the reason, when given, replaces the notes.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is not pending
        """
        db_record = self._require_db(borrow_id)
        if db_record.status != BorrowStatus.PENDING:
            raise ConflictError("Only pending requests can be declined")

        values = {
            "status": BorrowStatus.DECLINED,
            "processed_by": staff_id,
            "updated_at": self.clock(),
        }
        if reason:
            values["notes"] = reason

        if not self._transition(borrow_id, BorrowStatus.PENDING, **values):
            self.session.rollback()
            raise ConflictError("Only pending requests can be declined")

        safe_commit(self.session, "decline borrow request")
        logger.info("Borrow request %s declined by %s", borrow_id, staff_id)
        return self.get(borrow_id)

    def return_book(self, borrow_id: str, staff_id: str, data: ReturnInput) -> ReturnResult:
        """
        Take a copy back and assess any fine.

        A lost copy closes the record as ``lost``; anything else as
        ``returned``. A fine is created only when the assessed amount is
        positive, and is linked back to the record.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is not currently borrowed
        """
        db_record = self._require_db(borrow_id)
        if db_record.status != BorrowStatus.BORROWED:
            raise ConflictError("Only borrowed books can be returned")
        if db_record.book_id is None:
            raise ConflictError("The borrowed book no longer exists")

        condition = ReturnCondition(data.condition)
        now = self.clock()
        overdue = is_overdue(db_record.due_date, now)

        values = {
            "status": BorrowStatus.LOST if condition == ReturnCondition.LOST else BorrowStatus.RETURNED,
            "return_date": now,
            "return_condition": condition,
            "processed_by": staff_id,
            "updated_at": now,
        }
        if data.notes:
            values["notes"] = data.notes

        if not self._transition(borrow_id, BorrowStatus.BORROWED, **values):
            self.session.rollback()
            raise ConflictError("Only borrowed books can be returned")

        try:
            self.ledger.release(db_record.book_id, condition)
        except ConflictError:
            self.session.rollback()
            raise

        assessment = assess_return_fine(
            db_record.due_date, now, condition, db_record.book.price, self.fine_policy
        )
        db_fine = None
        if assessment is not None:
            db_fine = FineDB(
                id=new_id("fine"),
                user_id=db_record.user_id,
                borrow_record_id=borrow_id,
                reason=assessment.reason,
                amount=assessment.amount,
                paid=False,
                processed_by=staff_id,
                note=assessment.note or None,
                created_at=now,
                updated_at=now,
            )
            self.session.add(db_fine)
            self.session.flush()
            self.session.execute(
                update(BorrowDB).where(BorrowDB.id == borrow_id).values(fine_id=db_fine.id)
            )

        safe_commit(self.session, "return book")
        logger.info(
            "Borrow record %s returned (%s, overdue=%s) by %s",
            borrow_id,
            condition.value,
            overdue,
            staff_id,
        )
        if db_fine is not None:
            logger.info(
                "Fine %s of %.2f (%s) issued to user %s",
                db_fine.id,
                db_fine.amount,
                assessment.reason.value,
                db_record.user_id,
            )

        return ReturnResult(
            borrow_record=self.get(borrow_id),
            fine=Fine.model_validate(db_fine) if db_fine is not None else None,
            is_overdue=overdue,
        )

    def extension_days(self, days: int | None = None) -> int:
        """
        Resolve a requested extension: the configured default when omitted.

        Raises:
            InvalidArgumentError: If ``days`` is outside 1..max_extension_days
        """
        if days is None:
            days = self.lending_policy.default_extension_days
        if days < 1 or days > self.lending_policy.max_extension_days:
            raise InvalidArgumentError(
                f"Extension must be between 1 and {self.lending_policy.max_extension_days} days"
            )
        return days

    def extend(self, borrow_id: str, staff_id: str, days: int | None = None) -> BorrowRecord:
        """
        Push the due date out by ``days`` (the configured default when omitted).

        Raises:
            InvalidArgumentError: If ``days`` is outside the allowed extension
            NotFoundError: If the record does not exist
            ConflictError: If the record is not borrowed or the user has any
                unpaid fine
        """
        days = self.extension_days(days)

        db_record = self._require_db(borrow_id)
        if db_record.status != BorrowStatus.BORROWED:
            raise ConflictError("Only currently borrowed books can be extended")

        if self.count_unpaid_fines(db_record.user_id) > 0:
            raise ConflictError("Cannot extend borrow period. User has outstanding fines")

        old_due = db_record.due_date
        result = self.session.execute(
            update(BorrowDB)
            .where(
                BorrowDB.id == borrow_id,
                BorrowDB.status == BorrowStatus.BORROWED,
                BorrowDB.due_date == old_due,
            )
            .values(due_date=old_due + timedelta(days=days), updated_at=self.clock())
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConflictError("Borrow record changed while extending, retry")

        safe_commit(self.session, "extend borrow period")
        logger.info("Borrow record %s extended by %d days by %s", borrow_id, days, staff_id)
        return self.get(borrow_id)

    # === Statistics ===

    def statistics(
        self, from_date: datetime | None = None, to_date: datetime | None = None
    ) -> BorrowStatistics:
        """
        Counts per status, the current overdue list, and the ten most borrowed
        books and most active borrowers. The date window applies to the
        request time; the overdue list always reflects now.
        """
        window = []
        if from_date is not None:
            window.append(BorrowDB.requested_at >= from_date)
        if to_date is not None:
            window.append(BorrowDB.requested_at <= to_date)

        status_rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB.status, func.count()).where(*window).group_by(BorrowDB.status)
            ).all(),
            "Failed to count borrow statuses",
        )
        summary = {BorrowStatus(status).value: count for status, count in status_rows}

        now = self.clock()
        overdue_rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB)
                .where(BorrowDB.status == BorrowStatus.BORROWED, BorrowDB.due_date < now)
                .options(selectinload(BorrowDB.user), selectinload(BorrowDB.book))
                .order_by(BorrowDB.due_date)
            )
            .scalars()
            .all(),
            "Failed to get overdue records",
        )
        overdue_books = [
            OverdueBorrow(
                borrow_id=row.id,
                user=UserSummary.model_validate(row.user) if row.user else None,
                book=BookSummary.model_validate(row.book) if row.book else None,
                due_date=row.due_date,
                days_late=days_late(row.due_date, now),
            )
            for row in overdue_rows
        ]

        loan_count = func.count(BorrowDB.id).label("borrow_count")
        loans = [BorrowDB.status.in_(_LOAN_STATUSES), *window]

        top_books = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB, loan_count)
                .join(BorrowDB, BorrowDB.book_id == BookDB.id)
                .where(*loans)
                .group_by(BookDB.id)
                .order_by(desc("borrow_count"), BookDB.title)
                .limit(10)
            ).all(),
            "Failed to get most borrowed books",
        )
        top_borrowers = safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB, loan_count)
                .join(BorrowDB, BorrowDB.user_id == UserDB.id)
                .where(*loans)
                .group_by(UserDB.id)
                .order_by(desc("borrow_count"), UserDB.name)
                .limit(10)
            ).all(),
            "Failed to get most active borrowers",
        )

        return BorrowStatistics(
            summary=summary,
            overdue_books=overdue_books,
            top_borrowed_books=[
                BookBorrowCount(book=BookSummary.model_validate(book), borrow_count=count)
                for book, count in top_books
            ],
            top_borrowers=[
                BorrowerCount(user=UserSummary.model_validate(user), borrow_count=count)
                for user, count in top_borrowers
            ],
        )
