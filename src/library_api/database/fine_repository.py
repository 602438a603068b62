"""
Fine repository for the Library Lending API.

Return-time fines are created by the borrow lifecycle; this repository
covers everything after that: listing, manual fines issued by staff, payment
and deletion, and reporting. A paid fine is final: paying it again or
deleting it is a conflict.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import case, delete, desc, extract, func, select, update
from sqlalchemy.orm import Session, selectinload

from ..models.fine import (
    Fine,
    FineBreakdown,
    FineCreate,
    FinePayment,
    FineQueryParams,
    FineStatistics,
    MonthlyFineTrend,
    UserFines,
    UserFineTotal,
)
from ..models.user import UserSummary
from .repository import (
    BaseRepository,
    ConflictError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    new_id,
)
from .schema import BorrowRecord as BorrowDB
from .schema import Fine as FineDB
from .schema import User as UserDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class FineList(BaseModel):
    """Staff fine listing with the library-wide unpaid total."""

    fines: PaginatedResponse
    total_unpaid_amount: float


class FineRepository(BaseRepository[FineDB, Fine]):
    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self):
        return FineDB

    @property
    def response_schema(self):
        return Fine

    def _unpaid_total(self, user_id: str | None = None) -> float:
        query = select(func.coalesce(func.sum(FineDB.amount), 0.0)).where(FineDB.paid.is_(False))
        if user_id is not None:
            query = query.where(FineDB.user_id == user_id)
        total = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to sum unpaid fines"
        )
        return float(total or 0.0)

    def count_unpaid(self, user_id: str) -> int:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count())
                .select_from(FineDB)
                .where(FineDB.user_id == user_id, FineDB.paid.is_(False))
            ).scalar(),
            "Failed to count unpaid fines",
        )

    def list_fines(
        self,
        params: FineQueryParams,
        pagination: PaginationParams | None = None,
    ) -> FineList:
        query = select(FineDB).options(selectinload(FineDB.user))
        if params.paid is not None:
            query = query.where(FineDB.paid.is_(params.paid))
        if params.user_id:
            query = query.where(FineDB.user_id == params.user_id)
        if params.reason is not None:
            query = query.where(FineDB.reason == params.reason)
        query = query.order_by(desc(FineDB.created_at), FineDB.id)

        return FineList(
            fines=self._paginate(query, pagination or PaginationParams()),
            total_unpaid_amount=self._unpaid_total(),
        )

    def user_fines(self, user_id: str, paid: bool | None = None) -> UserFines:
        """A reader's fines, newest first, and how much they still owe."""
        query = select(FineDB).where(FineDB.user_id == user_id)
        if paid is not None:
            query = query.where(FineDB.paid.is_(paid))
        rows = safe_query(
            self.session,
            lambda s: s.execute(query.order_by(desc(FineDB.created_at), FineDB.id)).scalars().all(),
            "Failed to get user fines",
        )
        return UserFines(
            fines=[self._to_response_model(row) for row in rows],
            total_unpaid_amount=self._unpaid_total(user_id),
        )

    def create_manual(self, staff_id: str, data: FineCreate) -> Fine:
        """
        Issue a fine outside the return flow.

        Raises:
            NotFoundError: If the user or the referenced borrow record does not exist
        """
        if self.session.get(UserDB, data.user_id) is None:
            raise NotFoundError(f"User {data.user_id} not found")
        if data.borrow_record_id and self.session.get(BorrowDB, data.borrow_record_id) is None:
            raise NotFoundError(f"Borrow record {data.borrow_record_id} not found")

        now = self.clock()
        db_fine = FineDB(
            id=new_id("fine"),
            user_id=data.user_id,
            borrow_record_id=data.borrow_record_id,
            reason=data.reason,
            amount=round(data.amount, 2),
            paid=False,
            processed_by=staff_id,
            note=data.note,
            created_at=now,
            updated_at=now,
        )
        self.session.add(db_fine)
        safe_commit(self.session, "create manual fine")

        logger.info(
            "Manual fine %s of %.2f issued to user %s by %s",
            db_fine.id,
            db_fine.amount,
            data.user_id,
            staff_id,
        )
        return self.get(db_fine.id)

    def mark_paid(self, fine_id: str, staff_id: str, payment: FinePayment) -> Fine:
        """
        Record payment of a fine.

        Raises:
            NotFoundError: If the fine does not exist
            ConflictError: If the fine is already paid
        """
        db_fine = self._require_db(fine_id)
        if db_fine.paid:
            raise ConflictError("Fine has already been paid")

        values = {"paid": True, "paid_at": self.clock(), "processed_by": staff_id}
        if payment.payment_method:
            values["payment_method"] = payment.payment_method
        if payment.note:
            values["note"] = payment.note

        result = self.session.execute(
            update(FineDB).where(FineDB.id == fine_id, FineDB.paid.is_(False)).values(**values)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConflictError("Fine has already been paid")

        safe_commit(self.session, "mark fine paid")
        logger.info("Fine %s marked paid by %s", fine_id, staff_id)
        return self.get(fine_id)

    def delete(self, fine_id: str) -> None:
        """
        Remove an unpaid fine and unlink it from its borrow record.

        Raises:
            NotFoundError: If the fine does not exist
            ConflictError: If the fine has been paid
        """
        db_fine = self._require_db(fine_id)
        if db_fine.paid:
            raise ConflictError("Cannot delete a paid fine")

        self.session.execute(
            update(BorrowDB).where(BorrowDB.fine_id == fine_id).values(fine_id=None)
        )
        result = self.session.execute(
            delete(FineDB).where(FineDB.id == fine_id, FineDB.paid.is_(False))
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConflictError("Cannot delete a paid fine")

        safe_commit(self.session, "delete fine")
        logger.info("Fine %s deleted", fine_id)

    def statistics(
        self, from_date: datetime | None = None, to_date: datetime | None = None
    ) -> FineStatistics:
        """
        Fine counts and amounts by (reason, paid), a monthly trend, and the ten
        users with the largest fine totals. The window applies to creation time.
        """
        window = []
        if from_date is not None:
            window.append(FineDB.created_at >= from_date)
        if to_date is not None:
            window.append(FineDB.created_at <= to_date)

        paid_amount = func.sum(case((FineDB.paid.is_(True), FineDB.amount), else_=0.0))
        unpaid_amount = func.sum(case((FineDB.paid.is_(False), FineDB.amount), else_=0.0))

        breakdown_rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(FineDB.reason, FineDB.paid, func.count(), func.sum(FineDB.amount))
                .where(*window)
                .group_by(FineDB.reason, FineDB.paid)
                .order_by(FineDB.reason, FineDB.paid)
            ).all(),
            "Failed to group fines by reason",
        )

        year = extract("year", FineDB.created_at).label("year")
        month = extract("month", FineDB.created_at).label("month")
        trend_rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(year, month, func.count(), func.sum(FineDB.amount), paid_amount)
                .where(*window)
                .group_by(year, month)
                .order_by(year, month)
            ).all(),
            "Failed to compute monthly fine trend",
        )

        total_amount = func.sum(FineDB.amount).label("total_amount")
        user_rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB, func.count(FineDB.id), total_amount, unpaid_amount)
                .join(FineDB, FineDB.user_id == UserDB.id)
                .where(*window)
                .group_by(UserDB.id)
                .order_by(desc("total_amount"), UserDB.name)
                .limit(10)
            ).all(),
            "Failed to get top fined users",
        )

        return FineStatistics(
            summary=[
                FineBreakdown(reason=reason, paid=paid, count=count, total_amount=float(amount))
                for reason, paid, count, amount in breakdown_rows
            ],
            monthly_trend=[
                MonthlyFineTrend(
                    year=int(y),
                    month=int(m),
                    total_fines=count,
                    total_amount=float(amount),
                    paid_amount=float(paid or 0.0),
                )
                for y, m, count, amount, paid in trend_rows
            ],
            top_fine_users=[
                UserFineTotal(
                    user=UserSummary.model_validate(user),
                    total_fines=count,
                    total_amount=float(amount),
                    unpaid_amount=float(unpaid or 0.0),
                )
                for user, count, amount, unpaid in user_rows
            ],
        )
