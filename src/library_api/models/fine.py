"""
Fine models and the fine computation for returned books.

A return can incur up to three penalty components:

- overdue: one ``overdue_fine_per_day`` for every started day past the due date
- damaged: ``damage_fine_ratio`` of the book price
- lost: ``lost_fine_ratio`` of the book price (the full price by default)

Components are summed into a single fine. The fine keeps one *primary*
reason: overdue wins over damaged, and lost overrides both.
"""

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .borrow import BorrowRecord, ReturnCondition, is_overdue
from .user import UserSummary

SECONDS_PER_DAY = 24 * 60 * 60


class FineReason(str, Enum):
    OVERDUE = "overdue"
    DAMAGED = "damaged"
    LOST = "lost"
    OTHER = "other"


class FinePolicy(BaseModel):
    """Penalty rates applied on return."""

    overdue_fine_per_day: float = 5000
    damage_fine_ratio: float = 0.3
    lost_fine_ratio: float = 1.0

    model_config = ConfigDict(frozen=True)


class FineAssessment(BaseModel):
    """Result of assessing a return; becomes a persisted ``Fine``."""

    amount: float
    reason: FineReason
    days_late: int = 0
    note: str = ""


def days_late(due_date: datetime, returned_at: datetime) -> int:
    """Number of started days between the due date and the return."""
    if not is_overdue(due_date, returned_at):
        return 0
    return math.ceil((returned_at - due_date).total_seconds() / SECONDS_PER_DAY)


def assess_return_fine(
    due_date: datetime,
    returned_at: datetime,
    condition: ReturnCondition,
    book_price: float,
    policy: FinePolicy | None = None,
) -> FineAssessment | None:
    """
    Compute the fine owed for a return, or None when nothing is owed.

    Args:
        due_date: When the book was due
        returned_at: When it came back
        condition: Condition of the returned copy
        book_price: Catalog price of the book
        policy: Rates to apply (defaults to the standard policy)

    Returns:
        A FineAssessment with a positive amount, or None
    """
    policy = policy or FinePolicy()
    condition = ReturnCondition(condition)

    amount = 0.0
    reason: FineReason | None = None
    late = days_late(due_date, returned_at)

    if late:
        amount += late * policy.overdue_fine_per_day
        reason = FineReason.OVERDUE

    if condition == ReturnCondition.DAMAGED:
        amount += book_price * policy.damage_fine_ratio
        reason = reason or FineReason.DAMAGED

    if condition == ReturnCondition.LOST:
        amount += book_price * policy.lost_fine_ratio
        reason = FineReason.LOST

    amount = round(amount, 2)
    if reason is None or amount <= 0:
        return None

    parts = []
    if condition == ReturnCondition.LOST:
        parts.append("Book lost")
    elif condition == ReturnCondition.DAMAGED:
        parts.append("Book damaged")
    if late:
        parts.append(f"Late return: {late} days")

    return FineAssessment(amount=amount, reason=reason, days_late=late, note=" ".join(parts))


class Fine(BaseModel):
    """A monetary penalty owed by a user."""

    id: str = Field(..., pattern=r"^fine_[a-zA-Z0-9]{6,}$")
    user_id: str
    borrow_record_id: str | None = None
    reason: FineReason
    amount: float = Field(..., gt=0)
    paid: bool = False
    paid_at: datetime | None = None
    payment_method: str | None = None
    processed_by: str | None = None
    note: str | None = None
    created_at: datetime | None = None

    user: UserSummary | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class FineCreate(BaseModel):
    """Staff input for a manually issued fine."""

    user_id: str
    borrow_record_id: str | None = None
    reason: FineReason = FineReason.OTHER
    amount: float = Field(..., gt=0, examples=[5000, 30000])
    note: str | None = Field(None, max_length=1000)


class FinePayment(BaseModel):
    payment_method: str | None = Field(None, max_length=50, examples=["cash", "transfer"])
    note: str | None = Field(None, max_length=1000)


class FineQueryParams(BaseModel):
    paid: bool | None = None
    user_id: str | None = None
    reason: FineReason | None = None


class FineBreakdown(BaseModel):
    reason: FineReason
    paid: bool
    count: int
    total_amount: float


class MonthlyFineTrend(BaseModel):
    year: int
    month: int
    total_fines: int
    total_amount: float
    paid_amount: float


class UserFineTotal(BaseModel):
    user: UserSummary
    total_fines: int
    total_amount: float
    unpaid_amount: float


class FineStatistics(BaseModel):
    summary: list[FineBreakdown]
    monthly_trend: list[MonthlyFineTrend]
    top_fine_users: list[UserFineTotal]


class ReturnResult(BaseModel):
    """Outcome of a return: the closed record, its fine (if any) and lateness."""

    borrow_record: BorrowRecord
    fine: Fine | None = None
    is_overdue: bool


class UserFines(BaseModel):
    """A reader's own fines with what they still owe."""

    fines: list[Fine]
    total_unpaid_amount: float = 0.0
