"""
Borrow lifecycle models for the Library Lending API.

A borrow record follows a small state machine:

    pending --approve--> borrowed --return--> returned | lost
    pending --decline/cancel--> declined

``declined``, ``returned`` and ``lost`` are terminal. Records in ``pending``
or ``borrowed`` are *active*; a user may hold at most one active record per
book. Overdue is never stored: it is derived when a record is read.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .book import BookSummary
from .user import UserSummary


class BorrowStatus(str, Enum):
    """Status of a borrow record."""

    PENDING = "pending"
    BORROWED = "borrowed"
    RETURNED = "returned"
    DECLINED = "declined"
    LOST = "lost"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (BorrowStatus.RETURNED, BorrowStatus.DECLINED, BorrowStatus.LOST)


ACTIVE_STATUSES = (BorrowStatus.PENDING, BorrowStatus.BORROWED)


class ReturnCondition(str, Enum):
    """Condition of a copy when it comes back."""

    GOOD = "good"
    DAMAGED = "damaged"
    LOST = "lost"


class LendingPolicy(BaseModel):
    """Loan periods and extension limits."""

    on_site_loan_days: int = 1
    take_home_loan_days: int = 14
    default_extension_days: int = 7
    max_extension_days: int = 60

    model_config = ConfigDict(frozen=True)

    def due_date_for(self, requested_at: datetime, is_read_on_site: bool) -> datetime:
        days = self.on_site_loan_days if is_read_on_site else self.take_home_loan_days
        return requested_at + timedelta(days=days)


def is_overdue(due_date: datetime, at: datetime) -> bool:
    """A borrow is overdue only once ``at`` is strictly past the due date."""
    return at > due_date


class BorrowRecord(BaseModel):
    """
    A single borrow attempt.

    ``is_overdue`` is filled in by the repository from the current time when
    the record is read; it is always false unless the book is still out.
    """

    id: str = Field(..., pattern=r"^borrow_[a-zA-Z0-9]{6,}$")
    user_id: str
    book_id: str | None = None
    status: BorrowStatus = BorrowStatus.PENDING
    is_read_on_site: bool = False
    requested_at: datetime
    due_date: datetime
    borrow_date: datetime | None = None
    return_date: datetime | None = None
    return_condition: ReturnCondition | None = None
    processed_by: str | None = None
    fine_id: str | None = None
    notes: str | None = Field(None, max_length=1000)
    updated_at: datetime | None = None
    is_overdue: bool = False

    user: UserSummary | None = None
    book: BookSummary | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @model_validator(mode="after")
    def validate_dates(self) -> "BorrowRecord":
        if self.due_date < self.requested_at:
            raise ValueError("Due date cannot be before the request date")
        if self.return_date and self.borrow_date and self.return_date < self.borrow_date:
            raise ValueError("Return date cannot be before borrow date")
        return self


class BorrowRequestCreate(BaseModel):
    """Reader input for a new borrow request."""

    book_id: str = Field(..., description="Book to borrow", examples=["book_1a2b3c4d5e6f"])
    is_read_on_site: bool = Field(
        False,
        description="Read in the library (1-day loan) instead of taking home (14 days)",
    )
    notes: str | None = Field(None, max_length=500)


class DeclineInput(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ReturnInput(BaseModel):
    condition: ReturnCondition = Field(
        ReturnCondition.GOOD,
        description="Condition of the returned copy",
    )
    notes: str | None = Field(None, max_length=500)


class ExtendInput(BaseModel):
    days: int | None = Field(
        None,
        ge=1,
        description="Days to add to the due date; defaults to the configured extension",
    )


class BorrowQueryParams(BaseModel):
    """Staff-side filters for listing borrow records."""

    status: BorrowStatus | None = None
    user_id: str | None = None
    book_id: str | None = None
    is_overdue: bool = False


class OverdueBorrow(BaseModel):
    borrow_id: str
    user: UserSummary | None = None
    book: BookSummary | None = None
    due_date: datetime
    days_late: int


class BookBorrowCount(BaseModel):
    book: BookSummary
    borrow_count: int


class BorrowerCount(BaseModel):
    user: UserSummary
    borrow_count: int


class BorrowStatistics(BaseModel):
    summary: dict[str, int]
    overdue_books: list[OverdueBorrow]
    top_borrowed_books: list[BookBorrowCount]
    top_borrowers: list[BorrowerCount]
