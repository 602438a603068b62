"""
Staff endpoints for the borrow lifecycle.

Approve, decline, return and extend each map one-to-one onto a
``BorrowRepository`` transition; the acting staff member is recorded as
``processed_by``.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..database import BorrowRepository, PaginatedResponse, PaginationParams
from ..dependencies import get_borrow_repository, get_pagination, require_staff
from ..models.borrow import (
    BorrowQueryParams,
    BorrowRecord,
    BorrowStatistics,
    BorrowStatus,
    DeclineInput,
    ExtendInput,
    ReturnInput,
)
from ..models.fine import ReturnResult
from ..models.user import Identity

router = APIRouter(prefix="/borrow-requests", tags=["borrow management"])


class BorrowActionResponse(BaseModel):
    message: str
    borrow_request: BorrowRecord


class ReturnResponse(ReturnResult):
    message: str


@router.get("", response_model=PaginatedResponse[BorrowRecord])
def list_borrow_requests(
    status: BorrowStatus | None = None,
    user_id: str | None = None,
    book_id: str | None = None,
    is_overdue: bool = False,
    _: Identity = Depends(require_staff),
    pagination: PaginationParams = Depends(get_pagination),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    params = BorrowQueryParams(
        status=status, user_id=user_id, book_id=book_id, is_overdue=is_overdue
    )
    return repo.list_records(params, pagination)


@router.get("/statistics", response_model=BorrowStatistics)
def borrow_statistics(
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    _: Identity = Depends(require_staff),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    return repo.statistics(from_date, to_date)


@router.post("/{borrow_id}/approve", response_model=BorrowActionResponse)
def approve_request(
    borrow_id: str,
    staff: Identity = Depends(require_staff),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    record = repo.approve(borrow_id, staff.user_id)
    return BorrowActionResponse(
        message="Borrow request approved successfully", borrow_request=record
    )


@router.post("/{borrow_id}/decline", response_model=BorrowActionResponse)
def decline_request(
    borrow_id: str,
    data: DeclineInput | None = None,
    staff: Identity = Depends(require_staff),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    record = repo.decline(borrow_id, staff.user_id, data.reason if data else None)
    return BorrowActionResponse(
        message="Borrow request declined successfully", borrow_request=record
    )


@router.post("/{borrow_id}/return", response_model=ReturnResponse)
def return_book(
    borrow_id: str,
    data: ReturnInput | None = None,
    staff: Identity = Depends(require_staff),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    result = repo.return_book(borrow_id, staff.user_id, data or ReturnInput())
    return ReturnResponse(message="Book returned successfully", **result.model_dump())


@router.post("/{borrow_id}/extend", response_model=BorrowActionResponse)
def extend_borrow(
    borrow_id: str,
    data: ExtendInput | None = None,
    staff: Identity = Depends(require_staff),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    days = repo.extension_days(data.days if data else None)
    record = repo.extend(borrow_id, staff.user_id, days)
    return BorrowActionResponse(
        message=f"Borrow period extended by {days} days", borrow_request=record
    )
