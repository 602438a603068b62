"""Reader-side borrow endpoints: request, cancel, and own history."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..database import BorrowRepository, PaginatedResponse, PaginationParams, ReviewRepository
from ..dependencies import (
    get_borrow_repository,
    get_pagination,
    get_review_repository,
    require_user,
)
from ..models.borrow import BorrowRecord, BorrowRequestCreate, BorrowStatus
from ..models.review import Review
from ..models.user import Identity

router = APIRouter(prefix="/books", tags=["borrowing"])


class BorrowRequestResponse(BaseModel):
    message: str
    borrow_request: BorrowRecord


class BorrowHistory(BaseModel):
    history: PaginatedResponse
    reviews: list[Review]


@router.post(
    "/borrow/request",
    response_model=BorrowRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_borrow(
    data: BorrowRequestCreate,
    identity: Identity = Depends(require_user),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    record = repo.create_request(identity.user_id, data)
    return BorrowRequestResponse(
        message="Borrow request created successfully", borrow_request=record
    )


@router.delete("/borrow/cancel/{borrow_id}", response_model=BorrowRequestResponse)
def cancel_borrow(
    borrow_id: str,
    identity: Identity = Depends(require_user),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    record = repo.cancel(borrow_id, identity.user_id)
    return BorrowRequestResponse(
        message="Borrow request cancelled successfully", borrow_request=record
    )


@router.get("/borrow/requests", response_model=list[BorrowRecord])
def my_borrow_requests(
    identity: Identity = Depends(require_user),
    repo: BorrowRepository = Depends(get_borrow_repository),
):
    return repo.user_requests(identity.user_id)


@router.get("/history/user", response_model=BorrowHistory)
def my_history(
    status: BorrowStatus | None = None,
    identity: Identity = Depends(require_user),
    pagination: PaginationParams = Depends(get_pagination),
    repo: BorrowRepository = Depends(get_borrow_repository),
    reviews: ReviewRepository = Depends(get_review_repository),
):
    return BorrowHistory(
        history=repo.user_history(identity.user_id, status, pagination),
        reviews=reviews.list_for_user(identity.user_id),
    )
