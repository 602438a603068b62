"""Review endpoints. Readers manage only their own reviews."""

from fastapi import APIRouter, Depends, status

from ..database import ReviewRepository
from ..dependencies import get_review_repository, require_user
from ..models.review import Review, ReviewCreate, ReviewUpdate
from ..models.user import Identity
from . import MessageResponse

router = APIRouter(prefix="/books/review", tags=["reviews"])


@router.post("", response_model=Review, status_code=status.HTTP_201_CREATED)
def create_review(
    data: ReviewCreate,
    identity: Identity = Depends(require_user),
    repo: ReviewRepository = Depends(get_review_repository),
):
    return repo.create(identity.user_id, data)


@router.put("/{review_id}", response_model=Review)
def update_review(
    review_id: str,
    data: ReviewUpdate,
    identity: Identity = Depends(require_user),
    repo: ReviewRepository = Depends(get_review_repository),
):
    return repo.update(review_id, identity.user_id, data)


@router.delete("/{review_id}", response_model=MessageResponse)
def delete_review(
    review_id: str,
    identity: Identity = Depends(require_user),
    repo: ReviewRepository = Depends(get_review_repository),
):
    repo.delete(review_id, identity.user_id)
    return MessageResponse(message="Review deleted successfully")
