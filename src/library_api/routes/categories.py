"""Category endpoints."""

from fastapi import APIRouter, Depends, status

from ..database import CategoryRepository
from ..dependencies import get_category_repository, require_admin, require_user
from ..models.catalog import Category, CategoryCreate, CategoryStats, CategoryUpdate
from ..models.user import Identity
from . import MessageResponse

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[Category])
def list_categories(repo: CategoryRepository = Depends(get_category_repository)):
    return repo.list_all()


@router.get("/stats", response_model=list[CategoryStats])
def category_stats(
    _: Identity = Depends(require_user),
    repo: CategoryRepository = Depends(get_category_repository),
):
    return repo.statistics()


@router.get("/{category_id}", response_model=Category)
def get_category(category_id: str, repo: CategoryRepository = Depends(get_category_repository)):
    return repo.get(category_id)


@router.post("", response_model=Category, status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryCreate,
    _: Identity = Depends(require_admin),
    repo: CategoryRepository = Depends(get_category_repository),
):
    return repo.create(data)


@router.put("/{category_id}", response_model=Category)
def update_category(
    category_id: str,
    data: CategoryUpdate,
    _: Identity = Depends(require_admin),
    repo: CategoryRepository = Depends(get_category_repository),
):
    return repo.update(category_id, data)


@router.delete("/{category_id}", response_model=MessageResponse)
def delete_category(
    category_id: str,
    _: Identity = Depends(require_admin),
    repo: CategoryRepository = Depends(get_category_repository),
):
    repo.delete(category_id)
    return MessageResponse(message="Category deleted successfully")
