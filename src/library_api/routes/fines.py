"""Fine endpoints: staff management, reporting, and a reader's own fines."""

from datetime import datetime

from fastapi import APIRouter, Depends, status

from ..database import FineList, FineRepository, PaginationParams
from ..dependencies import (
    get_fine_repository,
    get_pagination,
    require_admin,
    require_staff,
    require_user,
)
from ..models.fine import (
    Fine,
    FineCreate,
    FinePayment,
    FineQueryParams,
    FineReason,
    FineStatistics,
    UserFines,
)
from ..models.user import Identity
from . import MessageResponse

router = APIRouter(prefix="/fines", tags=["fines"])


@router.get("", response_model=FineList)
def list_fines(
    paid: bool | None = None,
    user_id: str | None = None,
    reason: FineReason | None = None,
    _: Identity = Depends(require_staff),
    pagination: PaginationParams = Depends(get_pagination),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.list_fines(FineQueryParams(paid=paid, user_id=user_id, reason=reason), pagination)


@router.get("/my-fines", response_model=UserFines)
def my_fines(
    paid: bool | None = None,
    identity: Identity = Depends(require_user),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.user_fines(identity.user_id, paid)


@router.get("/statistics", response_model=FineStatistics)
def fine_statistics(
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    _: Identity = Depends(require_staff),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.statistics(from_date, to_date)


@router.get("/{fine_id}", response_model=Fine)
def get_fine(
    fine_id: str,
    _: Identity = Depends(require_staff),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.get(fine_id)


@router.post("", response_model=Fine, status_code=status.HTTP_201_CREATED)
def create_fine(
    data: FineCreate,
    staff: Identity = Depends(require_staff),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.create_manual(staff.user_id, data)


@router.post("/{fine_id}/pay", response_model=Fine)
def pay_fine(
    fine_id: str,
    payment: FinePayment | None = None,
    staff: Identity = Depends(require_staff),
    repo: FineRepository = Depends(get_fine_repository),
):
    return repo.mark_paid(fine_id, staff.user_id, payment or FinePayment())


@router.delete("/{fine_id}", response_model=MessageResponse)
def delete_fine(
    fine_id: str,
    _: Identity = Depends(require_admin),
    repo: FineRepository = Depends(get_fine_repository),
):
    repo.delete(fine_id)
    return MessageResponse(message="Fine deleted successfully")
