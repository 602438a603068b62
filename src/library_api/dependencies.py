"""
FastAPI dependencies: per-request sessions, caller identity, role guards,
pagination and repository construction.

Identity is established upstream. The auth middleware in front of this
service forwards the caller as ``X-User-Id`` and ``X-User-Role`` headers;
a request without them is anonymous.
"""

import logging
from collections.abc import Callable, Generator
from datetime import datetime

from fastapi import Depends, HTTPException, Query, Request, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from .config import ServerConfig
from .database import (
    BookRepository,
    BookshelfRepository,
    BorrowRepository,
    CategoryRepository,
    FineRepository,
    InventoryLedger,
    PaginationParams,
    ReviewRepository,
)
from .models.user import Identity, Role

logger = logging.getLogger(__name__)

user_id_header = APIKeyHeader(name="X-User-Id", scheme_name="UserId", auto_error=False)
user_role_header = APIKeyHeader(name="X-User-Role", scheme_name="UserRole", auto_error=False)


def get_app_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_session(request: Request) -> Generator[Session, None, None]:
    """One session per request, committed on success and rolled back on error."""
    with request.app.state.db_manager.session_scope() as session:
        yield session


def get_identity(
    user_id: str | None = Security(user_id_header),
    role: str | None = Security(user_role_header),
) -> Identity:
    """Build the caller identity from the forwarded auth headers."""
    if not user_id:
        return Identity()
    try:
        parsed = Role((role or Role.USER.value).strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown role '{role}'"
        ) from None
    return Identity(user_id=user_id, role=parsed)


def require_role(minimum: Role) -> Callable[[Identity], Identity]:
    """Dependency factory rejecting callers below ``minimum`` with 403."""

    def check_role(identity: Identity = Depends(get_identity)) -> Identity:
        if not identity.is_authenticated:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Authentication required"
            )
        if not identity.role.at_least(minimum):
            logger.info(
                "Caller %s with role %s denied, %s required",
                identity.user_id,
                identity.role.value,
                minimum.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires the {minimum.value} role",
            )
        return identity

    return check_role


require_user = require_role(Role.USER)
require_staff = require_role(Role.STAFF)
require_admin = require_role(Role.ADMIN)


def get_pagination(
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int | None = Query(None, ge=1, description="Items per page"),
    config: ServerConfig = Depends(get_app_config),
) -> PaginationParams:
    page_size = min(limit or config.default_page_size, config.max_page_size)
    return PaginationParams(page=page, page_size=page_size)


# === Repositories ===


def get_book_repository(session: Session = Depends(get_session)) -> BookRepository:
    return BookRepository(session)


def get_inventory_ledger(session: Session = Depends(get_session)) -> InventoryLedger:
    return InventoryLedger(session)


def get_category_repository(session: Session = Depends(get_session)) -> CategoryRepository:
    return CategoryRepository(session)


def get_bookshelf_repository(session: Session = Depends(get_session)) -> BookshelfRepository:
    return BookshelfRepository(session)


def get_review_repository(session: Session = Depends(get_session)) -> ReviewRepository:
    return ReviewRepository(session)


def get_borrow_repository(
    session: Session = Depends(get_session),
    config: ServerConfig = Depends(get_app_config),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BorrowRepository:
    return BorrowRepository(
        session,
        lending_policy=config.lending_policy,
        fine_policy=config.fine_policy,
        clock=clock,
    )


def get_fine_repository(
    session: Session = Depends(get_session),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> FineRepository:
    return FineRepository(session, clock=clock)
