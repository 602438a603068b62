"""
Repository base and error taxonomy for the Library Lending API.

Repositories are the only code that touches SQLAlchemy. They take a
``Session``, return Pydantic models, and signal business-rule failures with
the exceptions below; the HTTP layer maps each exception class to a status
code and never inspects messages.
"""

import math
import uuid
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .schema import Base
from .session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)
ItemType = TypeVar("ItemType")


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class ConflictError(RepositoryException):
    """Raised when an operation is not allowed in the entity's current state."""


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class ForbiddenError(RepositoryException):
    """Raised when the caller may not act on the entity."""


class InvalidArgumentError(RepositoryException):
    """Raised when input is well-formed but violates a domain rule."""


def new_id(prefix: str) -> str:
    """Generate a stable entity identity such as ``book_1a2b3c4d5e6f``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = Field(1, ge=1)
    page_size: int = Field(10, ge=1, le=1000)

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[ItemType]):
    """Standard paginated response for list endpoints."""

    items: list[ItemType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list, total: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=math.ceil(total / pagination.page_size) if total else 0,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Common lookups shared by the entity repositories.

    Writes are domain-specific (uniqueness checks, referential guards,
    conditional updates) and live in the subclasses.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    @property
    def entity_name(self) -> str:
        return self.model_class.__name__

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db(self, id: str) -> ModelType | None:
        query = select(self.model_class).where(self.model_class.id == str(id))
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.entity_name} by ID",
        )

    def _require_db(self, id: str) -> ModelType:
        db_obj = self._get_db(id)
        if db_obj is None:
            raise NotFoundError(f"{self.entity_name} {id} not found")
        return db_obj

    def get_by_id(self, id: str) -> ResponseSchemaType | None:
        """Get entity by ID, or None if it does not exist."""
        db_obj = self._get_db(id)
        return self._to_response_model(db_obj) if db_obj is not None else None

    def get(self, id: str) -> ResponseSchemaType:
        """
        Get entity by ID.

        Raises:
            NotFoundError: If the entity does not exist
        """
        return self._to_response_model(self._require_db(id))

    def exists(self, id: str) -> bool:
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == str(id))
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return bool(count)

    def _paginate(self, query, pagination: PaginationParams, convert=None) -> PaginatedResponse:
        """Count and page a select() of ``model_class`` rows."""
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to get total count",
            )
            or 0
        )

        page_query = query.offset(pagination.offset).limit(pagination.page_size)
        rows = safe_query(
            self.session,
            lambda s: s.execute(page_query).unique().scalars().all(),
            "Failed to get paginated results",
        )

        convert = convert or self._to_response_model
        return PaginatedResponse.build([convert(row) for row in rows], total, pagination)
