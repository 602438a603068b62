"""
Database package for the Library Lending API.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- The repository error taxonomy and pagination helpers (repository.py)
- One repository per aggregate, plus the inventory ledger
"""

from .book_repository import BookRepository
from .bookshelf_repository import BookshelfRepository
from .borrow_repository import BorrowRepository
from .category_repository import CategoryRepository
from .fine_repository import FineList, FineRepository
from .inventory_repository import InventoryLedger
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RepositoryException,
)
from .review_repository import ReviewRepository
from .schema import Base
from .session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
    safe_commit,
    safe_query,
)
from .user_repository import UserRepository

__all__ = [
    "Base",
    "BaseRepository",
    "BookRepository",
    "BookshelfRepository",
    "BorrowRepository",
    "CategoryRepository",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "FineList",
    "FineRepository",
    "ForbiddenError",
    "InvalidArgumentError",
    "InventoryLedger",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "ReviewRepository",
    "UserRepository",
    "get_db_manager",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
]
