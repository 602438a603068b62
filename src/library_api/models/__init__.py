"""
Library Lending API models.

Pydantic v2 models for request validation and response serialization:

- Book / Inventory: catalog entries and their copy counters
- Category / Bookshelf: catalog reference data
- BorrowRecord: the borrow lifecycle
- Fine: penalties and the return fine computation
- Review: reader reviews
- User / Identity: accounts and the authenticated caller
"""

from .book import Book, BookSummary, BookWithInventory, Inventory
from .borrow import BorrowRecord, BorrowStatus, LendingPolicy, ReturnCondition
from .catalog import Bookshelf, Category
from .fine import Fine, FineAssessment, FinePolicy, FineReason, assess_return_fine
from .review import Review
from .user import Identity, Role, User, UserSummary

__all__ = [
    "Book",
    "BookSummary",
    "BookWithInventory",
    "Bookshelf",
    "BorrowRecord",
    "BorrowStatus",
    "Category",
    "Fine",
    "FineAssessment",
    "FinePolicy",
    "FineReason",
    "Identity",
    "Inventory",
    "LendingPolicy",
    "ReturnCondition",
    "Review",
    "Role",
    "User",
    "UserSummary",
    "assess_return_fine",
]
