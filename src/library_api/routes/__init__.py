"""
HTTP routes for the Library Lending API.

Routers are grouped by area and mounted together under ``/api/v1``. The
reader-side ``/books/...`` routers are included before the catalog router so
their fixed paths are matched ahead of ``/books/{book_id}``.
"""

from fastapi import APIRouter
from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


def build_api_router() -> APIRouter:
    from . import (
        books,
        bookshelves,
        borrow_management,
        borrowing,
        categories,
        fines,
        reviews,
    )

    api_router = APIRouter()
    api_router.include_router(borrowing.router)
    api_router.include_router(reviews.router)
    api_router.include_router(books.router)
    api_router.include_router(borrow_management.router)
    api_router.include_router(fines.router)
    api_router.include_router(categories.router)
    api_router.include_router(bookshelves.router)
    return api_router


__all__ = ["MessageResponse", "build_api_router"]
