"""Bookshelf endpoints, including moving books between shelves."""

from fastapi import APIRouter, Depends, status

from ..database import BookshelfRepository
from ..dependencies import get_bookshelf_repository, require_admin, require_user
from ..models.book import BookshelfWithBooks
from ..models.catalog import (
    Bookshelf,
    BookshelfCreate,
    BookshelfStats,
    BookshelfUpdate,
    MoveBooksInput,
    MoveBooksResult,
)
from ..models.user import Identity
from . import MessageResponse

router = APIRouter(prefix="/bookshelves", tags=["bookshelves"])


@router.get("", response_model=list[Bookshelf])
def list_bookshelves(repo: BookshelfRepository = Depends(get_bookshelf_repository)):
    return repo.list_all()


@router.get("/stats", response_model=list[BookshelfStats])
def bookshelf_stats(
    _: Identity = Depends(require_user),
    repo: BookshelfRepository = Depends(get_bookshelf_repository),
):
    return repo.statistics()


@router.post("/move-books", response_model=MoveBooksResult)
def move_books(
    data: MoveBooksInput,
    _: Identity = Depends(require_admin),
    repo: BookshelfRepository = Depends(get_bookshelf_repository),
):
    return repo.move_books(data)


@router.get("/{bookshelf_id}", response_model=BookshelfWithBooks)
def get_bookshelf(
    bookshelf_id: str, repo: BookshelfRepository = Depends(get_bookshelf_repository)
):
    return repo.get_with_books(bookshelf_id)


@router.post("", response_model=Bookshelf, status_code=status.HTTP_201_CREATED)
def create_bookshelf(
    data: BookshelfCreate,
    _: Identity = Depends(require_admin),
    repo: BookshelfRepository = Depends(get_bookshelf_repository),
):
    return repo.create(data)


@router.put("/{bookshelf_id}", response_model=Bookshelf)
def update_bookshelf(
    bookshelf_id: str,
    data: BookshelfUpdate,
    _: Identity = Depends(require_admin),
    repo: BookshelfRepository = Depends(get_bookshelf_repository),
):
    return repo.update(bookshelf_id, data)


@router.delete("/{bookshelf_id}", response_model=MessageResponse)
def delete_bookshelf(
    bookshelf_id: str,
    _: Identity = Depends(require_admin),
    repo: BookshelfRepository = Depends(get_bookshelf_repository),
):
    repo.delete(bookshelf_id)
    return MessageResponse(message="Bookshelf deleted successfully")
