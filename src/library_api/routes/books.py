"""Catalog endpoints: search, book detail, and admin book management."""

from fastapi import APIRouter, Depends, Query, status

from ..database import BookRepository, InventoryLedger, PaginatedResponse, PaginationParams
from ..dependencies import (
    get_book_repository,
    get_inventory_ledger,
    get_pagination,
    require_admin,
)
from ..models.book import (
    BookCreate,
    BookDetail,
    BookSearchParams,
    BookUpdate,
    BookWithInventory,
    Inventory,
    InventoryUpdate,
)
from ..models.user import Identity
from . import MessageResponse

router = APIRouter(prefix="/books", tags=["books"])


@router.get("", response_model=PaginatedResponse[BookWithInventory])
def search_books(
    query: str | None = Query(None, description="Matches title, author, ISBN or description"),
    category: str | None = Query(None, description="Category id"),
    bookshelf: str | None = Query(None, description="Bookshelf id"),
    author: str | None = None,
    publish_year: int | None = None,
    available: bool = Query(False, description="Only books with a copy on the shelf"),
    sort_by: str = Query("created_at", pattern=r"^(created_at|title|author|publish_year|price)$"),
    sort_order: str = Query("desc", pattern=r"^(asc|desc)$"),
    pagination: PaginationParams = Depends(get_pagination),
    repo: BookRepository = Depends(get_book_repository),
):
    params = BookSearchParams(
        query=query,
        category=category,
        bookshelf=bookshelf,
        author=author,
        publish_year=publish_year,
        available_only=available,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return repo.search(params, pagination)


@router.get("/{book_id}", response_model=BookDetail)
def get_book(book_id: str, repo: BookRepository = Depends(get_book_repository)):
    return repo.get_detail(book_id)


@router.post("", response_model=BookWithInventory, status_code=status.HTTP_201_CREATED)
def create_book(
    data: BookCreate,
    _: Identity = Depends(require_admin),
    repo: BookRepository = Depends(get_book_repository),
):
    return repo.create(data)


@router.put("/{book_id}", response_model=BookWithInventory)
def update_book(
    book_id: str,
    data: BookUpdate,
    _: Identity = Depends(require_admin),
    repo: BookRepository = Depends(get_book_repository),
):
    return repo.update(book_id, data)


@router.delete("/{book_id}", response_model=MessageResponse)
def delete_book(
    book_id: str,
    _: Identity = Depends(require_admin),
    repo: BookRepository = Depends(get_book_repository),
):
    repo.delete(book_id)
    return MessageResponse(message="Book deleted successfully")


@router.put("/{book_id}/inventory", response_model=Inventory)
def update_inventory(
    book_id: str,
    data: InventoryUpdate,
    _: Identity = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
):
    """Correct a book's copy counters; the result must still balance."""
    return ledger.adjust(book_id, data)
