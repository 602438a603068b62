"""
Book and inventory models for the Library Lending API.

A book is catalog identity (title, ISBN, price, shelving). Its copies are
counted separately by an ``Inventory`` record, which must always balance:

    available + borrowed + damaged + lost == total

Only the inventory ledger writes those counters; everything else reads them.
"""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .catalog import Bookshelf, BookshelfSummary, Category
from .review import Review

_ISBN_PATTERN = re.compile(r"^(\d{9}[\dX]|\d{13})$")


def normalize_isbn(value: str) -> str:
    """Strip hyphens and spaces and check the result is an ISBN-10 or ISBN-13."""
    normalized = value.replace("-", "").replace(" ", "").upper()
    if not _ISBN_PATTERN.match(normalized):
        raise ValueError("ISBN must be 10 or 13 digits")
    return normalized


class Inventory(BaseModel):
    """Copy counters for one book."""

    total: int = Field(0, ge=0)
    available: int = Field(0, ge=0)
    borrowed: int = Field(0, ge=0)
    damaged: int = Field(0, ge=0)
    lost: int = Field(0, ge=0)

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_balanced(self) -> bool:
        """Check the conservation invariant."""
        return self.available + self.borrowed + self.damaged + self.lost == self.total


class InventoryUpdate(BaseModel):
    """Partial admin correction; omitted counters keep their current value."""

    total: int | None = Field(None, ge=0)
    available: int | None = Field(None, ge=0)
    borrowed: int | None = Field(None, ge=0)
    damaged: int | None = Field(None, ge=0)
    lost: int | None = Field(None, ge=0)

    def merged_over(self, current: Inventory) -> Inventory:
        """Fill omitted counters from ``current`` without validating the sum."""
        return Inventory.model_construct(
            **{**current.model_dump(), **self.model_dump(exclude_none=True)}
        )


class BookSummary(BaseModel):
    """Compact book reference embedded in borrow records and reviews."""

    id: str
    title: str
    author: str
    isbn: str
    image: str | None = None

    model_config = ConfigDict(from_attributes=True)


class Book(BaseModel):
    """A catalog entry."""

    id: str
    title: str
    isbn: str
    author: str
    publisher: str | None = None
    publish_year: int | None = None
    description: str | None = None
    price: float = 0.0
    image: str | None = None
    categories: list[Category] = Field(default_factory=list)
    bookshelf: BookshelfSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookWithInventory(Book):
    inventory: Inventory = Field(default_factory=Inventory)


class BookCreate(BaseModel):
    """Fields an admin supplies to add a book to the catalog."""

    title: str = Field(..., min_length=1, max_length=500, examples=["Clean Code"])
    isbn: str = Field(..., examples=["9780132350884", "978-0-13-235088-4"])
    author: str = Field(..., min_length=1, max_length=200, examples=["Robert C. Martin"])
    publisher: str | None = Field(None, max_length=200)
    publish_year: int | None = Field(None, ge=1450, le=datetime.now().year + 1)
    description: str | None = Field(None, max_length=5000)
    price: float = Field(0.0, ge=0, description="Replacement cost, used for fines")
    image: str | None = Field(None, max_length=500)
    category_ids: list[str] = Field(default_factory=list)
    bookshelf_id: str | None = None
    quantity: int = Field(0, ge=0, description="Number of copies the library owns")

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str) -> str:
        return normalize_isbn(v)

    @field_validator("title", "author")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be blank")
        return v

    @field_validator("category_ids")
    @classmethod
    def dedupe_categories(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class BookUpdate(BaseModel):
    """Partial book update; ``quantity`` resizes the inventory when given."""

    title: str | None = Field(None, min_length=1, max_length=500)
    isbn: str | None = None
    author: str | None = Field(None, min_length=1, max_length=200)
    publisher: str | None = Field(None, max_length=200)
    publish_year: int | None = Field(None, ge=1450, le=datetime.now().year + 1)
    description: str | None = Field(None, max_length=5000)
    price: float | None = Field(None, ge=0)
    image: str | None = Field(None, max_length=500)
    category_ids: list[str] | None = None
    bookshelf_id: str | None = None
    quantity: int | None = Field(None, ge=0)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str | None) -> str | None:
        return normalize_isbn(v) if v is not None else v

    @model_validator(mode="after")
    def dedupe_categories(self) -> "BookUpdate":
        if self.category_ids is not None:
            self.category_ids = list(dict.fromkeys(self.category_ids))
        return self


class BookSearchParams(BaseModel):
    """Filters accepted by the catalog search."""

    query: str | None = None
    category: str | None = None
    bookshelf: str | None = None
    author: str | None = None
    publish_year: int | None = None
    available_only: bool = False
    sort_by: str = Field("created_at", pattern=r"^(created_at|title|author|publish_year|price)$")
    sort_order: str = Field("desc", pattern=r"^(asc|desc)$")


class BookshelfWithBooks(Bookshelf):
    books: list[BookSummary] = Field(default_factory=list)


class BookDetail(BookWithInventory):
    """A book with its copy counters and reader reviews, newest first."""

    reviews: list[Review] = Field(default_factory=list)
    average_rating: float = 0.0
    total_reviews: int = 0
