"""
Catalog reference models: categories and bookshelves.

Both are simple reference data looked up by identity from books. Their
uniqueness keys (category name, bookshelf code) are enforced by the
repositories at write time.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(BaseModel):
    """A subject category books can be filed under."""

    id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        examples=["Computer Science", "Literature"],
    )
    description: str | None = Field(None, max_length=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name cannot be blank")
        return v


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else v


class Bookshelf(BaseModel):
    """A physical shelf, identified by a short unique code."""

    id: str
    code: str
    name: str
    description: str | None = None
    location: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookshelfSummary(BaseModel):
    id: str
    code: str
    name: str
    location: str | None = None

    model_config = ConfigDict(from_attributes=True)


class BookshelfCreate(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        examples=["A-01", "REF-3"],
    )
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    location: str | None = Field(None, max_length=200)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Bookshelf code cannot be blank")
        return v


class BookshelfUpdate(BaseModel):
    code: str | None = Field(None, min_length=1, max_length=20)
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    location: str | None = Field(None, max_length=200)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else v


class InventoryTotals(BaseModel):
    """Summed inventory counters across a group of books."""

    book_titles: int = 0
    total_books: int = 0
    available_books: int = 0
    borrowed_books: int = 0
    damaged_books: int = 0
    lost_books: int = 0


class CategoryStats(InventoryTotals):
    category: Category


class BookshelfStats(InventoryTotals):
    bookshelf: BookshelfSummary


class MoveBooksInput(BaseModel):
    """Move a set of books from one shelf to another."""

    from_bookshelf_id: str
    to_bookshelf_id: str
    book_ids: list[str] = Field(..., min_length=1)


class MoveBooksResult(BaseModel):
    moved_count: int
    message: str
