"""
Review models.

Readers may review a book once, and only after they have borrowed and
returned it. Reviews belong to their author alone.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .user import UserSummary


class Review(BaseModel):
    id: str
    user_id: str
    book_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    user: UserSummary | None = None

    model_config = ConfigDict(from_attributes=True)


class ReviewCreate(BaseModel):
    book_id: str
    rating: int = Field(..., ge=1, le=5, strict=True, description="Whole stars, 1 to 5")
    comment: str | None = Field(None, max_length=2000)


class ReviewUpdate(BaseModel):
    rating: int | None = Field(None, ge=1, le=5, strict=True)
    comment: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def require_change(self) -> "ReviewUpdate":
        if self.rating is None and self.comment is None:
            raise ValueError("Provide a rating or a comment to update")
        return self
