"""
Review repository.

A reader may review a book once, and only after a borrow of it has been
returned. Edits and deletions are filtered by author, so another user's
review looks exactly like a missing one.
"""

import logging

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models.borrow import BorrowStatus
from ..models.review import Review, ReviewCreate, ReviewUpdate
from .repository import BaseRepository, ConflictError, DuplicateError, NotFoundError, new_id
from .schema import Book as BookDB
from .schema import BorrowRecord as BorrowDB
from .schema import Review as ReviewDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class ReviewRepository(BaseRepository[ReviewDB, Review]):
    @property
    def model_class(self):
        return ReviewDB

    @property
    def response_schema(self):
        return Review

    def _get_own(self, review_id: str, user_id: str) -> ReviewDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(ReviewDB).where(ReviewDB.id == review_id, ReviewDB.user_id == user_id)
            ).scalar_one_or_none(),
            "Failed to get review",
        )

    def has_returned_borrow(self, user_id: str, book_id: str) -> bool:
        row = safe_query(
            self.session,
            lambda s: s.execute(
                select(BorrowDB.id).where(
                    BorrowDB.user_id == user_id,
                    BorrowDB.book_id == book_id,
                    BorrowDB.status == BorrowStatus.RETURNED,
                )
            ).first(),
            "Failed to check borrow history",
        )
        return row is not None

    def create(self, user_id: str, data: ReviewCreate) -> Review:
        """
        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the user has not returned this book, or has
                already reviewed it
        """
        if self.session.get(BookDB, data.book_id) is None:
            raise NotFoundError(f"Book {data.book_id} not found")

        if not self.has_returned_borrow(user_id, data.book_id):
            raise ConflictError("You can only review books you have borrowed and returned")

        existing = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReviewDB.id).where(
                    ReviewDB.user_id == user_id, ReviewDB.book_id == data.book_id
                )
            ).first(),
            "Failed to check existing review",
        )
        if existing is not None:
            raise DuplicateError("You have already reviewed this book")

        db_review = ReviewDB(
            id=new_id("review"),
            user_id=user_id,
            book_id=data.book_id,
            rating=data.rating,
            comment=data.comment,
        )
        self.session.add(db_review)
        try:
            safe_commit(self.session, "create review")
        except IntegrityError as e:
            raise DuplicateError("You have already reviewed this book") from e

        logger.info("Review %s created by %s for book %s", db_review.id, user_id, data.book_id)
        return self.get(db_review.id)

    def update(self, review_id: str, user_id: str, data: ReviewUpdate) -> Review:
        db_review = self._get_own(review_id, user_id)
        if db_review is None:
            raise NotFoundError("Review not found or you don't have permission to update it")

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(db_review, field, value)

        safe_commit(self.session, "update review")
        self.session.refresh(db_review)
        return self._to_response_model(db_review)

    def delete(self, review_id: str, user_id: str) -> None:
        db_review = self._get_own(review_id, user_id)
        if db_review is None:
            raise NotFoundError("Review not found or you don't have permission to delete it")

        self.session.delete(db_review)
        safe_commit(self.session, "delete review")
        logger.info("Review %s deleted by %s", review_id, user_id)

    def list_for_user(self, user_id: str) -> list[Review]:
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReviewDB)
                .where(ReviewDB.user_id == user_id)
                .options(selectinload(ReviewDB.user))
                .order_by(desc(ReviewDB.created_at), ReviewDB.id)
            )
            .scalars()
            .all(),
            "Failed to get user reviews",
        )
        return [self._to_response_model(row) for row in rows]
