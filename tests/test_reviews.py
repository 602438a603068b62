"""Tests for reviews: gating on a returned borrow, ownership, and book ratings."""

import pytest

from library_api.database import (
    BookRepository,
    ConflictError,
    DuplicateError,
    NotFoundError,
    ReviewRepository,
)
from library_api.models.borrow import BorrowRequestCreate, ReturnCondition, ReturnInput
from library_api.models.review import ReviewCreate, ReviewUpdate


@pytest.fixture
def review_repo(session):
    return ReviewRepository(session)


@pytest.fixture
def returned(borrow_repo, users, borrowed):
    """The reader's borrow of ``book``, returned in good condition."""
    return borrow_repo.return_book(borrowed.id, users["staff"], ReturnInput()).borrow_record


class TestReviewGating:
    def test_cannot_review_without_borrowing(self, review_repo, users, book):
        with pytest.raises(ConflictError, match="borrowed and returned"):
            review_repo.create(users["reader"], ReviewCreate(book_id=book.id, rating=5))

    def test_cannot_review_while_still_borrowed(self, review_repo, users, borrowed):
        with pytest.raises(ConflictError, match="borrowed and returned"):
            review_repo.create(users["reader"], ReviewCreate(book_id=borrowed.book_id, rating=5))

    def test_lost_book_does_not_count_as_returned(self, review_repo, borrow_repo, users, borrowed):
        borrow_repo.return_book(
            borrowed.id, users["staff"], ReturnInput(condition=ReturnCondition.LOST)
        )
        with pytest.raises(ConflictError):
            review_repo.create(users["reader"], ReviewCreate(book_id=borrowed.book_id, rating=3))

    def test_review_after_return(self, review_repo, users, returned):
        review = review_repo.create(
            users["reader"], ReviewCreate(book_id=returned.book_id, rating=4, comment="Solid")
        )

        assert review.id.startswith("review_")
        assert review.rating == 4
        assert review.user.id == users["reader"]

    def test_one_review_per_book(self, review_repo, users, returned):
        review_repo.create(users["reader"], ReviewCreate(book_id=returned.book_id, rating=4))

        with pytest.raises(DuplicateError, match="already reviewed"):
            review_repo.create(users["reader"], ReviewCreate(book_id=returned.book_id, rating=2))

    def test_unknown_book(self, review_repo, users):
        with pytest.raises(NotFoundError):
            review_repo.create(users["reader"], ReviewCreate(book_id="book_missing01", rating=4))


class TestReviewOwnership:
    @pytest.fixture
    def review(self, review_repo, users, returned):
        return review_repo.create(users["reader"], ReviewCreate(book_id=returned.book_id, rating=3))

    def test_update_own_review(self, review_repo, users, review):
        updated = review_repo.update(review.id, users["reader"], ReviewUpdate(rating=5))

        assert updated.rating == 5
        assert updated.comment is None

    def test_other_user_sees_not_found(self, review_repo, users, review):
        with pytest.raises(NotFoundError, match="permission to update"):
            review_repo.update(review.id, users["other"], ReviewUpdate(comment="Mine now"))
        with pytest.raises(NotFoundError, match="permission to delete"):
            review_repo.delete(review.id, users["other"])

    def test_delete_own_review(self, review_repo, users, review):
        review_repo.delete(review.id, users["reader"])
        assert review_repo.list_for_user(users["reader"]) == []


class TestBookRating:
    def test_average_rating_on_detail(self, session, borrow_repo, review_repo, users, book):
        for reader, rating in ((users["reader"], 4), (users["other"], 5)):
            record = borrow_repo.create_request(reader, BorrowRequestCreate(book_id=book.id))
            borrow_repo.approve(record.id, users["staff"])
            borrow_repo.return_book(record.id, users["staff"], ReturnInput())
            review_repo.create(reader, ReviewCreate(book_id=book.id, rating=rating))

        detail = BookRepository(session).get_detail(book.id)

        assert detail.total_reviews == 2
        assert detail.average_rating == 4.5
        assert {r.rating for r in detail.reviews} == {4, 5}

    def test_unreviewed_book_rates_zero(self, session, book):
        detail = BookRepository(session).get_detail(book.id)
        assert detail.average_rating == 0
        assert detail.reviews == []
