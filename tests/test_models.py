"""
Tests for the domain models: fine assessment, inventory balance, loan
periods, roles and input validation.
"""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from library_api.models.book import BookCreate, Inventory, InventoryUpdate, normalize_isbn
from library_api.models.borrow import BorrowStatus, LendingPolicy, ReturnCondition, is_overdue
from library_api.models.fine import FinePolicy, FineReason, assess_return_fine, days_late
from library_api.models.review import ReviewCreate, ReviewUpdate
from library_api.models.user import Identity, Role

DUE = datetime(2024, 3, 15, 10, 0, 0)


class TestFineAssessment:
    def test_on_time_good_return_has_no_fine(self):
        assert assess_return_fine(DUE, DUE, ReturnCondition.GOOD, 100_000) is None
        assert assess_return_fine(DUE, DUE - timedelta(days=2), ReturnCondition.GOOD, 100_000) is None

    def test_three_days_late(self):
        fine = assess_return_fine(DUE, DUE + timedelta(days=3), ReturnCondition.GOOD, 100_000)

        assert fine is not None
        assert fine.amount == pytest.approx(15_000)
        assert fine.reason == FineReason.OVERDUE
        assert fine.days_late == 3
        assert "Late return: 3 days" in fine.note

    def test_partial_day_counts_as_a_day(self):
        fine = assess_return_fine(DUE, DUE + timedelta(hours=1), ReturnCondition.GOOD, 100_000)
        assert fine.amount == pytest.approx(5_000)
        assert days_late(DUE, DUE + timedelta(days=2, minutes=1)) == 3

    def test_damaged_on_time(self):
        fine = assess_return_fine(DUE, DUE, ReturnCondition.DAMAGED, 100_000)

        assert fine.amount == pytest.approx(30_000)
        assert fine.reason == FineReason.DAMAGED
        assert fine.note == "Book damaged"

    def test_lost_charges_full_price(self):
        fine = assess_return_fine(DUE, DUE, ReturnCondition.LOST, 120_000)

        assert fine.amount == pytest.approx(120_000)
        assert fine.reason == FineReason.LOST

    def test_components_are_summed(self):
        fine = assess_return_fine(DUE, DUE + timedelta(days=2), ReturnCondition.DAMAGED, 100_000)

        assert fine.amount == pytest.approx(10_000 + 30_000)
        # Overdue stays the primary reason over damage
        assert fine.reason == FineReason.OVERDUE

    def test_lost_overrides_overdue_reason(self):
        fine = assess_return_fine(DUE, DUE + timedelta(days=1), ReturnCondition.LOST, 100_000)

        assert fine.amount == pytest.approx(105_000)
        assert fine.reason == FineReason.LOST

    def test_zero_price_damage_is_free(self):
        assert assess_return_fine(DUE, DUE, ReturnCondition.DAMAGED, 0) is None

    def test_custom_policy(self):
        policy = FinePolicy(overdue_fine_per_day=1_000, damage_fine_ratio=0.5)
        fine = assess_return_fine(DUE, DUE + timedelta(days=2), ReturnCondition.DAMAGED, 10_000, policy)
        assert fine.amount == pytest.approx(2_000 + 5_000)


class TestInventory:
    def test_balanced(self):
        assert Inventory(total=5, available=2, borrowed=2, damaged=1, lost=0).is_balanced
        assert not Inventory(total=5, available=2, borrowed=2).is_balanced

    def test_update_merges_over_current(self):
        current = Inventory(total=3, available=2, borrowed=1)
        merged = InventoryUpdate(total=4, available=3).merged_over(current)

        assert merged.total == 4
        assert merged.available == 3
        assert merged.borrowed == 1
        assert merged.is_balanced

    def test_negative_counters_rejected(self):
        with pytest.raises(ValidationError):
            InventoryUpdate(available=-1)


class TestLendingPolicy:
    def test_due_dates(self):
        policy = LendingPolicy()
        requested = datetime(2024, 3, 1, 9, 30)

        assert policy.due_date_for(requested, is_read_on_site=True) == requested + timedelta(days=1)
        assert policy.due_date_for(requested, is_read_on_site=False) == requested + timedelta(days=14)

    def test_overdue_is_strict(self):
        assert not is_overdue(DUE, DUE)
        assert is_overdue(DUE, DUE + timedelta(seconds=1))

    def test_active_statuses(self):
        assert BorrowStatus.PENDING.is_active
        assert BorrowStatus.BORROWED.is_active
        assert not BorrowStatus.RETURNED.is_active
        assert BorrowStatus.LOST.is_terminal
        assert BorrowStatus.DECLINED.is_terminal


class TestRoles:
    def test_ordering(self):
        assert Role.ADMIN.at_least(Role.STAFF)
        assert Role.STAFF.at_least(Role.USER)
        assert not Role.USER.at_least(Role.STAFF)
        assert not Role.ANONYMOUS.at_least(Role.USER)

    def test_identity_authentication(self):
        assert not Identity().is_authenticated
        assert Identity(user_id="user_abc123", role=Role.USER).is_authenticated


class TestInputValidation:
    def test_isbn_normalization(self):
        assert normalize_isbn("978-0-13-235088-4") == "9780132350884"
        assert normalize_isbn("0-306-40615-x") == "030640615X"
        with pytest.raises(ValueError):
            normalize_isbn("12345")

    def test_book_create_rejects_blank_title(self):
        with pytest.raises(ValidationError):
            BookCreate(title="   ", isbn="9780132350884", author="Someone")

    def test_book_create_dedupes_categories(self):
        book = BookCreate(
            title="Clean Code",
            isbn="9780132350884",
            author="Robert C. Martin",
            category_ids=["category_a", "category_b", "category_a"],
        )
        assert book.category_ids == ["category_a", "category_b"]

    def test_review_rating_must_be_whole_stars(self):
        with pytest.raises(ValidationError):
            ReviewCreate(book_id="book_1", rating=6)
        with pytest.raises(ValidationError):
            ReviewCreate(book_id="book_1", rating=4.5)

    def test_review_update_needs_a_change(self):
        with pytest.raises(ValidationError):
            ReviewUpdate()
