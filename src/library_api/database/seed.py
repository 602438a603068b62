"""
Database seeding for the Library Lending API.

Generates a realistic demo library with Faker:
- categories and bookshelves
- books with balanced inventory rows
- readers, staff and an admin
- borrow history: returned loans (some late, some damaged), current loans
  and pending requests, with the fines those returns incurred
- reviews for books readers have actually returned

Inventory counters are derived from the generated borrow records, so the
seeded ledger satisfies ``available + borrowed + damaged + lost = total``.
"""

import logging
import random
from datetime import datetime, timedelta

from faker import Faker

from ..models.borrow import BorrowStatus, LendingPolicy, ReturnCondition
from ..models.fine import FinePolicy, assess_return_fine
from ..models.user import Role
from .repository import new_id
from .schema import (
    Book,
    Bookshelf,
    BorrowRecord,
    Category,
    Fine,
    Inventory,
    Review,
    User,
)
from .session import DatabaseManager

logger = logging.getLogger(__name__)

fake = Faker()

CATEGORY_NAMES = [
    "Fiction", "Mystery", "Science Fiction", "Fantasy", "Biography",
    "History", "Science", "Philosophy", "Poetry", "Business",
]

# Weights for how often a return comes back in each condition
CONDITION_WEIGHTS = {
    ReturnCondition.GOOD: 85,
    ReturnCondition.DAMAGED: 10,
    ReturnCondition.LOST: 5,
}


class ProgressReporter:
    """Logs progress through the seeding steps."""

    def __init__(self, total_steps: int) -> None:
        self.total_steps = total_steps
        self.current_step = 0

    def update(self, task: str, increment: int = 1) -> None:
        self.current_step += increment
        percentage = (self.current_step / self.total_steps) * 100
        logger.info("[%5.1f%%] %s", percentage, task)


def generate_isbn13() -> str:
    """Generate a valid ISBN-13 number."""
    isbn_without_check = f"978{random.randint(0, 9)}{random.randint(1000, 9999)}{random.randint(1000, 9999)}"
    total = sum(int(digit) * (3 if i % 2 else 1) for i, digit in enumerate(isbn_without_check))
    check_digit = (10 - (total % 10)) % 10
    return f"{isbn_without_check}{check_digit}"


def generate_categories() -> list[Category]:
    return [
        Category(id=f"category_{i + 1:05d}", name=name, description=fake.sentence())
        for i, name in enumerate(CATEGORY_NAMES)
    ]


def generate_bookshelves(num_shelves: int = 8) -> list[Bookshelf]:
    shelves = []
    for i in range(num_shelves):
        floor = i // 4 + 1
        shelves.append(
            Bookshelf(
                id=f"shelf_{i + 1:05d}",
                code=f"F{floor}-{chr(ord('A') + i % 4)}",
                name=f"Floor {floor} shelf {chr(ord('A') + i % 4)}",
                description=fake.sentence(),
                location=f"Floor {floor}",
            )
        )
    return shelves


def generate_users(num_readers: int = 60, num_staff: int = 3) -> list[User]:
    """
    Generate readers plus a small staff.

    Every reader gets a student id; the first staff member is the admin.
    """
    users = []
    used_emails: set[str] = set()

    def unique_email() -> str:
        email = fake.email()
        while email in used_emails:
            email = fake.email()
        used_emails.add(email)
        return email

    for i in range(num_readers):
        users.append(
            User(
                id=f"user_{i + 1:05d}",
                name=fake.name(),
                student_id=f"S{i + 1:06d}",
                email=unique_email(),
                phone=fake.numerify("##########"),
                role=Role.USER,
            )
        )

    for i in range(num_staff):
        users.append(
            User(
                id=f"user_staff{i + 1:02d}",
                name=fake.name(),
                email=unique_email(),
                role=Role.ADMIN if i == 0 else Role.STAFF,
            )
        )

    return users


def generate_books(
    categories: list[Category], shelves: list[Bookshelf], num_books: int = 200
) -> list[Book]:
    books = []
    used_isbns: set[str] = set()

    for i in range(num_books):
        isbn = generate_isbn13()
        while isbn in used_isbns:
            isbn = generate_isbn13()
        used_isbns.add(isbn)

        books.append(
            Book(
                id=f"book_{i + 1:05d}",
                title=fake.catch_phrase().title(),
                isbn=isbn,
                author=fake.name(),
                publisher=fake.company(),
                publish_year=random.randint(1950, 2024),
                description=fake.text(max_nb_chars=400),
                price=float(random.randrange(50_000, 500_000, 1_000)),
                image=f"https://example.com/covers/{isbn}.jpg" if random.random() > 0.2 else None,
                bookshelf_id=random.choice(shelves).id if random.random() > 0.1 else None,
                categories=random.sample(categories, random.randint(1, 3)),
            )
        )

    return books


def generate_circulation(
    users: list[User],
    books: list[Book],
    staff_id: str,
    num_records: int = 400,
    lending_policy: LendingPolicy | None = None,
    fine_policy: FinePolicy | None = None,
) -> tuple[list[BorrowRecord], list[Fine], list[Review], list[Inventory]]:
    """
    Generate borrow history and the inventory it implies.

    Roughly 70% of records are completed returns, 20% current loans and 10%
    pending requests. A (reader, book) pair never has more than one active
    record, and current loans only draw on copies still on the shelf.
    """
    lending_policy = lending_policy or LendingPolicy()
    fine_policy = fine_policy or FinePolicy()
    now = datetime.now().replace(microsecond=0)

    readers = [u for u in users if u.role == Role.USER]
    totals = {book.id: random.randint(1, 6) for book in books}
    counters = {book.id: {"borrowed": 0, "damaged": 0, "lost": 0} for book in books}
    active_pairs: set[tuple[str, str]] = set()
    returned_pairs: set[tuple[str, str]] = set()

    records: list[BorrowRecord] = []
    fines: list[Fine] = []

    def copies_on_shelf(book_id: str) -> int:
        used = counters[book_id]
        return totals[book_id] - used["borrowed"] - used["damaged"] - used["lost"]

    for _ in range(num_records):
        reader = random.choice(readers)
        book = random.choice(books)
        pair = (reader.id, book.id)
        on_site = random.random() < 0.15
        roll = random.random()

        if roll < 0.7:
            if copies_on_shelf(book.id) <= 0:
                continue
            requested_at = fake.date_time_between(start_date="-1y", end_date="-1M")
            due_date = lending_policy.due_date_for(requested_at, on_site)
            condition = random.choices(
                list(CONDITION_WEIGHTS), weights=list(CONDITION_WEIGHTS.values())
            )[0]
            # Most returns are on time, some up to two weeks late
            if random.random() < 0.8:
                return_date = requested_at + (due_date - requested_at) * random.random()
            else:
                return_date = due_date + timedelta(days=random.randint(1, 14))

            record = BorrowRecord(
                id=new_id("borrow"),
                user_id=reader.id,
                book_id=book.id,
                status=BorrowStatus.LOST if condition == ReturnCondition.LOST else BorrowStatus.RETURNED,
                is_read_on_site=on_site,
                requested_at=requested_at,
                borrow_date=requested_at,
                due_date=due_date,
                return_date=return_date,
                return_condition=condition,
                processed_by=staff_id,
            )
            records.append(record)
            if record.status == BorrowStatus.RETURNED:
                returned_pairs.add(pair)
            if condition != ReturnCondition.GOOD:
                counters[book.id][condition.value] += 1

            assessment = assess_return_fine(
                due_date, return_date, condition, book.price, fine_policy
            )
            if assessment is not None:
                paid = random.random() < 0.7
                fine = Fine(
                    id=new_id("fine"),
                    user_id=reader.id,
                    borrow_record_id=record.id,
                    reason=assessment.reason,
                    amount=assessment.amount,
                    paid=paid,
                    paid_at=return_date + timedelta(days=random.randint(0, 10)) if paid else None,
                    payment_method=random.choice(["cash", "card"]) if paid else None,
                    processed_by=staff_id,
                    note=assessment.note,
                    created_at=return_date,
                )
                fines.append(fine)
                record.fine_id = fine.id
            continue

        if pair in active_pairs:
            continue

        requested_at = fake.date_time_between(start_date="-3w", end_date=now)
        if roll < 0.9:
            if copies_on_shelf(book.id) <= 0:
                continue
            record = BorrowRecord(
                id=new_id("borrow"),
                user_id=reader.id,
                book_id=book.id,
                status=BorrowStatus.BORROWED,
                is_read_on_site=on_site,
                requested_at=requested_at,
                borrow_date=requested_at,
                due_date=lending_policy.due_date_for(requested_at, on_site),
                processed_by=staff_id,
            )
            counters[book.id]["borrowed"] += 1
        else:
            record = BorrowRecord(
                id=new_id("borrow"),
                user_id=reader.id,
                book_id=book.id,
                status=BorrowStatus.PENDING,
                is_read_on_site=on_site,
                requested_at=requested_at,
                due_date=lending_policy.due_date_for(requested_at, on_site),
            )
        records.append(record)
        active_pairs.add(pair)

    reviews = [
        Review(
            id=new_id("review"),
            user_id=user_id,
            book_id=book_id,
            rating=random.choices([1, 2, 3, 4, 5], weights=[5, 10, 20, 35, 30])[0],
            comment=fake.sentence() if random.random() > 0.3 else None,
        )
        for user_id, book_id in sorted(returned_pairs)
        if random.random() < 0.4
    ]

    inventories = [
        Inventory(
            book_id=book.id,
            total=totals[book.id],
            available=copies_on_shelf(book.id),
            **counters[book.id],
        )
        for book in books
    ]

    return records, fines, reviews, inventories


def seed_database(db_manager: DatabaseManager, seed: int | None = 42) -> dict[str, int]:
    """
    Rebuild the schema and fill it with generated data.

    Args:
        db_manager: Target database
        seed: Random seed for reproducible data; None for a fresh library each run

    Returns:
        Row counts per table
    """
    if seed is not None:
        Faker.seed(seed)
        random.seed(seed)

    progress = ProgressReporter(total_steps=5)

    db_manager.init_database(drop_existing=True)
    progress.update("Database tables created")

    with db_manager.session_scope() as session:
        categories = generate_categories()
        shelves = generate_bookshelves()
        session.add_all(categories + shelves)
        session.flush()
        progress.update(f"Generated {len(categories)} categories and {len(shelves)} bookshelves")

        users = generate_users()
        session.add_all(users)
        session.flush()
        progress.update(f"Generated {len(users)} users")

        books = generate_books(categories, shelves)
        session.add_all(books)
        session.flush()
        progress.update(f"Generated {len(books)} books")

        staff_id = next(u.id for u in users if u.role == Role.STAFF)
        records, fines, reviews, inventories = generate_circulation(users, books, staff_id)

        # fine_id is attached after the fines exist
        fine_links = {record.id: record.fine_id for record in records if record.fine_id}
        for record in records:
            record.fine_id = None
        session.add_all(inventories)
        session.add_all(records)
        session.flush()
        session.add_all(fines)
        session.flush()
        for record in records:
            record.fine_id = fine_links.get(record.id)
        session.add_all(reviews)
        progress.update(
            f"Generated {len(records)} borrow records, {len(fines)} fines and {len(reviews)} reviews"
        )

    counts = {
        "categories": len(categories),
        "bookshelves": len(shelves),
        "users": len(users),
        "books": len(books),
        "borrow_records": len(records),
        "fines": len(fines),
        "reviews": len(reviews),
    }
    logger.info("=" * 50)
    logger.info("DATABASE SEEDING COMPLETE")
    for table, count in counts.items():
        logger.info("%-15s %6d", table, count)
    logger.info("=" * 50)
    return counts
