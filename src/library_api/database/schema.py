"""
SQLAlchemy database schema for the Library Lending API.

One table per entity, each with a stable string identity. Two invariants are
enforced by the database itself as well as by the repositories:

1. Inventory conservation: ``available + borrowed + damaged + lost = total``
   is a CHECK constraint, so no write path can persist an unbalanced ledger.
2. One active borrow per (user, book): a partial unique index over records in
   ``pending`` or ``borrowed`` status.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

from ..models.borrow import BorrowStatus, ReturnCondition
from ..models.fine import FineReason
from ..models.user import Role

Base = declarative_base()

_ACTIVE_BORROW_CLAUSE = text("status IN ('pending', 'borrowed')")


def _enum_column(enum_cls, name: str) -> Enum:
    """Store enums by value (``'pending'``) rather than by member name."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


book_categories = Table(
    "book_categories",
    Base.metadata,
    Column("book_id", String(50), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "category_id",
        String(50),
        ForeignKey("categories.id", ondelete="RESTRICT"),
        primary_key=True,
    ),
)


class User(Base):
    """
    Users table - library members and staff.

    Rows are provisioned by the bulk user import; the API reads them for
    existence checks and embeds summaries in borrow records and fines.
    """

    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    student_id = Column(String(50), nullable=True, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(30), nullable=True)
    role = Column(_enum_column(Role, "user_role"), nullable=False, default=Role.USER)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    borrow_records = relationship(
        "BorrowRecord", back_populates="user", foreign_keys="BorrowRecord.user_id"
    )
    fines = relationship("Fine", back_populates="user", foreign_keys="Fine.user_id")
    reviews = relationship("Review", back_populates="user")

    __table_args__ = (CheckConstraint("id LIKE 'user_%'", name="check_user_id_format"),)


class Category(Base):
    """Categories table - subject headings, unique by name."""

    __tablename__ = "categories"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    books = relationship("Book", secondary=book_categories, back_populates="categories")

    __table_args__ = (CheckConstraint("id LIKE 'category_%'", name="check_category_id_format"),)


class Bookshelf(Base):
    """Bookshelves table - physical shelves, unique by code."""

    __tablename__ = "bookshelves"

    id = Column(String(50), primary_key=True)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(200), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    books = relationship("Book", back_populates="bookshelf")

    __table_args__ = (CheckConstraint("id LIKE 'shelf_%'", name="check_shelf_id_format"),)


class Book(Base):
    """
    Books table - the catalog.

    Copy counts are not stored here; see ``Inventory``. Deleting a book
    removes its inventory and reviews and detaches historical borrow records.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False, index=True)
    isbn = Column(String(13), nullable=False, unique=True)
    author = Column(String(200), nullable=False, index=True)
    publisher = Column(String(200), nullable=True)
    publish_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    image = Column(String(500), nullable=True)
    bookshelf_id = Column(
        String(50), ForeignKey("bookshelves.id", ondelete="RESTRICT"), nullable=True
    )

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    categories = relationship("Category", secondary=book_categories, back_populates="books")
    bookshelf = relationship("Bookshelf", back_populates="books")
    inventory = relationship(
        "Inventory", back_populates="book", uselist=False, cascade="all, delete-orphan"
    )
    borrow_records = relationship("BorrowRecord", back_populates="book")
    reviews = relationship("Review", back_populates="book", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_book_bookshelf", "bookshelf_id"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
    )

    @validates("isbn")
    def validate_isbn(self, key, value):  # noqa: ARG002
        if not value or len(value) not in (10, 13):
            raise ValueError("ISBN must be 10 or 13 characters")
        return value


class Inventory(Base):
    """
    Inventory table - copy counters, one row per book.

    Written only by the inventory ledger, always through conditional updates.
    """

    __tablename__ = "inventories"

    book_id = Column(String(50), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True)
    total = Column(Integer, nullable=False, default=0)
    available = Column(Integer, nullable=False, default=0)
    borrowed = Column(Integer, nullable=False, default=0)
    damaged = Column(Integer, nullable=False, default=0)
    lost = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="inventory")

    __table_args__ = (
        Index("idx_inventory_available", "available"),
        CheckConstraint("total >= 0", name="check_total_non_negative"),
        CheckConstraint("available >= 0", name="check_available_non_negative"),
        CheckConstraint("borrowed >= 0", name="check_borrowed_non_negative"),
        CheckConstraint("damaged >= 0", name="check_damaged_non_negative"),
        CheckConstraint("lost >= 0", name="check_lost_non_negative"),
        CheckConstraint(
            "available + borrowed + damaged + lost = total",
            name="check_inventory_conservation",
        ),
    )


class BorrowRecord(Base):
    """
    Borrow records table - one row per borrow attempt.

    Status transitions are conditional updates keyed on the expected prior
    status, so a request cannot be approved or returned twice.
    """

    __tablename__ = "borrow_records"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        _enum_column(BorrowStatus, "borrow_status"),
        nullable=False,
        default=BorrowStatus.PENDING,
    )
    is_read_on_site = Column(Boolean, nullable=False, default=False)
    requested_at = Column(DateTime, nullable=False, default=func.now())
    due_date = Column(DateTime, nullable=False)
    borrow_date = Column(DateTime, nullable=True)
    return_date = Column(DateTime, nullable=True)
    return_condition = Column(_enum_column(ReturnCondition, "return_condition"), nullable=True)
    processed_by = Column(String(50), nullable=True)
    fine_id = Column(
        String(50), ForeignKey("fines.id", ondelete="SET NULL", use_alter=True), nullable=True
    )
    notes = Column(Text, nullable=True)

    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="borrow_records", foreign_keys=[user_id])
    book = relationship("Book", back_populates="borrow_records")

    __table_args__ = (
        Index("idx_borrow_user", "user_id"),
        Index("idx_borrow_book", "book_id"),
        Index("idx_borrow_status", "status"),
        Index("idx_borrow_due_date", "due_date"),
        Index(
            "uq_borrow_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=_ACTIVE_BORROW_CLAUSE,
            postgresql_where=_ACTIVE_BORROW_CLAUSE,
        ),
        CheckConstraint("id LIKE 'borrow_%'", name="check_borrow_id_format"),
    )


class Fine(Base):
    """
    Fines table - penalties owed by users.

    Created by the return transition or manually by staff. Once paid, a fine
    is immutable: it cannot be paid again or deleted.
    """

    __tablename__ = "fines"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    borrow_record_id = Column(
        String(50), ForeignKey("borrow_records.id", ondelete="SET NULL"), nullable=True
    )
    reason = Column(_enum_column(FineReason, "fine_reason"), nullable=False)
    amount = Column(Float, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    processed_by = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="fines", foreign_keys=[user_id])
    borrow_record = relationship("BorrowRecord", foreign_keys=[borrow_record_id])

    __table_args__ = (
        Index("idx_fine_user_paid", "user_id", "paid"),
        Index("idx_fine_created", "created_at"),
        CheckConstraint("id LIKE 'fine_%'", name="check_fine_id_format"),
        CheckConstraint("amount > 0", name="check_fine_amount_positive"),
    )


class Review(Base):
    """Reviews table - one review per (user, book)."""

    __tablename__ = "reviews"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="reviews")
    book = relationship("Book", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_review_user_book"),
        Index("idx_review_book", "book_id"),
        CheckConstraint("id LIKE 'review_%'", name="check_review_id_format"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
    )
