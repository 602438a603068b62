"""Test configuration and fixtures for the Library Lending API.

1. Isolated databases - each test gets its own SQLite file
2. A controllable clock - overdue behaviour is tested by moving time forward
3. Sample users and books created through the repositories
4. An HTTP client bound to an app built on the same database
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from library_api.app import create_app
from library_api.config import ServerConfig, reset_config
from library_api.database import (
    BookRepository,
    BorrowRepository,
    DatabaseManager,
    FineRepository,
    UserRepository,
)
from library_api.models.book import BookCreate
from library_api.models.borrow import BorrowRequestCreate
from library_api.models.user import Role

READER_ID = "user_reader01"
OTHER_READER_ID = "user_reader02"
STAFF_ID = "user_staff01"
ADMIN_ID = "user_admin01"


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def db_manager(test_db_path: Path) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(f"sqlite:///{test_db_path}")
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    with db_manager.session_scope() as session:
        yield session


# === Configuration Fixtures ===


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[ServerConfig, None, None]:
    reset_config()
    config = ServerConfig(
        server_name="test-library-api",
        server_version="0.0.1-test",
        database_path=test_db_path,
        debug=True,
        log_level="DEBUG",
    )
    yield config
    reset_config()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 1, 10, 0, 0))


# === Repository Fixtures ===


@pytest.fixture
def borrow_repo(session: Session, test_config: ServerConfig, clock: FixedClock) -> BorrowRepository:
    return BorrowRepository(
        session,
        lending_policy=test_config.lending_policy,
        fine_policy=test_config.fine_policy,
        clock=clock,
    )


@pytest.fixture
def fine_repo(session: Session, clock: FixedClock) -> FineRepository:
    return FineRepository(session, clock=clock)


# === Test Data Fixtures ===


@pytest.fixture
def users(session: Session) -> dict[str, str]:
    """A reader, a second reader, a staff member and an admin."""
    repo = UserRepository(session)
    repo.create("Reader One", "reader1@example.com", Role.USER, student_id="S000001", user_id=READER_ID)
    repo.create("Reader Two", "reader2@example.com", Role.USER, student_id="S000002", user_id=OTHER_READER_ID)
    repo.create("Staff Member", "staff@example.com", Role.STAFF, user_id=STAFF_ID)
    repo.create("Admin", "admin@example.com", Role.ADMIN, user_id=ADMIN_ID)
    return {"reader": READER_ID, "other": OTHER_READER_ID, "staff": STAFF_ID, "admin": ADMIN_ID}


@pytest.fixture
def make_book(session: Session):
    """Factory creating books with a given number of copies."""
    repo = BookRepository(session)
    counter = iter(range(1000))

    def _make(quantity: int = 2, price: float = 100_000, **overrides):
        n = next(counter)
        data = {
            "title": f"Test Book {n}",
            "isbn": f"978000000{n:04d}",
            "author": "Test Author",
            "price": price,
            "quantity": quantity,
            **overrides,
        }
        return repo.create(BookCreate(**data))

    return _make


@pytest.fixture
def book(make_book):
    """A book with two copies priced at 100,000."""
    return make_book(quantity=2, price=100_000)


@pytest.fixture
def borrowed(users, book, borrow_repo):
    """A take-home borrow of ``book`` by the reader, already approved."""
    record = borrow_repo.create_request(users["reader"], BorrowRequestCreate(book_id=book.id))
    return borrow_repo.approve(record.id, users["staff"])


# === HTTP Fixtures ===


@pytest.fixture
def client(db_manager, test_config, clock) -> Generator[TestClient, None, None]:
    app = create_app(db_manager=db_manager, config=test_config, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user_id: str, role: Role | str = Role.USER) -> dict[str, str]:
    """Headers the auth middleware would forward for ``user_id``."""
    return {"X-User-Id": user_id, "X-User-Role": Role(role).value}


@pytest.fixture
def auth():
    return auth_headers


# === Cleanup Fixtures ===


@pytest.fixture(autouse=True)
def cleanup_after_test():
    yield
    reset_config()
    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_API_TEST_"):
            del os.environ[key]
