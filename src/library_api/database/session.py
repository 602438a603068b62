"""
Database session management for the Library Lending API.

Connection management and session handling for SQLAlchemy. Each HTTP request
gets its own short-lived session from ``DatabaseManager.session_scope``;
repositories commit their own units of work through ``safe_commit`` so that a
transition (status change plus inventory move plus fine) lands atomically.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds a SQLite writer waits for another transaction's lock
SQLITE_BUSY_TIMEOUT = 30


def is_memory_database(database_url: str) -> bool:
    """True for ``sqlite://`` and ``sqlite:///:memory:`` style URLs."""
    database = make_url(database_url).database
    return not database or database == ":memory:" or "mode=memory" in database_url


class DatabaseManager:
    """
    Owns the engine and session factory for one database.

    Constructed once at startup and handed to the application factory;
    nothing else in the package reaches for a global engine.
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured URL.
        """
        if database_url is None:
            config = get_config()
            if config.database_url:
                database_url = config.database_url
            else:
                db_path = config.database_path
                if not db_path.is_absolute():
                    db_path = Path.cwd() / db_path
                db_path.parent.mkdir(exist_ok=True, parents=True)
                database_url = f"sqlite:///{db_path}"
                logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite gets foreign keys switched on. A file database gets one
        connection per session, so each session owns its transaction and
        writers wait on the busy timeout; an in-memory database only exists
        on a single shared connection. Other backends get a pre-pinged
        connection pool.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                if is_memory_database(self.database_url):
                    pool_args = {"poolclass": StaticPool}
                else:
                    pool_args = {}
                self._engine = create_engine(
                    self.database_url,
                    connect_args={
                        "check_same_thread": False,
                        "timeout": SQLITE_BUSY_TIMEOUT,
                    },
                    echo=False,
                    **pool_args,
                )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. The caller must close it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            BorrowRepository(session).approve(borrow_id, staff_id)
        # Session is committed on success, rolled back on any error
        ```

        Yields:
            Database session
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except SQLAlchemyError:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        except Exception:
            # Business-rule failures are logged by the HTTP layer
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create the schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """
        Verify the database connection is working.

        Used by the health endpoint.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.debug("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine. Called on application shutdown."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the process-wide database manager used by the server entry point.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Close and forget the process-wide manager (useful for testing)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, rolling back if the commit fails.

    Args:
        session: The database session
        operation: Description of the operation (for logs)

    Raises:
        SQLAlchemyError: The original driver error, after rollback
    """
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.warning("Commit failed for '%s', rolled back", operation)
        raise


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a read, logging the failure context before re-raising.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Context for the log entry

    Returns:
        Query result
    """
    try:
        return query_func(session)
    except SQLAlchemyError:
        logger.exception("Query failed: %s", error_msg)
        raise
