"""Shared pytest fixtures for test suite."""

import os
from collections.abc import Generator
from unittest.mock import MagicMock

# Set test environment variables BEFORE any tablescribe imports
# Settings are read once at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from tablescribe.core.config import Settings
from tablescribe.core.database import Database, enable_sqlite_savepoints
from tablescribe.core.logging import configure_logging
from tablescribe.core.table import Table
from tablescribe.repositories.base import Repository
from tests.factories import Author, Book


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> None:
    """Configure structured logging once for the whole session.

    Note: Environment variables are set at module level so they apply
    before settings are first read.
    """
    configure_logging()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get settings configured for testing.

    Returns:
        Settings: Test environment settings
    """
    return Settings(
        environment="testing",
        log_level="WARNING",
    )


# ===== Database Fixtures =====


@pytest.fixture
def test_engine() -> Generator[Engine, None, None]:
    """Create an in-memory SQLite engine with all tables.

    StaticPool keeps a single connection, so every session sees the same
    in-memory database. Each test gets a fresh one.

    Yields:
        Engine: Test database engine
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    enable_sqlite_savepoints(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def database(test_engine: Engine) -> Generator[Database, None, None]:
    """Create a Database with the test tables in place.

    Args:
        test_engine: Test database engine

    Yields:
        Database: Database bound to the in-memory engine
    """
    db = Database(test_engine)
    db.create_all()

    yield db

    db.close()


@pytest.fixture
def author_repo(database: Database) -> Repository[Author]:
    """Repository for the authors table."""
    return Repository(Author, database)


@pytest.fixture
def book_repo(database: Database) -> Repository[Book]:
    """Repository for the books table (primary key "isbn")."""
    return Repository(Book, database)


# ===== Mock Fixtures =====


@pytest.fixture
def mock_table() -> MagicMock:
    """Create a mock table handle.

    Queueing methods return the mock itself, like the real handle.
    """
    table = MagicMock(spec=Table)
    for name in ("select", "insert", "update", "delete", "join", "limit", "order_by"):
        getattr(table, name).return_value = table
    table.get_name.return_value = "authors"
    table.get_primary_key.return_value = "id"
    return table


@pytest.fixture
def mock_database(mock_table: MagicMock) -> MagicMock:
    """Create a mock Database handing out mock_table."""
    db = MagicMock(spec=Database)
    db.table.return_value = mock_table
    return db
