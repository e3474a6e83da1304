"""Database connection management with SQLAlchemy.

A Database owns one engine and one shared Session. Every table handle it
hands out executes through that session, so ``flush()`` commits the pending
work of all repositories bound to the same Database at once.
"""

from sqlalchemy import Engine, event, text
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tablescribe.core.config import settings
from tablescribe.core.logging import get_logger
from tablescribe.core.table import Table
from tablescribe.core.tracing import trace_database
from tablescribe.models.base import Row

logger = get_logger(__name__)


class DBErrorMessage:
    """Standardized database error messages."""
    CREATE_ENGINE_NO_URL = "DATABASE_URL is not configured"
    CREATE_ENGINE_MIN_DB_POOL_SIZE = "DATABASE_POOL_SIZE must be at least 1"
    CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW = "DATABASE_MAX_OVERFLOW must be non-negative"
    CREATE_ENGINE_FAILED = "Failed to create database engine"

    TABLE_NOT_MAPPED = "Model is not a mapped Row with a table"
    CLOSE_DATABASE_FAILED = "Failed to close database connections"


def create_engine() -> Engine:
    """Create an Engine from settings.

    Returns:
        Engine: Configured SQLAlchemy engine

    Connection Pool Configuration (non-SQLite only):
        - pool_size: Number of connections to keep in the pool (default: 20)
        - max_overflow: Maximum overflow connections (default: 10)
        - pool_pre_ping: Test connections before handing them out
        - pool_recycle: Recycle connections after one hour

    Raises:
        ValueError: If database URL is invalid or settings are misconfigured
    """
    try:
        if not settings.database_url:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NO_URL)

        if settings.database_pool_size < 1:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_MIN_DB_POOL_SIZE)

        if settings.database_max_overflow < 0:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW)

        logger.info(
            "Creating database engine",
            url=settings.database_url.split("@")[1] if "@" in settings.database_url else "***",
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

        # SQLite's pools take no sizing arguments
        if settings.is_sqlite:
            engine = sa_create_engine(settings.database_url, echo=settings.database_echo)
            enable_sqlite_savepoints(engine)
            return engine

        return sa_create_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Failed to create database engine, due to configuration error: {e}")
        raise ValueError(DBErrorMessage.CREATE_ENGINE_FAILED) from e


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy control SQLite transactions so SAVEPOINT works.

    The sqlite3 driver opens and commits transactions on its own, which breaks
    nested transactions. This hands BEGIN over to SQLAlchemy and turns on
    foreign key enforcement for every new connection.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")


class Database:
    """Engine plus the shared session all table handles execute through."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(
            engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
        self._session: Session | None = None

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def session(self) -> Session:
        """The shared session, opened on first use."""
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    def table(self, model: type[Row]) -> Table:
        """Create a table handle for a mapped model.

        Raises:
            ValueError: If the model is not a Row subclass with a table
        """
        if not (isinstance(model, type) and issubclass(model, Row)) or getattr(model, "__table__", None) is None:
            raise ValueError(DBErrorMessage.TABLE_NOT_MAPPED)
        return Table(self, model)

    def create_all(self) -> None:
        """Create every table registered on the Row metadata."""
        Row.metadata.create_all(self._engine)

    @trace_database("database.flush")
    def flush(self) -> None:
        """Commit the shared transaction.

        Raises:
            SQLAlchemyError: If the commit fails; the session is rolled back first
        """
        try:
            self.session.commit()
            logger.debug("Transaction committed")
        except SQLAlchemyError as e:
            logger.error(f"Commit failed, rolling back: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        """Discard everything executed since the last commit."""
        self.session.rollback()
        logger.debug("Transaction rolled back")

    def check_connection(self) -> bool:
        """Check if the database is reachable.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.debug("Database connection check passed")
            return True
        except Exception as e:
            logger.error(f"Database connection check failed with error: {e}")
            return False

    def close(self) -> None:
        """Close the shared session and dispose of the engine's pool.

        Raises:
            RuntimeError: If the engine cannot be disposed
        """
        try:
            logger.info("Closing database connections")
            if self._session is not None:
                self._session.close()
                self._session = None
            self._engine.dispose()
        except Exception as e:
            logger.error(f"Error closing database connections: {e}")
            raise RuntimeError(DBErrorMessage.CLOSE_DATABASE_FAILED) from e


_database: Database | None = None


def get_database() -> Database:
    """Return the process-wide Database, creating it from settings on first use."""
    global _database
    if _database is None:
        _database = Database(create_engine())
    return _database


def close_database() -> None:
    """Close the process-wide Database if one was created.

    Should be called during application shutdown.
    """
    global _database
    if _database is not None:
        _database.close()
        _database = None
