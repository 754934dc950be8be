"""
Database initialization and connection management utilities.

This module provides the engine factory and the StateDatabase handle that
owns one engine and hands out transactional sessions.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, pool, text
from sqlalchemy.orm import Session, sessionmaker

from appwrite_transfer.client.exceptions import ConfigurationError, PersistenceError
from appwrite_transfer.config import DatabaseConfig
from appwrite_transfer.migration.models import Base
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """
    Enable foreign key constraints for SQLite connections.

    SQLite has foreign keys disabled by default. This event handler
    enables them for each new connection.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(config: DatabaseConfig) -> Engine:
    """
    Create a SQLAlchemy engine with appropriate settings.

    Args:
        config: Database configuration

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database URL is invalid
    """
    database_url = config.url
    is_sqlite = database_url.startswith("sqlite")

    try:
        if is_sqlite:
            # NullPool avoids sharing SQLite connections across threads
            engine = create_engine(
                database_url,
                echo=config.echo,
                poolclass=pool.NullPool,
                connect_args={"check_same_thread": False},
            )
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_engine(
                database_url,
                echo=config.echo,
                pool_size=config.pool_size,
                max_overflow=config.max_overflow,
                pool_timeout=config.pool_timeout,
                pool_pre_ping=True,
                pool_recycle=config.pool_recycle,
            )
    except Exception as e:
        logger.error("database_engine_failed", error=str(e))
        raise ConfigurationError(f"Failed to create database engine: {e}") from e

    logger.debug(
        "database_engine_created",
        database_type=engine.dialect.name,
        pool="NullPool" if is_sqlite else config.pool_size,
    )
    return engine


class StateDatabase:
    """
    Handle on the platform database.

    Usage:
        database = StateDatabase(config.database)
        database.create_tables()
        with database.session() as session:
            session.add(row)
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = create_database_engine(config)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create all tables if they don't exist. Idempotent."""
        try:
            Base.metadata.create_all(self.engine)
        except Exception as e:
            logger.error("database_init_failed", error=str(e))
            raise PersistenceError(f"Failed to initialize database: {e}") from e

        logger.info("database_initialized", tables=len(Base.metadata.tables))

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Commits on success, rolls back on exception and always closes the
        session.

        Yields:
            SQLAlchemy Session instance

        Raises:
            PersistenceError: If the database operation fails
        """
        session = self._session_factory()

        try:
            yield session
            session.commit()

        except PersistenceError:
            session.rollback()
            raise

        except Exception as e:
            session.rollback()
            logger.error("database_session_rolled_back", error=str(e))
            raise PersistenceError(f"Database operation failed: {e}") from e

        finally:
            session.close()

    def ping(self) -> bool:
        """Return whether a connection can be established."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("database_connection_failed", error=str(e))
            return False
        return True

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
