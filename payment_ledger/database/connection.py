"""Database connection and session management."""
from typing import Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from payment_ledger.config import Settings
from payment_ledger.errors import StoreError
from payment_ledger.database.models import Base

logger = structlog.get_logger(__name__)


class Database:
    """
    Storage handle owned by the process.

    Wraps one async engine and its session factory. Built once at startup and
    handed by reference to every component that touches storage.
    """

    def __init__(
        self,
        database_url: str,
        *,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 50,
    ):
        """
        Initialize the storage handle.

        Args:
            database_url: SQLAlchemy async URL (postgresql+asyncpg://, sqlite+aiosqlite://)
            echo: Echo SQL statements
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Max pool overflow (ignored for SQLite)
        """
        engine_kwargs: dict[str, Any] = {
            "echo": echo,
            "pool_pre_ping": True,  # Verify connections before using
        }
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=3600,  # Recycle connections after 1 hour
            )

        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if database_url.startswith("sqlite"):
            self._begin_immediate()

    def _begin_immediate(self) -> None:
        """
        Make SQLite take its write lock at BEGIN.

        With the driver's deferred BEGIN two writers can each hold a read lock
        and block one another's upgrade; BEGIN IMMEDIATE queues them instead.
        """

        @event.listens_for(self.engine.sync_engine, "connect")
        def disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(self.engine.sync_engine, "begin")
        def begin_immediate(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    def session(self) -> AsyncSession:
        """Open a new session; use as an async context manager."""
        return self._session_factory()

    async def ping(self) -> None:
        """
        Verify the database is reachable.

        Raises:
            StoreError: If a connection cannot be established
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error("database_ping_failed", error=str(e))
            raise StoreError("Database is unreachable", cause=e) from e

    async def create_all(self) -> None:
        """
        Initialize database tables.

        Creates all tables defined in models if they don't exist.
        """
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StoreError("Failed to create database schema", cause=e) from e
        logger.info("database_schema_ready")

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self.engine.dispose()
