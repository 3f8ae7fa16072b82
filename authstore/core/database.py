"""Async database engine, transaction scope, and schema registration.

Every store operation runs inside ``Database.transaction()``: the body
gets a fresh AsyncSession, the session commits on normal exit and rolls
back on any exception raised inside the body. There are no retries here;
retry policy belongs to the caller.

Schema registration is explicit. Constructing a Database or a store never
creates tables; the bootstrap layer calls ``create_schema()`` once.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authstore.core.config import Settings, settings
from authstore.models import Base

_UNIQUE_VIOLATION_SQLSTATE = "23505"


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == _UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(original or error).lower()
    return "duplicate key" in message or "unique constraint" in message


class Database:
    """Owns the async engine and hands out transactional sessions.

    Attributes:
        engine: The SQLAlchemy async engine.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_pre_ping: bool = True,
    ) -> None:
        """Create the engine and session factory.

        Args:
            url: Async SQLAlchemy URL (postgresql+asyncpg://, sqlite+aiosqlite://).
            echo: Log emitted SQL.
            pool_pre_ping: Test pooled connections before use.
        """
        self.engine: AsyncEngine = create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "Database":
        """Build a Database from application settings."""
        config = config or settings
        return cls(
            config.database_url,
            echo=config.database_echo,
            pool_pre_ping=config.database_pool_pre_ping,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Run a unit of work in one transaction.

        Yields:
            AsyncSession bound to a new transaction.

        Raises:
            Exception: Whatever the body raised, after rolling back.
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create all store tables and indexes that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_schema(self) -> None:
        """Drop all store tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()
