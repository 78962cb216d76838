"""Database connection management.

Provides async database access using SQLAlchemy. PostgreSQL (asyncpg) is the
production target; SQLite (aiosqlite) is supported for development and tests.

The connection is an explicitly constructed ``Database`` object handed to the
stores at startup and disposed at shutdown. There is no module-level engine,
so tests can run isolated databases side by side.

## Configuration

- DATABASE_URL: Full connection string
- DATABASE_POOL_SIZE: Connection pool size (default: 5)
- DATABASE_MAX_OVERFLOW: Max overflow connections (default: 10)

## Usage

```python
from garden_auth.database import Database

db = Database.from_settings(get_settings())
await db.create_tables()

async with db.session() as session:
    user = await session.get(User, user_id)

await db.close()
```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from garden_auth.config import Settings
from garden_auth.database.models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and session factory for one database."""

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: float = 30.0,
        echo: bool = False,
    ):
        """Create the engine and session factory.

        Args:
            url: SQLAlchemy async database URL
            pool_size: Connection pool size (ignored for SQLite)
            max_overflow: Extra connections above pool_size (ignored for SQLite)
            pool_timeout: Seconds to wait for a pooled connection
            echo: Log SQL statements
        """
        self.url = url
        is_sqlite = make_url(url).get_backend_name() == "sqlite"

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if not is_sqlite:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,  # Verify connections before use
            )

        self._engine: AsyncEngine | None = create_async_engine(url, **engine_kwargs)
        if is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory: async_sessionmaker[AsyncSession] | None = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info("Database connection initialized")

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        """Build a database handle from application settings."""
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.storage_timeout_seconds,
            echo=settings.database_echo,
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is closed")
        return self._engine

    async def close(self) -> None:
        """Dispose of the engine. The handle cannot be used afterwards."""
        if self._engine is not None:
            logger.info("Closing database connection")
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    async def create_tables(self) -> None:
        """Create all database tables.

        For development/testing only. Use migrations in production.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database tables created")

    async def drop_tables(self) -> None:
        """Drop all database tables.

        For development/testing only. Use with caution!
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        logger.warning("Database tables dropped")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session.

        Transactions are not automatically committed - call commit()
        explicitly. The session is rolled back on error and always closed.
        """
        if self._session_factory is None:
            raise RuntimeError("Database is closed")

        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
