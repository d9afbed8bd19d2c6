"""Async engine and sessions for the integration store."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mailbridge.models import Base

if TYPE_CHECKING:
    from mailbridge.core.config import Settings

logger = structlog.get_logger(__name__)


class Database:
    """Owns the async engine and hands out sessions.

    Example:
        db = Database.from_settings(settings)
        await db.connect()
        async with db.session() as session:
            ...
        await db.disconnect()
    """

    def __init__(self, url: str, pool_size: int = 10) -> None:
        self.url = url
        self.pool_size = pool_size
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(settings.database_url, pool_size=settings.db_pool_size)

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine.

        Raises:
            RuntimeError: If :meth:`connect` has not been called.
        """
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._engine

    async def connect(self) -> None:
        """Create the engine and session factory. Idempotent."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(self.url, pool_size=self.pool_size, pool_pre_ping=True)
        # Stores return detached copies, so attributes must survive commit.
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False, autoflush=False)

    async def create_schema(self) -> None:
        """Create the integration and message tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await logger.ainfo("database_schema_ready", tables=sorted(Base.metadata.tables))

    async def disconnect(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session; uncommitted work is rolled back on error.

        Raises:
            RuntimeError: If :meth:`connect` has not been called.
        """
        if self._sessions is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        async with self._sessions() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
