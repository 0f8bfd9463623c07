from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..settings import DocumentStoreSettings
from .base import Base


class DBEngine:
    """Holds the async SQLAlchemy engine and session factory."""

    def __init__(self, settings: DocumentStoreSettings):
        url = settings.resolved_database_url
        engine_kwargs: dict[str, Any] = {
            "echo": settings.db_echo,
            "future": True,
            "pool_pre_ping": True,
            "pool_recycle": settings.pool_recycle or 1800,
        }
        if url.startswith("sqlite+aiosqlite://") and ":memory:" in url:
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_size"] = settings.pool_size
            engine_kwargs["max_overflow"] = settings.max_overflow
            engine_kwargs["pool_timeout"] = 30

        if url.startswith("postgresql+asyncpg://"):
            connect_args = engine_kwargs.setdefault("connect_args", {})
            connect_args["statement_cache_size"] = settings.statement_cache_size

        self._engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self._session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        sess = self._session_factory()
        try:
            yield sess
        finally:
            await sess.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session() as sess:
            async with sess.begin():
                yield sess

    async def create_schema(self) -> None:
        # Import models so their tables are registered on Base.metadata
        from . import models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
