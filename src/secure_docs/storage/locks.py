"""
Quota guards serialize the check-then-persist section of an upload.

Without a guard two concurrent uploads can both pass the quota check before
either is persisted, so capacity acts as a soft limit. ``RedisQuotaGuard``
turns it into a hard limit across every instance sharing the Redis server.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from redis.exceptions import LockError, RedisError

from ..exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


class QuotaGuard(ABC):
    @abstractmethod
    def hold(self) -> Any:
        """Async context manager around the quota check and the persistence."""

    async def close(self) -> None:
        return None


class NullQuotaGuard(QuotaGuard):
    """Best-effort quota: no serialization."""

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        yield


class RedisQuotaGuard(QuotaGuard):
    def __init__(
        self,
        client: Any,
        *,
        name: str = "secure-docs:quota-lock",
        timeout: float = 10.0,
        blocking_timeout: float | None = None,
    ):
        """
        Args:
            client: ``redis.asyncio.Redis`` instance
            name: Lock key
            timeout: Lock expiry, bounds how long a crashed holder blocks others
            blocking_timeout: How long to wait for the lock (defaults to ``timeout``)
        """
        self._r = client
        self.name = name
        self.timeout = timeout
        self.blocking_timeout = timeout if blocking_timeout is None else blocking_timeout

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisQuotaGuard":
        from redis import asyncio as redis

        return cls(redis.from_url(url), **kwargs)

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        lock = self._r.lock(self.name, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise StorageUnavailableError(f"Quota lock unavailable: {exc}") from exc
        if not acquired:
            raise StorageUnavailableError("Timed out waiting for the quota lock")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lock expired while held; the next holder may already own it.
                logger.warning(f"Quota lock {self.name!r} expired before release")

    async def close(self) -> None:
        await self._r.aclose()


__all__ = ["QuotaGuard", "NullQuotaGuard", "RedisQuotaGuard"]
