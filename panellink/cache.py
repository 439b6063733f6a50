"""Ephemeral cache adapter for panel links.

This module maps panel ids to their locator in Redis. The cache is a
disposable projection of the authoritative store: every method absorbs
Redis failures, logs them and returns a neutral value, so a degraded cache
only costs latency.

Flow Diagram — Cache Operations
===============================
::
    ┌─────────────┐
    │ engine call │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ key =       │
    │ panel:<id>  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ call_with_  │
    │ retry       │
    └──────┬──────┘
    OK?   │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ log +   │  │ Return  │
│ neutral │  │ value   │
│ value   │  └─────────┘
└─────────┘

Key Behaviours
===============
- Value is the raw locator string; no structured payload.
- A TTL is always set; non-positive TTLs are skipped rather than written.
- Failures never propagate past this module.

Classes:
    PanelCache:  Abstract interface of the cache.
    RedisPanelCache:  redis.asyncio implementation.

Functions:
    panel_cache_key():  Build the namespaced key for a panel id.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from panellink.config import Settings
from panellink.retry import call_with_retry

__all__ = ["PanelCache", "RedisPanelCache", "panel_cache_key", "PANEL_CACHE_ERRORS_TOTAL"]

T = TypeVar("T")

PANEL_CACHE_ERRORS_TOTAL = Counter(
    "panel_cache_errors_total",
    "Cache operations that failed after retries and were absorbed",
)

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionError,
    OSError,
)


def panel_cache_key(panel_id: str, prefix: str = "panel") -> str:
    return f"{prefix}:{panel_id}"


class PanelCache(ABC):
    """Accelerator mapping panel ids to locators. Never a source of truth."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the cache is unreachable. The only method allowed to raise."""

    @abstractmethod
    async def get_locator(self, panel_id: str) -> str | None: ...

    @abstractmethod
    async def set_locator(self, panel_id: str, locator: str, ttl_seconds: int) -> bool: ...

    @abstractmethod
    async def invalidate(self, panel_id: str) -> bool: ...

    @abstractmethod
    async def exists(self, panel_id: str) -> bool: ...

    @abstractmethod
    async def count_keys(self) -> int:
        """Number of panel keys currently cached; -1 when unknown."""


class RedisPanelCache(PanelCache):
    def __init__(self, client: redis.Redis, settings: Settings, logger: logging.Logger | None = None):
        assert client is not None, "client must not be None"
        self._client = client
        self._settings = settings
        self._prefix = settings.CACHE_KEY_PREFIX
        self._logger = logger or logging.getLogger("panellink.cache")

    def key(self, panel_id: str) -> str:
        return panel_cache_key(panel_id, self._prefix)

    async def _absorb(self, operation: str, panel_id: str | None, fn: Callable[[], Awaitable[T]], default: T) -> T:
        try:
            return await call_with_retry(
                fn,
                attempts=self._settings.CACHE_RETRY_ATTEMPTS,
                timeout=self._settings.CACHE_OPERATION_TIMEOUT_SECONDS,
                delay=self._settings.CACHE_RETRY_DELAY_SECONDS,
                retry_on=_TRANSIENT_ERRORS,
                label=f"cache.{operation}",
            )
        except (RedisError, OSError, TimeoutError) as exc:
            PANEL_CACHE_ERRORS_TOTAL.inc()
            self._logger.warning(f"Cache {operation} failed for panel {panel_id}: {exc!r}")
            return default

    async def ping(self) -> None:
        await self._client.ping()

    async def get_locator(self, panel_id: str) -> str | None:
        return await self._absorb("get", panel_id, lambda: self._client.get(self.key(panel_id)), None)

    async def set_locator(self, panel_id: str, locator: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            self._logger.debug(f"Skipping cache write for panel {panel_id}: ttl={ttl_seconds}")
            return False

        async def _set() -> bool:
            return bool(await self._client.set(self.key(panel_id), locator, ex=ttl_seconds))

        return await self._absorb("set", panel_id, _set, False)

    async def invalidate(self, panel_id: str) -> bool:
        async def _delete() -> bool:
            return bool(await self._client.delete(self.key(panel_id)))

        return await self._absorb("delete", panel_id, _delete, False)

    async def exists(self, panel_id: str) -> bool:
        async def _exists() -> bool:
            return await self._client.exists(self.key(panel_id)) == 1

        return await self._absorb("exists", panel_id, _exists, False)

    async def count_keys(self) -> int:
        async def _count() -> int:
            count = 0
            async for _ in self._client.scan_iter(match=f"{self._prefix}:*", count=500):
                count += 1
            return count

        return await self._absorb("count_keys", None, _count, -1)
