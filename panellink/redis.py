"""Redis client construction for the panel cache.

The client is built once by the ServiceManager and handed to RedisPanelCache;
there is no module-level client.

How to Use
===========
**Step 1 — Build on startup**::
    client = create_redis_client(settings)
    cache = RedisPanelCache(client, settings)

**Step 2 — Cleanup on shutdown**::
    await close_redis(client)

Key Behaviours
===============
- UTF-8 encoding with decode_responses so the cache returns locator strings.
- Socket timeouts match the per-operation cache timeout.
"""

import redis.asyncio as redis

from panellink.config import Settings

__all__ = ["create_redis_client", "close_redis"]


def create_redis_client(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.CACHE_OPERATION_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.CACHE_OPERATION_TIMEOUT_SECONDS,
    )


async def close_redis(client: redis.Redis | None) -> None:
    if client is not None:
        await client.aclose()
