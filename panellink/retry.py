"""Timeout-and-retry wrapper for store operations.

Every call to PostgreSQL or Redis goes through :func:`call_with_retry`: each
attempt runs under ``asyncio.wait_for`` and failed attempts are retried with
exponential backoff. The last error is re-raised unchanged; callers decide
whether that is fatal (authoritative store) or a logged no-op (cache).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

__all__ = ["call_with_retry"]

T = TypeVar("T")

logger = logging.getLogger("panellink.retry")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    timeout: float,
    delay: float,
    retry_on: tuple[type[BaseException], ...],
    backoff: float = 2.0,
    label: str = "operation",
) -> T:
    assert attempts >= 1, f"attempts must be >= 1, got {attempts!r}"
    retryable = retry_on + (TimeoutError,)

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except retryable as exc:
            if attempt == attempts:
                raise
            wait = delay * backoff ** (attempt - 1)
            logger.debug(f"{label} attempt {attempt}/{attempts} failed: {exc!r}; retrying in {wait:.3f}s")
            await asyncio.sleep(wait)

    raise AssertionError("unreachable")
