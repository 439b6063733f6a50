"""Detached task runner for fire-and-forget side effects.

Visit-count increments, cache warm-ups and lazy expiry marking must never
delay or fail the response that triggered them. They are scheduled here as
``asyncio`` tasks that nobody awaits on the request path. Failures are
logged and counted through the done-callback.

The number of in-flight tasks is bounded: when the bound is reached new
work is dropped with a warning, which is acceptable for every side effect
routed through here (visit counts are lossy, warm-ups and expiry marking
are retried naturally by later reads and by the sweeper).
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from prometheus_client import Counter

__all__ = ["DetachedTaskRunner"]

PANEL_BACKGROUND_FAILURES_TOTAL = Counter(
    "panel_background_failures_total",
    "Detached side effects that raised",
)
PANEL_BACKGROUND_DROPPED_TOTAL = Counter(
    "panel_background_dropped_total",
    "Detached side effects dropped because too many were in flight",
)


class DetachedTaskRunner:
    def __init__(self, max_pending: int = 1000, logger: logging.Logger | None = None):
        assert max_pending > 0, f"max_pending must be positive, got {max_pending!r}"
        self._max_pending = max_pending
        self._pending: set[asyncio.Task] = set()
        self._logger = logger or logging.getLogger("panellink.background")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task | None:
        """Schedule ``coro`` without awaiting it. Returns None when the work was dropped."""
        if len(self._pending) >= self._max_pending:
            coro.close()
            PANEL_BACKGROUND_DROPPED_TOTAL.inc()
            self._logger.warning(f"Dropping background task {name}: {len(self._pending)} already pending")
            return None

        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            PANEL_BACKGROUND_FAILURES_TOTAL.inc()
            self._logger.error(f"Background task {task.get_name()} failed: {exc!r}")

    async def drain(self) -> None:
        """Wait until every task scheduled so far, and any they schedule, has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self, timeout: float = 5.0) -> None:
        if not self._pending:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except TimeoutError:
            self._logger.warning(f"Cancelling {len(self._pending)} background tasks still running at shutdown")
            for task in list(self._pending):
                task.cancel()
            await asyncio.gather(*list(self._pending), return_exceptions=True)
