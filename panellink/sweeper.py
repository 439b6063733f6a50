"""Expiry sweeper and its periodic scheduler.

Phase A flips every active panel past its deadline to expired in one bulk
statement; it is the safety net for panels nobody reads after they expire.
Phase B physically deletes expired panels whose ``created_at`` is older than
the retention window, in bounded batches with a short pause in between.

Flow Diagram — run_expiry_sweep()
=================================
::
    ┌─────────────┐
    │ Phase A     │  UPDATE panels SET status='expired'
    │ mark        │  WHERE status='active' AND expires_at < now
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ log cached  │  advisory only, keys self-expire
    │ key count   │
    └──────┬──────┘
           ▼
    ┌─────────────┐◄────────────────┐
    │ Phase B     │                 │ batch == batch_size
    │ delete one  │  (pause) ───────┘
    │ batch       │
    └──────┬──────┘
           ▼ batch < batch_size
    ┌─────────────┐
    │ SweepResult │
    └─────────────┘

Classes:
    ExpirySweeper:  Runs the two phases against a PanelStore.
    CleanupConfig:  Scheduler settings with validation.
    CleanupScheduler:  Runs the sweeper on an interval as an asyncio task.
"""

import asyncio
import dataclasses
import datetime
import logging
import time
from collections.abc import Awaitable, Callable

from prometheus_client import Counter

from panellink.cache import PanelCache
from panellink.config import Settings
from panellink.exceptions import PanelValidationError, SweepInProgressError
from panellink.schemas import SchedulerStatus, SweepResult
from panellink.store import PanelStore
from panellink.utils import retention_cutoff, utc_now

__all__ = ["ExpirySweeper", "CleanupConfig", "CleanupScheduler"]

PANEL_SWEEP_MARKED_TOTAL = Counter(
    "panel_sweep_marked_total",
    "Panels flipped to expired by the sweeper",
)
PANEL_SWEEP_DELETED_TOTAL = Counter(
    "panel_sweep_deleted_total",
    "Expired panels physically deleted by the sweeper",
)
PANEL_SWEEP_FAILURES_TOTAL = Counter(
    "panel_sweep_failures_total",
    "Sweeps that raised",
)


class ExpirySweeper:
    def __init__(
        self,
        store: PanelStore,
        cache: PanelCache,
        settings: Settings,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings
        self._logger = logger or logging.getLogger("panellink.sweeper")
        self._clock = clock
        self._sleep = sleep

    async def mark_expired_panels(self) -> int:
        marked = await self._store.mark_expired_before(self._clock())
        PANEL_SWEEP_MARKED_TOTAL.inc(marked)
        self._logger.info(f"Marked {marked} panels as expired")

        if marked > 0:
            cached = await self._cache.count_keys()
            if cached >= 0:
                self._logger.info(f"{cached} panel keys remain cached; they expire through their own TTL")
        return marked

    async def delete_expired_panels(self, retention_days: int, batch_size: int) -> int:
        assert retention_days >= 0, f"retention_days must be >= 0, got {retention_days!r}"
        assert batch_size > 0, f"batch_size must be positive, got {batch_size!r}"

        cutoff = retention_cutoff(retention_days, self._clock())
        total_deleted = 0
        batches = 0
        while True:
            deleted = await self._store.delete_expired_batch(cutoff, batch_size)
            batches += 1
            total_deleted += deleted
            if deleted < batch_size:
                break
            await self._sleep(self._settings.CLEANUP_BATCH_PAUSE_SECONDS)

        PANEL_SWEEP_DELETED_TOTAL.inc(total_deleted)
        self._logger.info(f"Deleted {total_deleted} expired panels in {batches} batches")
        return total_deleted

    async def run_expiry_sweep(self, retention_days: int | None = None, batch_size: int | None = None) -> SweepResult:
        retention_days = self._settings.CLEANUP_RETENTION_DAYS if retention_days is None else retention_days
        batch_size = self._settings.CLEANUP_BATCH_SIZE if batch_size is None else batch_size

        started = time.monotonic()
        self._logger.info(f"Starting expiry sweep: retention={retention_days}d batch_size={batch_size}")
        try:
            marked = await self.mark_expired_panels()
            deleted = await self.delete_expired_panels(retention_days, batch_size)
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            PANEL_SWEEP_FAILURES_TOTAL.inc()
            self._logger.error(f"Expiry sweep failed after {duration_ms}ms: {exc!r}")
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        self._logger.info(f"Expiry sweep done: marked={marked} deleted={deleted} in {duration_ms}ms")
        return SweepResult(marked_count=marked, deleted_count=deleted, duration_ms=duration_ms)


@dataclasses.dataclass
class CleanupConfig:
    enabled: bool = True
    interval_hours: int = 24
    retention_days: int = 2
    batch_size: int = 1000
    max_consecutive_failures: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "CleanupConfig":
        return cls(
            enabled=settings.CLEANUP_ENABLED,
            interval_hours=settings.CLEANUP_INTERVAL_HOURS,
            retention_days=settings.CLEANUP_RETENTION_DAYS,
            batch_size=settings.CLEANUP_BATCH_SIZE,
            max_consecutive_failures=settings.CLEANUP_MAX_CONSECUTIVE_FAILURES,
        )

    def validate(self) -> None:
        if self.interval_hours < 1:
            raise PanelValidationError("Cleanup interval must be at least 1 hour")
        if self.retention_days < 1:
            raise PanelValidationError("Retention must be at least 1 day")
        if not 100 <= self.batch_size <= 10000:
            raise PanelValidationError("Batch size must be between 100 and 10000")
        if self.max_consecutive_failures < 1:
            raise PanelValidationError("max_consecutive_failures must be at least 1")


class CleanupScheduler:
    """Runs ExpirySweeper.run_expiry_sweep once on start and then every interval."""

    def __init__(self, sweeper: ExpirySweeper, config: CleanupConfig, logger: logging.Logger | None = None):
        config.validate()
        self._sweeper = sweeper
        self._config = config
        self._logger = logger or logging.getLogger("panellink.sweeper")
        self._task: asyncio.Task | None = None
        self._running = False
        self._last_run_at: datetime.datetime | None = None
        self._consecutive_failures = 0

    @property
    def config(self) -> CleanupConfig:
        return dataclasses.replace(self._config)

    def start(self) -> None:
        if not self._config.enabled:
            self._logger.info("Expiry sweeper disabled")
            return
        if self._task is not None and not self._task.done():
            self._logger.info("Expiry sweeper already running")
            return

        self._logger.info(
            f"Starting expiry sweeper: every {self._config.interval_hours}h, "
            f"retention {self._config.retention_days}d, batch {self._config.batch_size}"
        )
        self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._logger.info("Expiry sweeper stopped")

    async def manual_cleanup(self) -> SweepResult:
        self._logger.info("Manual expiry sweep requested")
        return await self._execute()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            enabled=self._config.enabled and self._task is not None and not self._task.done(),
            running=self._running,
            last_run_at=self._last_run_at,
            consecutive_failures=self._consecutive_failures,
            interval_hours=self._config.interval_hours,
            retention_days=self._config.retention_days,
            batch_size=self._config.batch_size,
        )

    async def update_config(self, **changes) -> None:
        previous = self._config
        candidate = dataclasses.replace(previous, **changes)
        candidate.validate()
        self._config = candidate
        self._logger.info(f"Expiry sweeper config updated: {changes}")

        if candidate.interval_hours != previous.interval_hours and self._task is not None:
            await self.stop()
            self.start()

    async def _loop(self) -> None:
        interval_seconds = self._config.interval_hours * 3600
        while True:
            try:
                await self._execute()
            except SweepInProgressError:
                self._logger.info("Previous sweep still running, skipping this tick")
            except Exception as exc:
                self._logger.error(f"Scheduled sweep failed: {exc!r}")
                if self._consecutive_failures >= self._config.max_consecutive_failures:
                    self._logger.error(
                        f"{self._consecutive_failures} consecutive sweep failures, pausing automatic cleanup"
                    )
                    self._task = None
                    return
            await asyncio.sleep(interval_seconds)

    async def _execute(self) -> SweepResult:
        if self._running:
            raise SweepInProgressError("An expiry sweep is already running")

        self._running = True
        try:
            result = await self._sweeper.run_expiry_sweep(self._config.retention_days, self._config.batch_size)
        except Exception:
            self._consecutive_failures += 1
            raise
        finally:
            self._running = False

        self._last_run_at = utc_now()
        self._consecutive_failures = 0
        return result
