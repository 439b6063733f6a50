"""Panel Link Service - lifecycle and cache-consistency engine.

This module owns the lifetime of a panel link: id generation, creation,
cache-aside resolution, lazy expiry detection, metadata updates and owner
listings. It talks to the authoritative store and the cache only through the
PanelStore and PanelCache interfaces handed to it at construction.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    PanelLinkService                         │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │   Lifecycle     │  │  Id Generator   │  │  Detached    │ │
    │  │ • create        │  │ • nanoid        │  │  tasks       │ │
    │  │ • get / info    │  │ • check + retry │  │ • visits     │ │
    │  │ • update        │  │                 │  │ • warm-up    │ │
    │  │ • mark expired  │  │                 │  │ • expiry     │ │
    │  └─────────────────┘  └─────────────────┘  └──────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                                         │
                ▼                                         ▼
    ┌─────────────────┐                       ┌─────────────────┐
    │   PanelStore    │                       │   PanelCache    │
    │ (authoritative) │                       │  (ephemeral)    │
    └─────────────────┘                       └─────────────────┘

Panel Resolution Flow
---------------------
::
    ┌─────────────┐
    │ get_panel() │
    └──────┬──────┘
           ▼
    ┌─────────────┐   bad shape
    │ Validate id │──────────────► None (no I/O)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache GET   │
    └──────┬──────┘
    HIT?  │
    ┌─────┴──────────────┐
    │ YES                │ NO
    ▼                    ▼
┌──────────────┐  ┌──────────────┐
│ Store GET    │  │ Store GET    │
│ (liveness)   │  │              │
└──────┬───────┘  └──────┬───────┘
       │ live?           │ live?
       ▼                 ▼
  ┌─────────┐  ┌──────────────────────┐
  │ detached│  │ detached warm-up     │
  │ visit++ │  │ (remaining ttl) and  │
  └─────────┘  │ visit++              │
               └──────────────────────┘
  not live → detached mark_expired (+ cache invalidation) → None

Key Behaviours
===============
- The cache never decides liveness; a hit is always confirmed in the store.
- Cache failures are absorbed by the cache adapter; the engine only sees misses.
- Store failures propagate as StoreUnavailableError.
- A cache TTL never exceeds the remaining lifetime of the record.
- Expired and missing panels look the same to callers.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable

from prometheus_client import Counter

from panellink.background import DetachedTaskRunner
from panellink.cache import PanelCache
from panellink.config import Settings
from panellink.enums import PanelStatus, PanelStatusFilter
from panellink.exceptions import (
    IdGenerationError,
    PanelAlreadyExistsError,
    PanelNotFoundError,
    PanelValidationError,
)
from panellink.ids import generate_panel_id, is_valid_panel_id
from panellink.schemas import PanelCreated, PanelInfo, PanelRecord, UserPanelsPage
from panellink.store import PanelStore
from panellink.utils import expires_at_from_ttl, is_past_deadline, remaining_ttl_seconds, utc_now

__all__ = ["PanelLinkService", "build_panel_url"]

PANEL_CREATED_TOTAL = Counter(
    "panel_created_total",
    "Panels created",
)
PANEL_CACHE_HITS_TOTAL = Counter(
    "panel_cache_hits_total",
    "Panel resolutions served from a cache hit",
)
PANEL_CACHE_MISSES_TOTAL = Counter(
    "panel_cache_misses_total",
    "Panel resolutions that fell through to the store",
)
PANEL_LAZY_EXPIRATIONS_TOTAL = Counter(
    "panel_lazy_expirations_total",
    "Expired panels detected on read",
)

MAX_PAGE_SIZE = 100


def build_panel_url(base_url: str, panel_id: str) -> str:
    return f"{base_url.rstrip('/')}/panel/{panel_id}"


class PanelLinkService:
    """Lifecycle engine for panel links.

    Example:
        >>> service = PanelLinkService(store, cache, settings, DetachedTaskRunner())
        >>> created = await service.create_panel("bucket/report.html", ttl_seconds=60)
        >>> await service.get_panel(created.id)
        'bucket/report.html'
    """

    def __init__(
        self,
        store: PanelStore,
        cache: PanelCache,
        settings: Settings,
        tasks: DetachedTaskRunner,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        assert store is not None, "store must not be None"
        assert cache is not None, "cache must not be None"
        self._store = store
        self._cache = cache
        self._settings = settings
        self._tasks = tasks
        self._logger = logger or logging.getLogger("panellink")
        self._clock = clock

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_panel(
        self,
        locator: str,
        *,
        owner_id: str | None = None,
        title: str | None = None,
        description: str | None = None,
        is_public: bool = False,
        ttl_seconds: int | None = None,
    ) -> PanelCreated:
        """Register ``locator`` and return the new panel with its public URL.

        Raises:
            PanelValidationError: empty locator or TTL outside (0, PANEL_MAX_TTL_SECONDS].
            IdGenerationError: every candidate id collided.
            StoreUnavailableError: the store could not persist the row.
        """
        if not isinstance(locator, str) or not locator.strip():
            raise PanelValidationError("Locator must not be empty")

        ttl = self._settings.PANEL_DEFAULT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise PanelValidationError("TTL must be a positive number of seconds")
        if ttl > self._settings.PANEL_MAX_TTL_SECONDS:
            raise PanelValidationError(f"TTL must not exceed {self._settings.PANEL_MAX_TTL_SECONDS} seconds")

        record = await self._insert_with_unique_id(
            locator=locator,
            owner_id=owner_id,
            title=title,
            description=description,
            is_public=is_public,
            ttl=ttl,
        )

        try:
            created = PanelCreated(
                **record.model_dump(),
                url=build_panel_url(self._settings.BASE_URL, record.id),
                ttl=ttl,
            )
        except Exception:
            await self._rollback_insert(record.id)
            raise

        # Best effort: a cold cache is repopulated by the first read.
        remaining = remaining_ttl_seconds(record.expires_at, self._clock())
        await self._cache.set_locator(record.id, record.locator, remaining)

        PANEL_CREATED_TOTAL.inc()
        self._logger.info(f"Panel created: {record.id} (ttl={ttl}s, owner={owner_id})")
        return created

    async def get_panel(self, panel_id: str) -> str | None:
        """Resolve ``panel_id`` to its locator, or None when not found or expired."""
        if not is_valid_panel_id(panel_id, self._settings.PANEL_ID_LENGTH):
            return None

        cached_locator = await self._cache.get_locator(panel_id)
        if cached_locator is not None:
            PANEL_CACHE_HITS_TOTAL.inc()
            record = await self._store.get(panel_id)
            now = self._clock()
            if record is None or not self._is_live(record, now):
                self._schedule_expiry(panel_id)
                return None
            self._schedule_visit(panel_id)
            return cached_locator

        PANEL_CACHE_MISSES_TOTAL.inc()
        record = await self._store.get(panel_id)
        if record is None:
            return None

        now = self._clock()
        if not self._is_live(record, now):
            self._schedule_expiry(panel_id)
            return None

        remaining = remaining_ttl_seconds(record.expires_at, now)
        if remaining > 0:
            self._tasks.spawn(
                self._cache.set_locator(panel_id, record.locator, remaining),
                name=f"warm-cache:{panel_id}",
            )
        self._schedule_visit(panel_id)
        return record.locator

    async def get_panel_info(self, panel_id: str) -> PanelInfo | None:
        """Return the full record with an ``is_cached`` flag, or None when absent.

        Rows past their deadline are reported as expired even before the
        sweeper or a read has flipped them.
        """
        if not is_valid_panel_id(panel_id, self._settings.PANEL_ID_LENGTH):
            return None

        record = await self._store.get(panel_id)
        if record is None:
            return None

        status = record.status
        if status is PanelStatus.ACTIVE and is_past_deadline(record.expires_at, self._clock()):
            status = PanelStatus.EXPIRED
            self._schedule_expiry(panel_id)

        is_cached = await self._cache.exists(panel_id)
        return PanelInfo(**record.model_dump(exclude={"status"}), status=status, is_cached=is_cached)

    async def update_panel(
        self,
        panel_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        is_public: bool | None = None,
    ) -> None:
        """Update display metadata. Lifetime, status and cache are untouched."""
        fields = {
            name: value
            for name, value in (("title", title), ("description", description), ("is_public", is_public))
            if value is not None
        }
        if not fields:
            raise PanelValidationError("No fields to update")
        if not is_valid_panel_id(panel_id, self._settings.PANEL_ID_LENGTH):
            raise PanelNotFoundError(panel_id)

        matched = await self._store.update_metadata(panel_id, fields)
        if matched == 0:
            raise PanelNotFoundError(panel_id)
        self._logger.info(f"Panel updated: {panel_id} fields={sorted(fields)}")

    async def mark_expired(self, panel_id: str) -> None:
        """Flip ``panel_id`` to expired and drop its cache entry. Safe to repeat."""
        changed = await self._store.mark_expired(panel_id)
        await self._cache.invalidate(panel_id)
        if changed:
            PANEL_LAZY_EXPIRATIONS_TOTAL.inc()
            self._logger.info(f"Panel marked expired: {panel_id}")

    async def list_user_panels(
        self,
        owner_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: PanelStatusFilter | str = PanelStatusFilter.ALL,
        is_public: bool | None = None,
    ) -> UserPanelsPage:
        if not owner_id:
            raise PanelValidationError("Owner id must not be empty")
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise PanelValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")
        try:
            status_filter = PanelStatusFilter(status)
        except ValueError as exc:
            raise PanelValidationError(f"Unknown status filter: {status!r}") from exc

        now = self._clock()
        records, total = await self._store.list_by_owner(
            owner_id,
            status_filter=status_filter,
            is_public=is_public,
            offset=(page - 1) * limit,
            limit=limit,
            now=now,
        )
        cached_flags = await asyncio.gather(*(self._cache.exists(record.id) for record in records))

        panels = []
        for record, is_cached in zip(records, cached_flags):
            status_value = record.status
            if status_value is PanelStatus.ACTIVE and is_past_deadline(record.expires_at, now):
                status_value = PanelStatus.EXPIRED
            panels.append(PanelInfo(**record.model_dump(exclude={"status"}), status=status_value, is_cached=is_cached))

        return UserPanelsPage(panels=panels, total=total, page=page, limit=limit, has_more=total > page * limit)

    async def check_health(self) -> tuple[bool, bool]:
        """Ping both stores; returns (store_ok, cache_ok)."""
        store_ok = cache_ok = True
        try:
            await self._store.ping()
        except Exception as exc:
            self._logger.error(f"Store health check failed: {exc!r}")
            store_ok = False
        try:
            await self._cache.ping()
        except Exception as exc:
            self._logger.error(f"Cache health check failed: {exc!r}")
            cache_ok = False
        return store_ok, cache_ok

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _insert_with_unique_id(
        self,
        *,
        locator: str,
        owner_id: str | None,
        title: str | None,
        description: str | None,
        is_public: bool,
        ttl: int,
    ) -> PanelRecord:
        max_attempts = self._settings.PANEL_ID_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            panel_id = generate_panel_id(self._settings.PANEL_ID_LENGTH)
            if await self._store.exists(panel_id):
                self._logger.warning(f"Panel id collision on attempt {attempt}/{max_attempts}: {panel_id}")
                continue

            now = self._clock()
            record = PanelRecord(
                id=panel_id,
                owner_id=owner_id,
                locator=locator,
                title=title,
                description=description,
                is_public=is_public,
                status=PanelStatus.ACTIVE,
                visit_count=0,
                created_at=now,
                expires_at=expires_at_from_ttl(ttl, now),
                updated_at=now,
            )
            try:
                await self._store.insert(record)
            except PanelAlreadyExistsError:
                # Taken between the existence check and the insert.
                self._logger.warning(f"Panel id taken during insert on attempt {attempt}/{max_attempts}: {panel_id}")
                continue
            return record

        raise IdGenerationError(f"Could not generate a unique panel id after {max_attempts} attempts")

    async def _rollback_insert(self, panel_id: str) -> None:
        try:
            await self._store.delete(panel_id)
            self._logger.warning(f"Rolled back partially created panel {panel_id}")
        except Exception as exc:
            self._logger.error(f"Rollback of panel {panel_id} failed: {exc!r}")

    def _is_live(self, record: PanelRecord, now: datetime.datetime) -> bool:
        return record.status is PanelStatus.ACTIVE and not is_past_deadline(record.expires_at, now)

    def _schedule_expiry(self, panel_id: str) -> None:
        self._tasks.spawn(self.mark_expired(panel_id), name=f"mark-expired:{panel_id}")

    def _schedule_visit(self, panel_id: str) -> None:
        self._tasks.spawn(self._store.increment_visit_count(panel_id), name=f"visit:{panel_id}")
