"""In-memory stand-ins for the authoritative store, the cache and the clock."""

import datetime
from typing import Any

from panellink.cache import PanelCache, panel_cache_key
from panellink.enums import PanelStatus, PanelStatusFilter
from panellink.exceptions import PanelAlreadyExistsError
from panellink.schemas import PanelRecord
from panellink.store import METADATA_FIELDS, PanelStore
from panellink.utils import as_utc


class FakeClock:
    def __init__(self, start: datetime.datetime):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + datetime.timedelta(seconds=seconds)


class InMemoryPanelStore(PanelStore):
    def __init__(self):
        self.rows: dict[str, PanelRecord] = {}
        self.calls: list[str] = []
        self.delete_batches: list[int] = []
        self.fail_with: Exception | None = None
        self.fail_increment_with: Exception | None = None
        self.fail_delete_with: Exception | None = None
        self.insert_conflicts = 0

    def _record_call(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            raise self.fail_with

    async def ping(self) -> None:
        self._record_call("ping")

    async def exists(self, panel_id: str) -> bool:
        self._record_call("exists")
        return panel_id in self.rows

    async def insert(self, record: PanelRecord) -> None:
        self._record_call("insert")
        if self.insert_conflicts > 0:
            self.insert_conflicts -= 1
            raise PanelAlreadyExistsError(record.id)
        if record.id in self.rows:
            raise PanelAlreadyExistsError(record.id)
        self.rows[record.id] = record.model_copy()

    async def get(self, panel_id: str) -> PanelRecord | None:
        self._record_call("get")
        row = self.rows.get(panel_id)
        return row.model_copy() if row is not None else None

    async def delete(self, panel_id: str) -> bool:
        self._record_call("delete")
        if self.fail_delete_with is not None:
            raise self.fail_delete_with
        return self.rows.pop(panel_id, None) is not None

    async def update_metadata(self, panel_id: str, fields: dict[str, Any]) -> int:
        self._record_call("update_metadata")
        assert set(fields) <= METADATA_FIELDS
        row = self.rows.get(panel_id)
        if row is None:
            return 0
        self.rows[panel_id] = row.model_copy(update=fields)
        return 1

    async def increment_visit_count(self, panel_id: str) -> None:
        self._record_call("increment_visit_count")
        if self.fail_increment_with is not None:
            raise self.fail_increment_with
        row = self.rows.get(panel_id)
        if row is not None:
            self.rows[panel_id] = row.model_copy(update={"visit_count": row.visit_count + 1})

    async def mark_expired(self, panel_id: str) -> bool:
        self._record_call("mark_expired")
        row = self.rows.get(panel_id)
        if row is None or row.status is PanelStatus.EXPIRED:
            return False
        self.rows[panel_id] = row.model_copy(update={"status": PanelStatus.EXPIRED})
        return True

    async def mark_expired_before(self, now: datetime.datetime) -> int:
        self._record_call("mark_expired_before")
        marked = 0
        for panel_id, row in list(self.rows.items()):
            if row.status is PanelStatus.ACTIVE and as_utc(row.expires_at) < now:
                self.rows[panel_id] = row.model_copy(update={"status": PanelStatus.EXPIRED})
                marked += 1
        return marked

    async def delete_expired_batch(self, cutoff: datetime.datetime, batch_size: int) -> int:
        self._record_call("delete_expired_batch")
        batch = [
            panel_id
            for panel_id, row in self.rows.items()
            if row.status is PanelStatus.EXPIRED and as_utc(row.created_at) < cutoff
        ][:batch_size]
        for panel_id in batch:
            del self.rows[panel_id]
        self.delete_batches.append(len(batch))
        return len(batch)

    async def list_by_owner(
        self,
        owner_id: str,
        *,
        status_filter: PanelStatusFilter,
        is_public: bool | None,
        offset: int,
        limit: int,
        now: datetime.datetime,
    ) -> tuple[list[PanelRecord], int]:
        self._record_call("list_by_owner")

        def matches(row: PanelRecord) -> bool:
            if row.owner_id != owner_id:
                return False
            live = row.status is PanelStatus.ACTIVE and as_utc(row.expires_at) > now
            if status_filter is PanelStatusFilter.ACTIVE and not live:
                return False
            if status_filter is PanelStatusFilter.EXPIRED and live:
                return False
            return is_public is None or row.is_public == is_public

        rows = sorted((r for r in self.rows.values() if matches(r)), key=lambda r: r.created_at, reverse=True)
        return [r.model_copy() for r in rows[offset : offset + limit]], len(rows)


class InMemoryPanelCache(PanelCache):
    """Honours TTLs against the injected clock. ``broken`` mimics an absorbed outage."""

    def __init__(self, clock: FakeClock, prefix: str = "panel"):
        self._clock = clock
        self._prefix = prefix
        self.entries: dict[str, tuple[str, datetime.datetime]] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[str] = []
        self.broken = False

    def key(self, panel_id: str) -> str:
        return panel_cache_key(panel_id, self._prefix)

    def _live_entry(self, panel_id: str) -> tuple[str, datetime.datetime] | None:
        entry = self.entries.get(self.key(panel_id))
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self.entries[self.key(panel_id)]
            return None
        return entry

    async def ping(self) -> None:
        self.calls.append("ping")
        if self.broken:
            raise ConnectionError("cache down")

    async def get_locator(self, panel_id: str) -> str | None:
        self.calls.append("get")
        if self.broken:
            return None
        entry = self._live_entry(panel_id)
        return entry[0] if entry is not None else None

    async def set_locator(self, panel_id: str, locator: str, ttl_seconds: int) -> bool:
        self.calls.append("set")
        if self.broken or ttl_seconds <= 0:
            return False
        self.entries[self.key(panel_id)] = (locator, self._clock() + datetime.timedelta(seconds=ttl_seconds))
        self.ttls[panel_id] = ttl_seconds
        return True

    async def invalidate(self, panel_id: str) -> bool:
        self.calls.append("delete")
        if self.broken:
            return False
        return self.entries.pop(self.key(panel_id), None) is not None

    async def exists(self, panel_id: str) -> bool:
        self.calls.append("exists")
        if self.broken:
            return False
        return self._live_entry(panel_id) is not None

    async def count_keys(self) -> int:
        self.calls.append("count_keys")
        if self.broken:
            return -1
        return len(self.entries)
