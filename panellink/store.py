"""Authoritative store adapter for panel links.

This module defines the store interface the engine and the sweeper depend on,
and its PostgreSQL implementation on async SQLAlchemy.

Flow Diagram — SQLPanelStore operation
======================================
::
    ┌─────────────┐
    │ engine call │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ call_with_  │
    │ retry       │◄──────────┐
    │ (timeout)   │           │ transient error,
    └──────┬──────┘           │ attempts left
           ▼                  │
    ┌─────────────┐           │
    │ new session │───────────┘
    │ execute +   │
    │ commit      │
    └──────┬──────┘
    OK?   │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌──────────┐  ┌─────────┐
│ Store    │  │ Return  │
│Unavailable│ │ result  │
│ Error    │  └─────────┘
└──────────┘

Key Behaviours
===============
- Each operation opens its own session; no session is shared across requests.
- Transport failures are retried; anything still failing is wrapped in
  StoreUnavailableError carrying the operation name and panel id.
- A duplicate primary key on insert raises PanelAlreadyExistsError, never retried.
- Inserts and visit-count increments are attempted once; they are not idempotent.
- Every write is a single statement on a single row, except the two sweeper
  bulk statements.

Classes:
    PanelStore:  Abstract interface of the authoritative store.
    SQLPanelStore:  PostgreSQL implementation.
"""

import datetime
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from panellink.config import Settings
from panellink.enums import PanelStatus, PanelStatusFilter
from panellink.exceptions import PanelAlreadyExistsError, StoreUnavailableError
from panellink.models import Panel
from panellink.retry import call_with_retry
from panellink.schemas import PanelRecord

__all__ = ["PanelStore", "SQLPanelStore", "METADATA_FIELDS"]

T = TypeVar("T")

METADATA_FIELDS = frozenset({"title", "description", "is_public"})

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    ConnectionError,
    OSError,
)


class PanelStore(ABC):
    """Source of truth for panel existence and expiry."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    @abstractmethod
    async def exists(self, panel_id: str) -> bool: ...

    @abstractmethod
    async def insert(self, record: PanelRecord) -> None:
        """Persist a new row. Raises PanelAlreadyExistsError on a taken id."""

    @abstractmethod
    async def get(self, panel_id: str) -> PanelRecord | None: ...

    @abstractmethod
    async def delete(self, panel_id: str) -> bool: ...

    @abstractmethod
    async def update_metadata(self, panel_id: str, fields: dict[str, Any]) -> int:
        """Update display metadata and return the number of matched rows."""

    @abstractmethod
    async def increment_visit_count(self, panel_id: str) -> None: ...

    @abstractmethod
    async def mark_expired(self, panel_id: str) -> bool:
        """Flip one active row to expired. Returns False when nothing changed."""

    @abstractmethod
    async def mark_expired_before(self, now: datetime.datetime) -> int:
        """Flip every active row with ``expires_at < now``; return the count."""

    @abstractmethod
    async def delete_expired_batch(self, cutoff: datetime.datetime, batch_size: int) -> int:
        """Delete up to ``batch_size`` expired rows created before ``cutoff``."""

    @abstractmethod
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
        """Return one page of an owner's panels, newest first, and the total count."""


class SQLPanelStore(PanelStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        assert session_factory is not None, "session_factory must not be None"
        self._session_factory = session_factory
        self._settings = settings

    async def _run(
        self,
        operation: str,
        panel_id: str | None,
        fn: Callable[[], Awaitable[T]],
        *,
        retry: bool = True,
    ) -> T:
        try:
            return await call_with_retry(
                fn,
                attempts=self._settings.STORE_RETRY_ATTEMPTS if retry else 1,
                timeout=self._settings.STORE_OPERATION_TIMEOUT_SECONDS,
                delay=self._settings.STORE_RETRY_DELAY_SECONDS,
                retry_on=_TRANSIENT_ERRORS,
                label=f"store.{operation}",
            )
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            raise StoreUnavailableError(operation, panel_id, repr(exc)) from exc

    async def _execute_write(self, stmt) -> int:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def ping(self) -> None:
        async def _ping() -> None:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

        await self._run("ping", None, _ping)

    async def exists(self, panel_id: str) -> bool:
        async def _exists() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(select(Panel.id).where(Panel.id == panel_id).limit(1))
                return result.scalar_one_or_none() is not None

        return await self._run("exists", panel_id, _exists)

    async def insert(self, record: PanelRecord) -> None:
        async def _insert() -> None:
            async with self._session_factory() as session:
                session.add(
                    Panel(
                        id=record.id,
                        owner_id=record.owner_id,
                        locator=record.locator,
                        title=record.title,
                        description=record.description,
                        is_public=record.is_public,
                        status=record.status.value,
                        visit_count=record.visit_count,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    raise PanelAlreadyExistsError(f"Panel id '{record.id}' is already taken") from exc

        await self._run("insert", record.id, _insert, retry=False)

    async def get(self, panel_id: str) -> PanelRecord | None:
        async def _get() -> PanelRecord | None:
            async with self._session_factory() as session:
                result = await session.execute(select(Panel).where(Panel.id == panel_id))
                panel = result.scalar_one_or_none()
                return PanelRecord.model_validate(panel) if panel is not None else None

        return await self._run("get", panel_id, _get)

    async def delete(self, panel_id: str) -> bool:
        stmt = delete(Panel).where(Panel.id == panel_id).execution_options(synchronize_session=False)
        deleted = await self._run("delete", panel_id, lambda: self._execute_write(stmt))
        return deleted > 0

    async def update_metadata(self, panel_id: str, fields: dict[str, Any]) -> int:
        unknown = set(fields) - METADATA_FIELDS
        assert not unknown, f"only display metadata may be updated, got {sorted(unknown)!r}"
        stmt = (
            update(Panel)
            .where(Panel.id == panel_id)
            .values(**fields, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return await self._run("update_metadata", panel_id, lambda: self._execute_write(stmt))

    async def increment_visit_count(self, panel_id: str) -> None:
        stmt = (
            update(Panel)
            .where(Panel.id == panel_id)
            .values(visit_count=Panel.visit_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self._run("increment_visit_count", panel_id, lambda: self._execute_write(stmt), retry=False)

    async def mark_expired(self, panel_id: str) -> bool:
        stmt = (
            update(Panel)
            .where(Panel.id == panel_id, Panel.status == PanelStatus.ACTIVE.value)
            .values(status=PanelStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        changed = await self._run("mark_expired", panel_id, lambda: self._execute_write(stmt))
        return changed > 0

    async def mark_expired_before(self, now: datetime.datetime) -> int:
        stmt = (
            update(Panel)
            .where(Panel.status == PanelStatus.ACTIVE.value, Panel.expires_at < now)
            .values(status=PanelStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return await self._run("mark_expired_before", None, lambda: self._execute_write(stmt))

    async def delete_expired_batch(self, cutoff: datetime.datetime, batch_size: int) -> int:
        assert batch_size > 0, f"batch_size must be positive, got {batch_size!r}"
        batch_ids = (
            select(Panel.id)
            .where(Panel.status == PanelStatus.EXPIRED.value, Panel.created_at < cutoff)
            .limit(batch_size)
        )
        stmt = delete(Panel).where(Panel.id.in_(batch_ids)).execution_options(synchronize_session=False)
        return await self._run("delete_expired_batch", None, lambda: self._execute_write(stmt))

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
        conditions = [Panel.owner_id == owner_id]
        if status_filter is PanelStatusFilter.ACTIVE:
            conditions.append(Panel.status == PanelStatus.ACTIVE.value)
            conditions.append(Panel.expires_at > now)
        elif status_filter is PanelStatusFilter.EXPIRED:
            conditions.append(or_(Panel.status == PanelStatus.EXPIRED.value, Panel.expires_at <= now))
        if is_public is not None:
            conditions.append(Panel.is_public == is_public)

        async def _list() -> tuple[list[PanelRecord], int]:
            async with self._session_factory() as session:
                total = await session.scalar(select(func.count()).select_from(Panel).where(*conditions))
                result = await session.execute(
                    select(Panel).where(*conditions).order_by(Panel.created_at.desc()).offset(offset).limit(limit)
                )
                records = [PanelRecord.model_validate(panel) for panel in result.scalars().all()]
                return records, int(total or 0)

        return await self._run("list_by_owner", None, _list)
