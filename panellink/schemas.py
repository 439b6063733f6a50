"""Pydantic schemas shared by the engine, the store adapters and the HTTP layer.

Schema Hierarchy
=================
::
    PanelRecord (store <-> engine)
    ├─ id, owner_id, locator, title, description, is_public
    ├─ status: PanelStatus
    ├─ visit_count: int
    └─ created_at, expires_at, updated_at

    PanelCreated(PanelRecord)     + url, ttl
    PanelInfo(PanelRecord)        + is_cached

    PanelCreate (Input)           locator, owner_id?, title?, description?, is_public, ttl_seconds?
    PanelUpdate (Input)           user_id?, title?, description?, is_public?

    UserPanelsPage (Output)       panels, total, page, limit, has_more
    SweepResult (Output)          marked_count, deleted_count, duration_ms
    SchedulerStatus (Output)
    HealthResponse (Output)

Key Behaviours
===============
- PanelRecord is built from ORM rows with ``model_validate`` (from_attributes).
- The locator is opaque: only emptiness is rejected.
- TTL upper bounds depend on settings and are enforced by the engine, not here.
"""

import datetime

from pydantic import BaseModel, Field, field_validator

from panellink.enums import HealthStatus, PanelStatus

__all__ = [
    "PanelRecord",
    "PanelCreated",
    "PanelInfo",
    "PanelCreate",
    "PanelUpdate",
    "UserPanelsPage",
    "SweepResult",
    "SchedulerStatus",
    "HealthResponse",
]


class PanelRecord(BaseModel):
    id: str
    owner_id: str | None = None
    locator: str
    title: str | None = None
    description: str | None = None
    is_public: bool = False
    status: PanelStatus = PanelStatus.ACTIVE
    visit_count: int = 0
    created_at: datetime.datetime
    expires_at: datetime.datetime
    updated_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class PanelCreated(PanelRecord):
    url: str
    ttl: int


class PanelInfo(PanelRecord):
    is_cached: bool = False


class PanelCreate(BaseModel):
    locator: str
    owner_id: str | None = None
    title: str | None = Field(None, max_length=255)
    description: str | None = None
    is_public: bool = False
    ttl_seconds: int | None = Field(None, gt=0, description="Lifetime in seconds; defaults to the configured TTL.")

    @field_validator("locator")
    @classmethod
    def validate_locator(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Locator must not be empty")
        return v


class PanelUpdate(BaseModel):
    """Metadata update; ``user_id`` is the caller, checked against the owner by the route."""

    user_id: str | None = None
    title: str | None = Field(None, max_length=255)
    description: str | None = None
    is_public: bool | None = None


class UserPanelsPage(BaseModel):
    panels: list[PanelInfo]
    total: int
    page: int
    limit: int
    has_more: bool


class SweepResult(BaseModel):
    marked_count: int
    deleted_count: int
    duration_ms: int


class SchedulerStatus(BaseModel):
    enabled: bool
    running: bool
    last_run_at: datetime.datetime | None
    consecutive_failures: int
    interval_hours: int
    retention_days: int
    batch_size: int


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
