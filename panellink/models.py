"""SQLAlchemy ORM models for the panel link service.

This module defines the authoritative schema for panel links.

Data Model Layout
=================
::
    panels table
    ├─ id (VARCHAR(32) PRIMARY KEY)
    ├─ owner_id (VARCHAR(64) NULL, INDEXED)
    ├─ locator (TEXT NOT NULL)
    ├─ title (VARCHAR(255) NULL)
    ├─ description (TEXT NULL)
    ├─ is_public (BOOLEAN DEFAULT FALSE)
    ├─ status (VARCHAR(16) DEFAULT 'active')
    ├─ visit_count (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    ├─ expires_at (TIMESTAMPTZ NOT NULL)
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    ix_panels_status_expires_at (status, expires_at)   -- sweeper phase A
    ix_panels_status_created_at (status, created_at)   -- sweeper phase B

Key Behaviours
===============
- created_at is written once by the engine and never updated.
- expires_at is fixed at creation; reads never extend it.
- status only moves from 'active' to 'expired'.
- visit_count only grows.

Classes:
    Panel:  One shared panel link.
"""

import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from panellink.database import Base
from panellink.enums import PanelStatus

__all__ = ["Panel"]


class Panel(Base):
    __tablename__ = "panels"
    __table_args__ = (
        Index("ix_panels_status_expires_at", "status", "expires_at"),
        Index("ix_panels_status_created_at", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    locator: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=PanelStatus.ACTIVE.value, nullable=False)
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Panel(id='{self.id}', status='{self.status}', visits={self.visit_count})>"
