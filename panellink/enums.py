"""Shared enums for the panel link service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "PanelStatus", "PanelStatusFilter"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class PanelStatus(StrEnum):
    """Lifecycle status of a panel row. Only ACTIVE -> EXPIRED is allowed."""

    ACTIVE = "active"
    EXPIRED = "expired"


class PanelStatusFilter(StrEnum):
    """Status filter accepted by owner listings."""

    ALL = "all"
    ACTIVE = "active"
    EXPIRED = "expired"
