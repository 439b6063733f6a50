"""Time helpers shared by the engine and the sweeper.

All timestamps are timezone-aware UTC. Functions that depend on "now" accept
it explicitly so callers can pass an injected clock.
"""

import math
from datetime import UTC, datetime, timedelta

__all__ = [
    "utc_now",
    "expires_at_from_ttl",
    "remaining_ttl_seconds",
    "is_past_deadline",
    "retention_cutoff",
    "as_utc",
]


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes coming back from drivers that drop tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def expires_at_from_ttl(ttl_seconds: int, now: datetime) -> datetime:
    return now + timedelta(seconds=ttl_seconds)


def remaining_ttl_seconds(expires_at: datetime, now: datetime) -> int:
    """Whole seconds left before ``expires_at``, rounded down, never negative.

    Rounding down keeps a cache entry from outliving its record.
    """
    remaining = (as_utc(expires_at) - now).total_seconds()
    return max(0, math.floor(remaining))


def is_past_deadline(expires_at: datetime, now: datetime) -> bool:
    return as_utc(expires_at) <= now


def retention_cutoff(retention_days: int, now: datetime) -> datetime:
    return now - timedelta(days=retention_days)
