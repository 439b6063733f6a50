"""Unit tests for time helpers."""

import datetime

from freezegun import freeze_time

from panellink.utils import (
    as_utc,
    expires_at_from_ttl,
    is_past_deadline,
    remaining_ttl_seconds,
    retention_cutoff,
    utc_now,
)

NOW = datetime.datetime(2026, 1, 1, 12, 0, 0, tzinfo=datetime.UTC)


@freeze_time("2026-01-01 12:00:00")
def test_utc_now_is_aware() -> None:
    now = utc_now()
    assert now.tzinfo is not None
    assert now == NOW


def test_as_utc_attaches_timezone_to_naive_values() -> None:
    naive = datetime.datetime(2026, 1, 1, 12, 0, 0)
    assert as_utc(naive) == NOW
    assert as_utc(NOW) is NOW


def test_expires_at_from_ttl() -> None:
    assert expires_at_from_ttl(60, NOW) == NOW + datetime.timedelta(seconds=60)


def test_remaining_ttl_rounds_down() -> None:
    expires_at = NOW + datetime.timedelta(seconds=60)
    assert remaining_ttl_seconds(expires_at, NOW) == 60
    assert remaining_ttl_seconds(expires_at, NOW + datetime.timedelta(seconds=10.5)) == 49
    assert remaining_ttl_seconds(expires_at, NOW + datetime.timedelta(seconds=59.9)) == 0


def test_remaining_ttl_never_negative() -> None:
    assert remaining_ttl_seconds(NOW, NOW + datetime.timedelta(hours=1)) == 0


def test_remaining_ttl_accepts_naive_expiry() -> None:
    naive = datetime.datetime(2026, 1, 1, 12, 1, 0)
    assert remaining_ttl_seconds(naive, NOW) == 60


def test_is_past_deadline_includes_the_deadline_itself() -> None:
    assert is_past_deadline(NOW, NOW) is True
    assert is_past_deadline(NOW + datetime.timedelta(microseconds=1), NOW) is False
    assert is_past_deadline(NOW - datetime.timedelta(seconds=1), NOW) is True


@freeze_time("2026-01-01 12:00:00")
def test_retention_cutoff() -> None:
    assert retention_cutoff(2, utc_now()) == datetime.datetime(2025, 12, 30, 12, 0, 0, tzinfo=datetime.UTC)
