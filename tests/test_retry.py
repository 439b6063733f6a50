import asyncio

import pytest

from panellink.retry import call_with_retry


class Flaky:
    def __init__(self, failures, exc=ConnectionError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("flaky")
        return "ok"


@pytest.mark.asyncio
async def test_returns_after_transient_failures() -> None:
    op = Flaky(2)
    result = await call_with_retry(op, attempts=3, timeout=1, delay=0, retry_on=(ConnectionError,))
    assert result == "ok"
    assert op.calls == 3


@pytest.mark.asyncio
async def test_reraises_last_error_when_attempts_run_out() -> None:
    op = Flaky(5)
    with pytest.raises(ConnectionError):
        await call_with_retry(op, attempts=3, timeout=1, delay=0, retry_on=(ConnectionError,))
    assert op.calls == 3


@pytest.mark.asyncio
async def test_non_retryable_errors_fail_immediately() -> None:
    op = Flaky(1, exc=ValueError)
    with pytest.raises(ValueError):
        await call_with_retry(op, attempts=3, timeout=1, delay=0, retry_on=(ConnectionError,))
    assert op.calls == 1


@pytest.mark.asyncio
async def test_timeouts_are_retried() -> None:
    calls = 0

    async def slow_then_fast():
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(10)
        return "ok"

    assert await call_with_retry(slow_then_fast, attempts=2, timeout=0.01, delay=0, retry_on=()) == "ok"
    assert calls == 2


@pytest.mark.asyncio
async def test_backoff_grows_exponentially(monkeypatch) -> None:
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr("panellink.retry.asyncio.sleep", fake_sleep)

    with pytest.raises(ConnectionError):
        await call_with_retry(Flaky(5), attempts=4, timeout=1, delay=0.1, retry_on=(ConnectionError,))

    assert waits == pytest.approx([0.1, 0.2, 0.4])
