import asyncio
import logging

import pytest

from panellink.background import DetachedTaskRunner


@pytest.mark.asyncio
async def test_spawned_work_runs_without_being_awaited() -> None:
    runner = DetachedTaskRunner(max_pending=10)
    done = []

    async def work():
        done.append(True)

    task = runner.spawn(work(), name="work")
    assert task is not None
    await runner.drain()

    assert done == [True]
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised(caplog) -> None:
    runner = DetachedTaskRunner(max_pending=10)

    async def boom():
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="panellink.background"):
        runner.spawn(boom(), name="visit:abc")
        await runner.drain()

    assert any("visit:abc" in record.message and "boom" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_work_is_dropped_when_full(caplog) -> None:
    runner = DetachedTaskRunner(max_pending=1)
    gate = asyncio.Event()

    runner.spawn(gate.wait(), name="first")

    async def second():
        pass

    with caplog.at_level(logging.WARNING, logger="panellink.background"):
        assert runner.spawn(second(), name="second") is None
    assert any("Dropping" in record.message for record in caplog.records)

    gate.set()
    await runner.drain()


@pytest.mark.asyncio
async def test_shutdown_cancels_stragglers() -> None:
    runner = DetachedTaskRunner(max_pending=10)
    task = runner.spawn(asyncio.sleep(10), name="slow")

    await runner.shutdown(timeout=0.01)

    assert task.cancelled()
    assert runner.pending_count == 0
