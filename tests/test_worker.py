"""Stand-alone sweeper worker and service wiring tests."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from panellink import worker
from panellink.dependencies import ServiceManager, get_panel_service, get_service_manager
from panellink.schemas import SweepResult


class StubServices:
    instances: list["StubServices"] = []

    def __init__(self, settings):
        self.settings = settings
        self.initialize = AsyncMock()
        self.cleanup = AsyncMock()
        self.scheduler = MagicMock()
        self.scheduler.manual_cleanup = AsyncMock(
            return_value=SweepResult(marked_count=1, deleted_count=2, duration_ms=3)
        )
        StubServices.instances.append(self)


@pytest.mark.asyncio
async def test_worker_once_runs_a_single_sweep(monkeypatch) -> None:
    StubServices.instances.clear()
    monkeypatch.setattr(worker, "ServiceManager", StubServices)

    assert await worker.main(once=True) == 0

    services = StubServices.instances[0]
    services.initialize.assert_awaited_once()
    services.scheduler.manual_cleanup.assert_awaited_once()
    services.scheduler.start.assert_not_called()
    services.cleanup.assert_awaited_once()


@pytest.mark.asyncio
async def test_worker_once_reports_failure(monkeypatch) -> None:
    StubServices.instances.clear()

    def failing(settings):
        services = StubServices(settings)
        services.scheduler.manual_cleanup.side_effect = RuntimeError("store down")
        return services

    monkeypatch.setattr(worker, "ServiceManager", failing)

    assert await worker.main(once=True) == 1
    StubServices.instances[0].cleanup.assert_awaited_once()


@pytest.mark.asyncio
async def test_service_manager_cleanup_before_initialize_is_noop(settings) -> None:
    manager = ServiceManager(settings)
    await manager.cleanup()
    assert manager.engine is None


def test_dependencies_read_services_from_app_state() -> None:
    manager = SimpleNamespace(panel_service=object())
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(services=manager)))

    assert get_service_manager(request) is manager
    assert get_panel_service(manager) is manager.panel_service


@pytest.mark.asyncio
async def test_service_manager_disposes_engine_when_init_db_fails(settings, monkeypatch) -> None:
    engine = MagicMock()
    engine.dispose = AsyncMock()
    monkeypatch.setattr("panellink.dependencies.create_engine", lambda settings: engine)
    monkeypatch.setattr("panellink.dependencies.init_db", AsyncMock(side_effect=OSError("connection refused")))

    manager = ServiceManager(settings)
    with pytest.raises(OSError):
        await manager.initialize()

    engine.dispose.assert_awaited_once()
    assert manager.engine is None


@pytest.mark.asyncio
async def test_worker_reports_failed_initialization(monkeypatch) -> None:
    StubServices.instances.clear()

    def failing(settings):
        services = StubServices(settings)
        services.initialize.side_effect = OSError("connection refused")
        return services

    monkeypatch.setattr(worker, "ServiceManager", failing)

    assert await worker.main(once=True) == 1
    services = StubServices.instances[0]
    services.scheduler.manual_cleanup.assert_not_awaited()
    services.cleanup.assert_awaited_once()
