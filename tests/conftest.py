"""Shared pytest fixtures: in-memory stores, a controllable clock and an API client."""

import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from panellink.background import DetachedTaskRunner
from panellink.config import Settings, get_settings
from panellink.dependencies import get_panel_service
from panellink.main import app
from panellink.panel_service import PanelLinkService
from panellink.sweeper import ExpirySweeper
from tests.fakes import FakeClock, InMemoryPanelCache, InMemoryPanelStore

START = datetime.datetime(2026, 1, 1, 12, 0, 0, tzinfo=datetime.UTC)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        BASE_URL="http://panels.test",
        STORAGE_PUBLIC_BASE_URL="https://oss.test",
        PANEL_DEFAULT_TTL_SECONDS=3600,
        PANEL_MAX_TTL_SECONDS=86400,
        STORE_RETRY_DELAY_SECONDS=0,
        CACHE_RETRY_DELAY_SECONDS=0,
        CLEANUP_BATCH_PAUSE_SECONDS=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def store() -> InMemoryPanelStore:
    return InMemoryPanelStore()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryPanelCache:
    return InMemoryPanelCache(clock)


@pytest.fixture
def tasks() -> DetachedTaskRunner:
    return DetachedTaskRunner(max_pending=100)


@pytest.fixture
def service(store, cache, settings, tasks, clock) -> PanelLinkService:
    return PanelLinkService(store, cache, settings, tasks, clock=clock)


@pytest.fixture
def pauses() -> list[float]:
    return []


@pytest.fixture
def sweeper(store, cache, settings, clock, pauses) -> ExpirySweeper:
    async def record_pause(seconds: float) -> None:
        pauses.append(seconds)

    return ExpirySweeper(store, cache, settings, clock=clock, sleep=record_pause)


@pytest_asyncio.fixture(scope="function")
async def client(service: PanelLinkService, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_panel_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
