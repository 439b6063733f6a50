"""Configuration management for the panel link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from panellink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    max_ttl = settings.PANEL_MAX_TTL_SECONDS

**Step 3 — Override in tests**::
    settings = Settings(PANEL_MAX_TTL_SECONDS=120, CLEANUP_BATCH_PAUSE_SECONDS=0)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- The DB_CLEANUP_* names of the legacy deployment are not read; use CLEANUP_*.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "panel-link-service"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://panellink:panellink@db:5432/panellink"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Panel ids and lifetimes
    PANEL_ID_LENGTH: int = 16
    PANEL_ID_MAX_ATTEMPTS: int = 10
    PANEL_DEFAULT_TTL_SECONDS: int = 7 * 24 * 60 * 60
    PANEL_MAX_TTL_SECONDS: int = 30 * 24 * 60 * 60
    CACHE_KEY_PREFIX: str = "panel"

    # Object storage host used to turn bare locators into browser URLs
    STORAGE_PUBLIC_BASE_URL: str = "http://localhost:9000"

    # Per-operation transport limits
    STORE_OPERATION_TIMEOUT_SECONDS: float = 5.0
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_DELAY_SECONDS: float = 0.2
    CACHE_OPERATION_TIMEOUT_SECONDS: float = 1.0
    CACHE_RETRY_ATTEMPTS: int = 3
    CACHE_RETRY_DELAY_SECONDS: float = 0.05

    # Fire-and-forget side effects (visit counts, cache warm-up, lazy expiry)
    BACKGROUND_MAX_PENDING_TASKS: int = 1000

    # Expiry sweeper
    CLEANUP_ENABLED: bool = True
    CLEANUP_INTERVAL_HOURS: int = 24
    CLEANUP_RETENTION_DAYS: int = 2
    CLEANUP_BATCH_SIZE: int = 1000
    CLEANUP_BATCH_PAUSE_SECONDS: float = 0.1
    CLEANUP_MAX_CONSECUTIVE_FAILURES: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
