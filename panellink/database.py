"""Database engine and session factory for the panel link service.

This module provides SQLAlchemy async engine setup and database lifecycle
operations using PostgreSQL as the backend.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ Service     │
    │ Manager     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ engine()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ session     │
    │ factory     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SQLPanel    │
    │ Store: one  │
    │ session per │
    │ operation   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auto-close  │
    │ (async with)│
    └─────────────┘

How to Use
===========
**Step 1 — Build on startup**::
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    await init_db(engine)  # Creates tables

**Step 2 — Hand the factory to the store adapter**::
    store = SQLPanelStore(session_factory, settings)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- No module-level engine; the owner of the engine disposes it.
- Connection pooling is configured from settings.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Build the async engine from settings.
    create_session_factory():  Build the async session factory.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from panellink.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=(settings.APP_ENV == "development"),
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Importing models registers the panels table on Base.metadata
    import panellink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
