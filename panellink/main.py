"""FastAPI application entry point for the panel link service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ ServiceManager│
    │ .initialize()│
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ start expiry│
    │ sweeper     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ stop sweeper│
    │ drain tasks │
    │ close stores│
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn panellink.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/panels \
         -H "Content-Type: application/json" \
         -d '{"locator": "bucket/report.html", "ttl_seconds": 3600}'

Key Behaviours
===============
- Database tables are created automatically on startup.
- The expiry sweeper runs inside the API process unless CLEANUP_ENABLED is false;
  run ``python -m panellink.worker`` to host it separately instead.
- Prometheus metrics are exposed on /metrics.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from panellink.config import get_settings
from panellink.dependencies import ServiceManager
from panellink.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    services = ServiceManager(get_settings())
    await services.initialize()
    app.state.services = services
    services.scheduler.start()
    yield
    # Shutdown
    await services.cleanup()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Time-bounded short links for stored panels",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
