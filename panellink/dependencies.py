"""Service wiring and FastAPI dependencies.

The ServiceManager is the composition root: it builds the SQLAlchemy engine,
the Redis client, both store adapters, the detached task runner, the engine,
the sweeper and its scheduler, once per application. The FastAPI lifespan
stores it on ``app.state.services``; request handlers reach it through the
dependency functions below, which tests override.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from panellink.background import DetachedTaskRunner
from panellink.cache import RedisPanelCache
from panellink.config import Settings
from panellink.database import close_db, create_engine, create_session_factory, init_db
from panellink.panel_service import PanelLinkService
from panellink.redis import close_redis, create_redis_client
from panellink.store import SQLPanelStore
from panellink.sweeper import CleanupConfig, CleanupScheduler, ExpirySweeper


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owns every long-lived resource of the application."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = self._setup_logger()
        self._initialized = False
        self.engine: AsyncEngine | None = None
        self.redis_client: redis.Redis | None = None

    async def initialize(self, create_tables: bool = True) -> None:
        """Build shared resources once at startup."""
        if self._initialized:
            return

        self.engine = create_engine(self.settings)
        try:
            if create_tables:
                await init_db(self.engine)
            self.redis_client = create_redis_client(self.settings)
        except Exception as e:
            self.logger.error(f"Service initialization failed: {e}")
            await close_db(self.engine)
            self.engine = None
            raise

        self.store = SQLPanelStore(create_session_factory(self.engine), self.settings)
        self.cache = RedisPanelCache(self.redis_client, self.settings, self.logger.getChild("cache"))
        self.tasks = DetachedTaskRunner(self.settings.BACKGROUND_MAX_PENDING_TASKS, self.logger.getChild("background"))
        self.panel_service = PanelLinkService(self.store, self.cache, self.settings, self.tasks, self.logger)
        self.sweeper = ExpirySweeper(self.store, self.cache, self.settings, self.logger.getChild("sweeper"))
        self.scheduler = CleanupScheduler(
            self.sweeper,
            CleanupConfig.from_settings(self.settings),
            self.logger.getChild("sweeper"),
        )
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} services initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("panellink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Release shared resources at shutdown."""
        if not self._initialized:
            return
        await self.scheduler.stop()
        await self.tasks.shutdown()
        await close_redis(self.redis_client)
        await close_db(self.engine)
        self.redis_client = None
        self.engine = None
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data for structured logging.

    Attributes:
        request_id: Unique identifier for this request
        client_ip: Client IP address
        user_agent: Client user agent string
        start_time: Request start timestamp
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: str | None = None
    user_agent: str | None = None
    start_time: float = field(default_factory=time.time)

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            logging.getLogger("panellink.api"),
            {"request_id": self.request_id, "client_ip": self.client_ip},
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.services


def get_panel_service(manager: ServiceManager = Depends(get_service_manager)) -> PanelLinkService:
    return manager.panel_service


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
