"""Dependency injection with an explicitly constructed service manager.

This module builds the shared components once per application (settings,
logger, store, slug cache and the three services) and hands them to request
handlers together with a lightweight per-request context.

The manager lives on ``app.state``; nothing is a process-wide singleton, so
tests construct their own manager around an in-memory store.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlink.analytics import AnalyticsService
from shortlink.cache import SlugCache
from shortlink.clock import Clock, utcnow
from shortlink.config import Settings, get_settings
from shortlink.creation import CreationService
from shortlink.database import create_engine, create_sessionmaker, init_db
from shortlink.resolution import ResolutionService
from shortlink.store import SqlAlchemyUrlStore, UrlStore


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of the shared, per-application resources.

    Components are created once in ``initialize`` and reused by every request,
    keeping per-request overhead to a context object. A store can be injected
    (tests); otherwise one backed by ``DATABASE_URL`` is built.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[UrlStore] = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings or get_settings()
        self.clock = clock
        self._store = store
        self._engine: Optional[AsyncEngine] = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        async with self._init_lock:
            if not self._initialized:
                await self._build()

    async def _build(self) -> None:
        self.logger = self._setup_logger()
        if self._store is None:
            self._engine = create_engine(self.settings)
            await init_db(self._engine)
            self._store = SqlAlchemyUrlStore(create_sessionmaker(self._engine))
        self.store = self._store

        self.cache = SlugCache.from_settings(self.settings, clock=self.clock)
        self.resolution = ResolutionService(self.cache, self.store, self.settings, self.logger, self.clock)
        self.creation = CreationService(self.store, self.settings, self.cache, self.logger, self.clock)
        self.analytics = AnalyticsService(self.store, self.logger, self.clock)
        self._initialized = True
        self.logger.info(
            f"{self.settings.APP_NAME} initialized "
            f"(cache max={self.settings.CACHE_MAX_ITEMS}, ttl={self.settings.CACHE_DEFAULT_TTL_MS}ms)"
        )

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Flush pending side effects and release resources at shutdown."""
        if not self._initialized:
            return
        await self.resolution.drain()
        self.cache.clear()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._store = None
        self._initialized = False


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and observability.

    Attributes:
        service_manager: Shared resources for the application
        request_id: Unique identifier for this request
        referrer: Referer header, if any
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    """Return the application's service manager, initializing it on first use."""
    manager: ServiceManager = request.app.state.service_manager
    if not manager.initialized:
        await manager.initialize()
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        referrer=request.headers.get("referer"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


def get_resolution_service(manager: ServiceManager = Depends(get_service_manager)) -> ResolutionService:
    return manager.resolution


def get_creation_service(manager: ServiceManager = Depends(get_service_manager)) -> CreationService:
    return manager.creation


def get_analytics_service(manager: ServiceManager = Depends(get_service_manager)) -> AnalyticsService:
    return manager.analytics
