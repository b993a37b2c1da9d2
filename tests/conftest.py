"""Shared pytest fixtures: fake clock, in-memory store, services and API client."""

import asyncio
import datetime
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlink.analytics import AnalyticsService
from shortlink.cache import SlugCache
from shortlink.config import Settings
from shortlink.creation import CreationService
from shortlink.dependencies import ServiceManager
from shortlink.exceptions import SlugConflictError, StoreUnavailableError
from shortlink.main import app
from shortlink.resolution import ResolutionService
from shortlink.schemas import ClickEvent, UrlRecord
from shortlink.store import UrlStore

START = datetime.datetime(2025, 2, 1, 12, 0, 0, tzinfo=datetime.UTC)


class FakeClock:
    def __init__(self, start: datetime.datetime = START):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += datetime.timedelta(**kwargs)


class InMemoryUrlStore(UrlStore):
    """Store double with the same contract as the SQL store.

    The unique-slug check and insert happen under one lock, mirroring a
    unique index. ``read_error`` and ``read_delay`` simulate an unhealthy
    store on the lookup path; ``write_error`` does the same for counter and
    click writes.
    """

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._lock = asyncio.Lock()
        self.records: dict[str, UrlRecord] = {}
        self.clicks: list[ClickEvent] = []
        self.find_calls = 0
        self.read_error: Exception | None = None
        self.read_delay: float = 0.0
        self.write_error: Exception | None = None

    def add(self, **fields) -> UrlRecord:
        now = self._clock()
        record = UrlRecord(
            id=fields.pop("id", uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.records[record.slug] = record
        return record

    async def find_by_slug(self, slug: str) -> UrlRecord | None:
        self.find_calls += 1
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.read_error is not None:
            raise self.read_error
        return self.records.get(slug)

    async def exists_by_slug(self, slug: str) -> bool:
        await asyncio.sleep(0)
        return slug in self.records

    async def insert_url_record(self, *, original_url, slug, expiration_date, utm_params) -> UrlRecord:
        await asyncio.sleep(0)
        async with self._lock:
            if slug in self.records:
                raise SlugConflictError(slug)
            return self.add(
                original_url=original_url,
                slug=slug,
                expiration_date=expiration_date,
                utm_params=utm_params,
            )

    def _by_id(self, url_id: uuid.UUID) -> UrlRecord:
        return next(record for record in self.records.values() if record.id == url_id)

    async def increment_click_count(self, url_id: uuid.UUID) -> None:
        await asyncio.sleep(0)
        if self.write_error is not None:
            raise self.write_error
        record = self._by_id(url_id)
        self.records[record.slug] = record.model_copy(update={"click_count": record.click_count + 1})

    async def increment_expired_access_count(self, slug: str) -> None:
        await asyncio.sleep(0)
        if self.write_error is not None:
            raise self.write_error
        record = self.records[slug]
        self.records[slug] = record.model_copy(
            update={"expired_access_count": record.expired_access_count + 1}
        )

    async def insert_click_event(self, url_id, referrer, user_agent) -> ClickEvent:
        await asyncio.sleep(0)
        if self.write_error is not None:
            raise self.write_error
        click = ClickEvent(
            id=uuid.uuid4(),
            url_id=url_id,
            referrer=referrer,
            user_agent=user_agent,
            created_at=self._clock(),
        )
        self.clicks.append(click)
        return click

    async def list_click_events(self, url_id: uuid.UUID) -> list[ClickEvent]:
        return [click for click in reversed(self.clicks) if click.url_id == url_id]

    async def ping(self) -> None:
        if self.read_error is not None:
            raise StoreUnavailableError(str(self.read_error))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        CACHE_DEFAULT_TTL_MS=5 * 60 * 1000,
        CACHE_MAX_ITEMS=1000,
        SLUG_LENGTH=8,
        SLUG_MAX_ATTEMPTS=10,
        STORE_TIMEOUT_SECONDS=0.05,
        BASE_URL="http://short.test",
        FRONTEND_URL="http://frontend.test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryUrlStore:
    return InMemoryUrlStore(clock)


@pytest.fixture
def cache(settings: Settings, clock: FakeClock) -> SlugCache:
    return SlugCache.from_settings(settings, clock=clock)


@pytest.fixture
def resolution_service(cache, store, settings, clock) -> ResolutionService:
    return ResolutionService(cache, store, settings, clock=clock)


@pytest.fixture
def creation_service(cache, store, settings, clock) -> CreationService:
    return CreationService(store, settings, cache=cache, clock=clock)


@pytest.fixture
def analytics_service(store, clock) -> AnalyticsService:
    return AnalyticsService(store, clock=clock)


@pytest_asyncio.fixture(scope="function")
async def manager(settings, store, clock) -> AsyncGenerator[ServiceManager, None]:
    service_manager = ServiceManager(settings, store=store, clock=clock)
    await service_manager.initialize()
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    previous = app.state.service_manager
    app.state.service_manager = manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.service_manager = previous
