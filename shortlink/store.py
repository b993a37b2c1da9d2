"""Durable store contract and its SQLAlchemy implementation.

The store holds the authoritative URL records and the click log. The core
only talks to it through ``UrlStore`` so tests can substitute an in-memory
double and deployments can swap the database.

Responsibilities:
    - Point lookups and existence checks by slug.
    - Atomic counter increments (in-database ``n = n + 1``, never
      read-modify-write from the caller).
    - Unique-slug enforcement at write time via the unique index.
    - Append-only click inserts and the analytics read of the click log.

Classes:
    - UrlStore: Abstract contract consumed by the services.
    - SqlAlchemyUrlStore: Async SQLAlchemy implementation; one short-lived
      session per call so fire-and-forget writes never share a transaction
      with the request that triggered them.

Example:
    >>> store = SqlAlchemyUrlStore(create_sessionmaker(engine))
    >>> record = await store.insert_url_record(
    ...     original_url="https://example.com", slug="abc12345",
    ...     expiration_date=None, utm_params=None,
    ... )
    >>> (await store.find_by_slug("abc12345")).id == record.id
    True
"""

import datetime
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.exceptions import SlugConflictError, StoreUnavailableError
from shortlink.models import URL, Click
from shortlink.schemas import ClickEvent, UrlRecord

__all__ = ["SqlAlchemyUrlStore", "UrlStore"]


class UrlStore(ABC):
    """Interface for the durable store.

    Every method may raise ``StoreUnavailableError`` on connection, driver
    or timeout failures. ``insert_url_record`` raises ``SlugConflictError``
    when the slug is already taken.
    """

    @abstractmethod
    async def find_by_slug(self, slug: str) -> UrlRecord | None:
        """Return the record for ``slug`` or None."""

    @abstractmethod
    async def exists_by_slug(self, slug: str) -> bool:
        """Return True if a record with ``slug`` exists."""

    @abstractmethod
    async def insert_url_record(
        self,
        *,
        original_url: str,
        slug: str,
        expiration_date: datetime.datetime | None,
        utm_params: dict[str, str] | None,
    ) -> UrlRecord:
        """Persist a new record and return it with store-assigned fields."""

    @abstractmethod
    async def increment_click_count(self, url_id: uuid.UUID) -> None:
        """Atomically add one to ``click_count``."""

    @abstractmethod
    async def increment_expired_access_count(self, slug: str) -> None:
        """Atomically add one to ``expired_access_count``."""

    @abstractmethod
    async def insert_click_event(
        self,
        url_id: uuid.UUID,
        referrer: str | None,
        user_agent: str | None,
    ) -> ClickEvent:
        """Append one click to the log."""

    @abstractmethod
    async def list_click_events(self, url_id: uuid.UUID) -> list[ClickEvent]:
        """Return every click for ``url_id``, newest first."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise ``StoreUnavailableError`` if the store cannot be reached."""


class SqlAlchemyUrlStore(UrlStore):
    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailableError(f"{operation} failed: {exc}") from exc

    async def find_by_slug(self, slug: str) -> UrlRecord | None:
        async with self._session("find_by_slug") as session:
            result = await session.execute(select(URL).where(URL.slug == slug))
            url = result.scalar_one_or_none()
            return UrlRecord.model_validate(url) if url is not None else None

    async def exists_by_slug(self, slug: str) -> bool:
        async with self._session("exists_by_slug") as session:
            result = await session.execute(select(URL.id).where(URL.slug == slug))
            return result.first() is not None

    async def insert_url_record(
        self,
        *,
        original_url: str,
        slug: str,
        expiration_date: datetime.datetime | None,
        utm_params: dict[str, str] | None,
    ) -> UrlRecord:
        async with self._session("insert_url_record") as session:
            url = URL(
                original_url=original_url,
                slug=slug,
                expiration_date=expiration_date,
                utm_params=utm_params,
            )
            session.add(url)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise SlugConflictError(slug) from exc
            await session.refresh(url)
            assert url.id is not None, "url.id must be set after commit"
            return UrlRecord.model_validate(url)

    async def increment_click_count(self, url_id: uuid.UUID) -> None:
        async with self._session("increment_click_count") as session:
            await session.execute(
                update(URL).where(URL.id == url_id).values(click_count=URL.click_count + 1)
            )
            await session.commit()

    async def increment_expired_access_count(self, slug: str) -> None:
        async with self._session("increment_expired_access_count") as session:
            await session.execute(
                update(URL)
                .where(URL.slug == slug)
                .values(expired_access_count=URL.expired_access_count + 1)
            )
            await session.commit()

    async def insert_click_event(
        self,
        url_id: uuid.UUID,
        referrer: str | None,
        user_agent: str | None,
    ) -> ClickEvent:
        async with self._session("insert_click_event") as session:
            click = Click(url_id=url_id, referrer=referrer, user_agent=user_agent)
            session.add(click)
            await session.commit()
            await session.refresh(click)
            return ClickEvent.model_validate(click)

    async def list_click_events(self, url_id: uuid.UUID) -> list[ClickEvent]:
        async with self._session("list_click_events") as session:
            result = await session.execute(
                select(Click).where(Click.url_id == url_id).order_by(Click.created_at.desc(), Click.id)
            )
            return [ClickEvent.model_validate(click) for click in result.scalars()]

    async def ping(self) -> None:
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
