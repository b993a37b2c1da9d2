"""Tests for the SQLAlchemy store against a file-backed SQLite database."""

import datetime
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from shortlink.config import Settings
from shortlink.database import create_engine, create_sessionmaker, init_db
from shortlink.exceptions import SlugConflictError, StoreUnavailableError
from shortlink.store import SqlAlchemyUrlStore


@pytest_asyncio.fixture(scope="function")
async def sql_store(tmp_path) -> AsyncGenerator[SqlAlchemyUrlStore, None]:
    engine = create_engine(Settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/test.db"))
    await init_db(engine)
    yield SqlAlchemyUrlStore(create_sessionmaker(engine))
    await engine.dispose()


async def insert(store: SqlAlchemyUrlStore, slug: str = "abc12345", **fields):
    values = {
        "original_url": "https://example.com",
        "expiration_date": None,
        "utm_params": None,
    }
    values.update(fields)
    return await store.insert_url_record(slug=slug, **values)


@pytest.mark.asyncio
async def test_insert_and_find(sql_store) -> None:
    expires = datetime.datetime(2030, 1, 1, tzinfo=datetime.UTC)
    record = await insert(sql_store, expiration_date=expires, utm_params={"source": "tw"})

    found = await sql_store.find_by_slug("abc12345")

    assert found is not None
    assert found.id == record.id
    assert found.original_url == "https://example.com"
    assert found.expiration_date == expires
    assert found.utm_params == {"source": "tw"}
    assert found.click_count == 0
    assert found.expired_access_count == 0
    assert found.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_find_missing(sql_store) -> None:
    assert await sql_store.find_by_slug("missing1") is None
    assert await sql_store.exists_by_slug("missing1") is False


@pytest.mark.asyncio
async def test_exists_by_slug(sql_store) -> None:
    await insert(sql_store)

    assert await sql_store.exists_by_slug("abc12345") is True


@pytest.mark.asyncio
async def test_duplicate_slug_raises_conflict(sql_store) -> None:
    await insert(sql_store)

    with pytest.raises(SlugConflictError):
        await insert(sql_store, original_url="https://example.org")

    found = await sql_store.find_by_slug("abc12345")
    assert found.original_url == "https://example.com"


@pytest.mark.asyncio
async def test_counters_increment_in_database(sql_store) -> None:
    record = await insert(sql_store)

    for _ in range(3):
        await sql_store.increment_click_count(record.id)
    await sql_store.increment_expired_access_count("abc12345")

    found = await sql_store.find_by_slug("abc12345")
    assert found.click_count == 3
    assert found.expired_access_count == 1


@pytest.mark.asyncio
async def test_increment_unknown_is_noop(sql_store) -> None:
    await sql_store.increment_click_count(uuid.uuid4())
    await sql_store.increment_expired_access_count("missing1")


@pytest.mark.asyncio
async def test_click_events(sql_store) -> None:
    record = await insert(sql_store)
    other = await insert(sql_store, slug="zzz99999")

    first = await sql_store.insert_click_event(record.id, "https://ref.test", "Mozilla/5.0")
    second = await sql_store.insert_click_event(record.id, None, None)
    await sql_store.insert_click_event(other.id, None, "curl/8")

    clicks = await sql_store.list_click_events(record.id)

    assert {click.id for click in clicks} == {first.id, second.id}
    assert first.url_id == record.id
    assert first.referrer == "https://ref.test"
    assert first.user_agent == "Mozilla/5.0"
    assert first.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_ping(sql_store) -> None:
    await sql_store.ping()


@pytest.mark.asyncio
async def test_unreachable_database_raises_store_unavailable(tmp_path) -> None:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/test.db")
    store = SqlAlchemyUrlStore(create_sessionmaker(engine))

    with pytest.raises(StoreUnavailableError):
        await store.ping()
    with pytest.raises(StoreUnavailableError):
        await store.find_by_slug("abc12345")

    await engine.dispose()
