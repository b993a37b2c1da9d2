"""Tests for short URL creation: validation, slug allocation and UTM handling."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest

from shortlink.exceptions import (
    SlugConflictError,
    SlugGenerationExhaustedError,
    StoreUnavailableError,
    ValidationFailureError,
)
from shortlink.schemas import URLCreate, UtmParams

from conftest import START


@pytest.mark.asyncio
async def test_generated_slug(creation_service, store) -> None:
    record = await creation_service.create_shortened_url(URLCreate(original_url="https://example.com"))

    assert len(record.slug) == 8
    assert record.slug.isalnum()
    assert store.records[record.slug] == record
    assert record.click_count == 0
    assert record.utm_params is None


@pytest.mark.asyncio
async def test_utm_extracted_from_url(creation_service) -> None:
    record = await creation_service.create_shortened_url(
        URLCreate(original_url="https://x.com/?utm_source=tw&id=1")
    )

    assert record.original_url == "https://x.com/?id=1"
    assert record.utm_params == {"source": "tw"}


@pytest.mark.asyncio
async def test_explicit_utm_wins_over_extracted(creation_service) -> None:
    record = await creation_service.create_shortened_url(
        URLCreate(
            original_url="https://x.com/?utm_source=tw&utm_medium=social",
            utm_params=UtmParams(source="fb", campaign="launch"),
        )
    )

    assert record.original_url == "https://x.com/"
    assert record.utm_params == {"source": "fb", "medium": "social", "campaign": "launch"}


@pytest.mark.asyncio
async def test_custom_slug(creation_service, store) -> None:
    record = await creation_service.create_shortened_url(
        URLCreate(original_url="https://example.com", slug="MySlug01")
    )

    assert record.slug == "MySlug01"
    assert "MySlug01" in store.records


@pytest.mark.asyncio
async def test_custom_slug_conflict_leaves_store_untouched(creation_service, store) -> None:
    existing = store.add(original_url="https://example.com", slug="MySlug01")

    with pytest.raises(SlugConflictError):
        await creation_service.create_shortened_url(
            URLCreate(original_url="https://example.org", slug="MySlug01")
        )

    assert store.records == {"MySlug01": existing}


@pytest.mark.asyncio
@pytest.mark.parametrize("slug", ["short", "waytoolong123"])
async def test_custom_slug_wrong_length_rejected(creation_service, store, slug) -> None:
    with pytest.raises(ValidationFailureError):
        await creation_service.create_shortened_url(URLCreate(original_url="https://example.com", slug=slug))

    assert store.records == {}


@pytest.mark.asyncio
async def test_past_expiration_rejected(creation_service, store) -> None:
    with pytest.raises(ValidationFailureError):
        await creation_service.create_shortened_url(
            URLCreate(original_url="https://example.com", expiration_date=START - datetime.timedelta(days=1))
        )

    assert store.records == {}


@pytest.mark.asyncio
async def test_expiration_equal_to_now_rejected(creation_service) -> None:
    with pytest.raises(ValidationFailureError):
        await creation_service.create_shortened_url(
            URLCreate(original_url="https://example.com", expiration_date=START)
        )


@pytest.mark.asyncio
async def test_naive_expiration_treated_as_utc(creation_service) -> None:
    naive = (START + datetime.timedelta(days=1)).replace(tzinfo=None)

    record = await creation_service.create_shortened_url(
        URLCreate(original_url="https://example.com", expiration_date=naive)
    )

    assert record.expiration_date == START + datetime.timedelta(days=1)


@pytest.mark.asyncio
async def test_generation_exhausted(creation_service, store, settings, monkeypatch) -> None:
    store.add(original_url="https://example.com", slug="taken123")
    monkeypatch.setattr("shortlink.creation.generate_slug", lambda length: "taken123")

    with pytest.raises(SlugGenerationExhaustedError) as exc_info:
        await creation_service.create_shortened_url(URLCreate(original_url="https://example.org"))

    assert exc_info.value.attempts == settings.SLUG_MAX_ATTEMPTS
    assert len(store.records) == 1


@pytest.mark.asyncio
async def test_generated_slug_retries_after_collision(creation_service, store, monkeypatch) -> None:
    store.add(original_url="https://example.com", slug="taken123")
    candidates = iter(["taken123", "taken123", "fresh123"])
    monkeypatch.setattr("shortlink.creation.generate_slug", lambda length: next(candidates))

    record = await creation_service.create_shortened_url(URLCreate(original_url="https://example.org"))

    assert record.slug == "fresh123"


@pytest.mark.asyncio
async def test_generated_slug_retries_after_lost_insert_race(creation_service, store, monkeypatch) -> None:
    store.add(original_url="https://example.com", slug="taken123")
    candidates = iter(["taken123", "fresh123"])
    monkeypatch.setattr("shortlink.creation.generate_slug", lambda length: next(candidates))
    # The pre-check misses the row, as it would when another writer commits in between.
    monkeypatch.setattr(store, "exists_by_slug", AsyncMock(return_value=False))

    record = await creation_service.create_shortened_url(URLCreate(original_url="https://example.org"))

    assert record.slug == "fresh123"
    assert store.records["taken123"].original_url == "https://example.com"


@pytest.mark.asyncio
async def test_concurrent_custom_slug_single_winner(creation_service, store) -> None:
    payloads = [URLCreate(original_url=f"https://example.com/{i}", slug="Shared01") for i in range(5)]

    results = await asyncio.gather(
        *(creation_service.create_shortened_url(payload) for payload in payloads),
        return_exceptions=True,
    )

    winners = [result for result in results if not isinstance(result, Exception)]
    losers = [result for result in results if isinstance(result, Exception)]
    assert len(winners) == 1
    assert all(isinstance(result, SlugConflictError) for result in losers)
    assert store.records["Shared01"] == winners[0]


@pytest.mark.asyncio
async def test_creation_primes_cache(creation_service, cache) -> None:
    record = await creation_service.create_shortened_url(URLCreate(original_url="https://example.com"))

    cached, hit = cache.get(record.slug)
    assert hit is True
    assert cached == record


@pytest.mark.asyncio
async def test_store_failure_propagates(creation_service, store, cache, monkeypatch) -> None:
    monkeypatch.setattr(
        store,
        "insert_url_record",
        AsyncMock(side_effect=StoreUnavailableError("connection refused")),
    )

    with pytest.raises(StoreUnavailableError):
        await creation_service.create_shortened_url(
            URLCreate(original_url="https://example.com", slug="MySlug01")
        )

    assert len(cache) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "original_url",
    [
        "https://example.com/?utm_campaign=" + "x" * 101,
        "https://example.com/?utm_source=two+words",
        "https://example.com/?utm_medium=%3Cscript%3E",
    ],
)
async def test_invalid_utm_in_url_rejected(creation_service, store, original_url) -> None:
    with pytest.raises(ValidationFailureError):
        await creation_service.create_shortened_url(URLCreate(original_url=original_url))

    assert store.records == {}


@pytest.mark.asyncio
async def test_url_query_kept_verbatim(creation_service) -> None:
    record = await creation_service.create_shortened_url(
        URLCreate(original_url="https://x.com/search?q=a+b&next=%2Fhome&utm_source=tw")
    )

    assert record.original_url == "https://x.com/search?q=a+b&next=%2Fhome"
    assert record.utm_params == {"source": "tw"}
