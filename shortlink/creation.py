"""Short URL creation.

Flow Diagram — create_shortened_url()
=====================================
::
    ┌─────────────┐
    │ URLCreate   │
    │ (validated) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Expiration  │──── not in future ──► ValidationFailureError
    │ check       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Extract UTM │
    │ strip URL   │
    │ merge (call │
    │ -er wins)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐  custom   ┌─────────────┐
    │ Slug given? │ ────────► │ format +    │──── taken ──► SlugConflictError
    └──────┬──────┘           │ uniqueness  │
           │ no               └──────┬──────┘
           ▼                         │
    ┌─────────────┐                  │
    │ nanoid slug │ ◄─ collision     │
    │ ≤ N tries   │ ── exhausted ──► SlugGenerationExhaustedError
    └──────┬──────┘                  │
           └────────────┬────────────┘
                        ▼
                ┌─────────────┐
                │ Insert      │  unique index closes the check/insert race
                │ Prime cache │
                └─────────────┘

Key Behaviours
===============
- All validation happens before any store mutation, including the UTM
  values lifted out of the URL.
- The pre-check only gives a fast answer; the store's unique index is what
  guarantees a single winner when two callers race for the same slug.
- A generated slug that loses the insert race counts as a collision and is
  retried within the same attempt budget.
- Store failures propagate as ``StoreUnavailableError``.
"""

import logging
import time

from prometheus_client import Counter, Histogram
from pydantic import ValidationError

from shortlink.cache import SlugCache
from shortlink.clock import Clock, utcnow
from shortlink.config import Settings
from shortlink.enums import CreationStatus
from shortlink.exceptions import (
    SlugConflictError,
    SlugGenerationExhaustedError,
    StoreUnavailableError,
    ValidationFailureError,
)
from shortlink.schemas import URLCreate, UrlRecord, UtmParams
from shortlink.slugs import generate_slug, is_valid_slug
from shortlink.store import UrlStore
from shortlink.utm import extract_utm_params, merge_utm_params

__all__ = ["CreationService"]

URL_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total short URL creation requests",
    ["status"],
)
URL_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
SLUG_COLLISIONS_TOTAL = Counter(
    "shortlink_slug_collisions_total",
    "Randomly generated slugs that were already taken",
)


class CreationService:
    """Allocates slugs and persists new URL records.

    Example:
        >>> service = CreationService(store, settings, cache=cache)
        >>> record = await service.create_shortened_url(
        ...     URLCreate(original_url="https://x.com/?utm_source=tw&id=1")
        ... )
        >>> record.original_url, record.utm_params
        ('https://x.com/?id=1', {'source': 'tw'})
    """

    def __init__(
        self,
        store: UrlStore,
        settings: Settings,
        cache: SlugCache | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._settings = settings
        self._cache = cache
        self._logger = logger or logging.getLogger("shortlink")
        self._clock = clock

    async def create_shortened_url(self, payload: URLCreate) -> UrlRecord:
        start_time = time.perf_counter()
        status = CreationStatus.ERROR
        try:
            record = await self._create(payload)
            status = CreationStatus.SUCCESS
            self._logger.info(f"Short URL created: {record.slug} -> {record.original_url}")
            return record
        except ValidationFailureError as exc:
            status = CreationStatus.VALIDATION_ERROR
            self._logger.warning(f"URL creation rejected: {exc}")
            raise
        except SlugConflictError as exc:
            status = CreationStatus.CONFLICT
            self._logger.warning(f"URL creation failed: {exc}")
            raise
        except SlugGenerationExhaustedError as exc:
            status = CreationStatus.EXHAUSTED
            self._logger.error(f"URL creation failed, slug space under pressure: {exc}")
            raise
        except StoreUnavailableError as exc:
            self._logger.error(f"URL creation error: {exc}")
            raise
        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)
            URL_CREATION_REQUESTS_TOTAL.labels(status=status).inc()

    async def _create(self, payload: URLCreate) -> UrlRecord:
        if payload.expiration_date is not None and payload.expiration_date <= self._clock():
            raise ValidationFailureError("expiration_date must be in the future")
        if payload.slug is not None and not is_valid_slug(payload.slug, self._settings.SLUG_LENGTH):
            raise ValidationFailureError(
                f"slug must be {self._settings.SLUG_LENGTH} alphanumeric characters"
            )

        original_url, extracted = extract_utm_params(payload.original_url)
        explicit = payload.utm_params.as_dict() if payload.utm_params is not None else None
        fields = {
            "original_url": original_url,
            "expiration_date": payload.expiration_date,
            "utm_params": self._validate_utm_params(merge_utm_params(extracted, explicit)),
        }

        if payload.slug is not None:
            record = await self._insert_custom(payload.slug, fields)
        else:
            record = await self._insert_generated(fields)

        if self._cache is not None:
            self._cache.put(record.slug, record)
        return record

    @staticmethod
    def _validate_utm_params(utm_params: dict[str, str] | None) -> dict[str, str] | None:
        # Values lifted from the URL get the same rules as caller-supplied ones.
        if utm_params is None:
            return None
        try:
            return UtmParams.model_validate(utm_params).as_dict()
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors())
            raise ValidationFailureError(f"invalid UTM parameters: {fields}") from exc

    async def _insert_custom(self, slug: str, fields: dict) -> UrlRecord:
        if await self._store.exists_by_slug(slug):
            raise SlugConflictError(slug)
        return await self._store.insert_url_record(slug=slug, **fields)

    async def _insert_generated(self, fields: dict) -> UrlRecord:
        max_attempts = self._settings.SLUG_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            slug = generate_slug(self._settings.SLUG_LENGTH)
            if await self._store.exists_by_slug(slug):
                SLUG_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Generated slug {slug} taken (attempt {attempt}/{max_attempts})")
                continue
            try:
                return await self._store.insert_url_record(slug=slug, **fields)
            except SlugConflictError:
                SLUG_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Generated slug {slug} lost insert race (attempt {attempt}/{max_attempts})")
        raise SlugGenerationExhaustedError(max_attempts)
