"""Slug resolution for redirects.

This module is the single entry point for "resolve a slug for redirect". It
composes the slug cache and the durable store, decides expiration on the
snapshot it looked up, and dispatches analytics writes without making the
caller wait for them.

Flow Diagram — resolve()
========================
::
    ┌─────────────┐
    │ resolve()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐   miss   ┌─────────────┐   miss / error / timeout
    │ Cache get   │ ───────► │ Store read  │ ─────────────► NOT_FOUND
    └──────┬──────┘          └──────┬──────┘
       hit │                        │ hit
           └───────────┬────────────┘
                       ▼
                ┌─────────────┐
                │ now > exp?  │
                └──────┬──────┘
          YES ┌────────┴────────┐ NO
              ▼                 ▼
    ┌──────────────────┐ ┌──────────────────┐
    │ invalidate cache │ │ refresh cache    │
    │ +expired_access  │ │ +click_count     │
    │ +click event     │ │ +click event     │
    │ EXPIRED          │ │ FOUND (UTM URL)  │
    └──────────────────┘ └──────────────────┘

How to Use
===========
**Step 1 — Build once per application**::
    service = ResolutionService(cache, store, settings, logger)

**Step 2 — Resolve per request**::
    result = await service.resolve(slug, referrer, user_agent)
    if result.status is ResolutionStatus.FOUND:
        return RedirectResponse(result.redirect_url)

**Step 3 — Drain on shutdown**::
    await service.drain()

Key Behaviours
===============
- Never raises: store failures and timeouts on the read degrade to
  NOT_FOUND and are logged.
- Store writes (counter increment, click event) run as unawaited asyncio
  tasks. They are at-most-once and best-effort; failures are logged, never
  retried and never surfaced.
- Cache refresh and invalidation are in-memory and happen exactly once per
  call, before the result is returned.
- The expiry decision uses the same snapshot the lookup produced; nothing
  is re-fetched between check and use.
- Only FOUND results carry UTM parameters on the URL. The cached and stored
  records keep the undecorated URL.

Classes:
    Resolution:  Tri-state outcome plus the record used to reach it.
    ResolutionService:  Cache-then-store resolution with side effects.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass

from prometheus_client import Counter, Histogram

from shortlink.cache import SlugCache
from shortlink.clock import Clock, utcnow
from shortlink.config import Settings
from shortlink.enums import CacheStatus, ResolutionStatus
from shortlink.schemas import UrlRecord
from shortlink.store import UrlStore
from shortlink.utm import append_utm_params

__all__ = ["Resolution", "ResolutionService"]

RESOLUTIONS_TOTAL = Counter(
    "shortlink_resolutions_total",
    "Slug resolutions by outcome and cache result",
    ["status", "cache"],
)
RESOLUTION_DURATION = Histogram(
    "shortlink_resolution_duration_seconds",
    "Time spent resolving a slug, excluding side effects",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
STORE_READ_FAILURES_TOTAL = Counter(
    "shortlink_store_read_failures_total",
    "Store reads on the resolution path that failed or timed out",
    ["reason"],
)
SIDE_EFFECT_FAILURES_TOTAL = Counter(
    "shortlink_side_effect_failures_total",
    "Fire-and-forget analytics writes that failed",
    ["operation"],
)


@dataclass(frozen=True)
class Resolution:
    status: ResolutionStatus
    record: UrlRecord | None = None

    @property
    def redirect_url(self) -> str | None:
        if self.status is ResolutionStatus.FOUND and self.record is not None:
            return self.record.original_url
        return None


class ResolutionService:
    def __init__(
        self,
        cache: SlugCache,
        store: UrlStore,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Clock = utcnow,
    ):
        self._cache = cache
        self._store = store
        self._settings = settings
        self._logger = logger or logging.getLogger("shortlink")
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def resolve(
        self,
        slug: str,
        referrer: str | None = None,
        user_agent: str | None = None,
    ) -> Resolution:
        start_time = time.perf_counter()

        record, hit = self._cache.get(slug)
        if record is None:
            record = await self._fetch_from_store(slug)
        cache_label = CacheStatus.HIT if hit else CacheStatus.MISS

        if record is None:
            result = Resolution(ResolutionStatus.NOT_FOUND)
        elif record.is_expired(self._clock()):
            result = self._handle_expired(record, referrer, user_agent)
        else:
            result = self._handle_found(record, referrer, user_agent)

        RESOLUTION_DURATION.observe(time.perf_counter() - start_time)
        RESOLUTIONS_TOTAL.labels(status=result.status, cache=cache_label).inc()
        self._logger.debug(f"Resolved {slug}: {result.status} (cache {cache_label})")
        return result

    async def drain(self) -> None:
        """Wait for every side effect dispatched so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _fetch_from_store(self, slug: str) -> UrlRecord | None:
        try:
            return await asyncio.wait_for(
                self._store.find_by_slug(slug),
                timeout=self._settings.STORE_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            STORE_READ_FAILURES_TOTAL.labels(reason="timeout").inc()
            self._logger.warning(
                f"Store lookup for {slug} timed out after {self._settings.STORE_TIMEOUT_SECONDS}s"
            )
        except Exception as exc:
            STORE_READ_FAILURES_TOTAL.labels(reason="error").inc()
            self._logger.error(f"Store lookup error for {slug}: {exc}")
        return None

    def _handle_expired(self, record: UrlRecord, referrer: str | None, user_agent: str | None) -> Resolution:
        self._cache.invalidate(record.slug)
        self._dispatch(
            self._store.increment_expired_access_count(record.slug),
            f"increment_expired_access_count({record.slug})",
        )
        self._dispatch(
            self._store.insert_click_event(record.id, referrer, user_agent),
            f"insert_click_event({record.slug})",
        )
        self._logger.info(f"Expired link accessed: {record.slug}")
        return Resolution(ResolutionStatus.EXPIRED, record)

    def _handle_found(self, record: UrlRecord, referrer: str | None, user_agent: str | None) -> Resolution:
        self._cache.put(record.slug, record)
        self._dispatch(
            self._store.increment_click_count(record.id),
            f"increment_click_count({record.slug})",
        )
        self._dispatch(
            self._store.insert_click_event(record.id, referrer, user_agent),
            f"insert_click_event({record.slug})",
        )
        decorated = record.model_copy(
            update={"original_url": append_utm_params(record.original_url, record.utm_params)}
        )
        return Resolution(ResolutionStatus.FOUND, decorated)

    def _dispatch(self, operation: Awaitable[object], description: str) -> None:
        task = asyncio.create_task(self._run_side_effect(operation, description))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_side_effect(self, operation: Awaitable[object], description: str) -> None:
        try:
            await operation
        except Exception as exc:
            SIDE_EFFECT_FAILURES_TOTAL.labels(operation=description.split("(", 1)[0]).inc()
            self._logger.error(f"Side effect {description} failed: {exc}")
