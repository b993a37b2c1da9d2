"""Bounded, TTL-aware in-memory cache of slug to URL record.

The cache is an optimization layer only. It never reaches into the store:
a miss is reported to the caller, which decides where to read from. Any
ambiguity resolves by deferring to the store.

Flow Diagram — get(slug)
========================
::
    ┌─────────────┐
    │  get(slug)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Entry       │──── NO ───► (None, False)
    │ present?    │
    └──────┬──────┘
           ▼ YES
    ┌─────────────┐
    │ Past cache  │──── YES ──► drop entry, (None, False)
    │ deadline?   │
    └──────┬──────┘
           ▼ NO
    ┌─────────────┐
    │ Restart TTL │
    │ move to MRU │
    └──────┬──────┘
           ▼
    (record, True)

TTL Rule
========
::
    ttl = default_ttl                                  no expiration_date
    ttl = min(default_ttl, expiration_date - now)      otherwise

An entry is therefore never served past the record's real expiration purely
from cache staleness, while the default TTL still bounds how long an
out-of-band edit can stay invisible. The same rule is reapplied when a read
restarts an entry's lifetime.

Key Behaviours
===============
- Least-recently-used eviction once ``max_items`` is exceeded.
- ``get`` refreshes recency and lifetime ("read extends lifetime").
- A non-positive TTL stores nothing and drops any existing entry.
- Every operation holds one ``threading.Lock``; get/put/invalidate are
  safe from any number of concurrent callers and never block on I/O.

Classes:
    CacheEntry:  Cached record with its effective TTL and deadline.
    SlugCache:  The cache itself.
"""

import datetime
import threading
from collections import OrderedDict
from dataclasses import dataclass

from prometheus_client import Counter, Gauge

from shortlink.clock import Clock, utcnow
from shortlink.config import Settings
from shortlink.schemas import UrlRecord

__all__ = ["CacheEntry", "SlugCache"]

CACHE_HITS_TOTAL = Counter(
    "shortlink_cache_hits_total",
    "Total slug cache hits",
)
CACHE_MISSES_TOTAL = Counter(
    "shortlink_cache_misses_total",
    "Total slug cache misses",
)
CACHE_EVICTIONS_TOTAL = Counter(
    "shortlink_cache_evictions_total",
    "Slug cache entries removed before being read again",
    ["reason"],
)
CACHE_SIZE = Gauge(
    "shortlink_cache_size",
    "Current number of slug cache entries",
)


@dataclass(frozen=True)
class CacheEntry:
    record: UrlRecord
    ttl: datetime.timedelta
    expires_at: datetime.datetime


class SlugCache:
    def __init__(
        self,
        max_items: int = 1000,
        default_ttl: datetime.timedelta = datetime.timedelta(minutes=5),
        clock: Clock = utcnow,
    ):
        assert max_items > 0, f"max_items must be positive, got {max_items!r}"
        assert default_ttl > datetime.timedelta(0), f"default_ttl must be positive, got {default_ttl!r}"
        self._max_items = max_items
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "SlugCache":
        return cls(
            max_items=settings.CACHE_MAX_ITEMS,
            default_ttl=settings.cache_default_ttl,
            clock=clock,
        )

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def default_ttl(self) -> datetime.timedelta:
        return self._default_ttl

    def compute_ttl(self, record: UrlRecord, now: datetime.datetime) -> datetime.timedelta:
        if record.expiration_date is None:
            return self._default_ttl
        return min(self._default_ttl, record.expiration_date - now)

    def get(self, slug: str) -> tuple[UrlRecord | None, bool]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(slug)
            if entry is None:
                CACHE_MISSES_TOTAL.inc()
                return None, False

            ttl = self.compute_ttl(entry.record, now)
            if now >= entry.expires_at or ttl <= datetime.timedelta(0):
                del self._entries[slug]
                CACHE_EVICTIONS_TOTAL.labels(reason="ttl").inc()
                CACHE_SIZE.set(len(self._entries))
                CACHE_MISSES_TOTAL.inc()
                return None, False

            self._entries[slug] = CacheEntry(record=entry.record, ttl=ttl, expires_at=now + ttl)
            self._entries.move_to_end(slug)
            CACHE_HITS_TOTAL.inc()
            return entry.record, True

    def put(self, slug: str, record: UrlRecord) -> bool:
        """Insert or refresh ``slug``. Returns False when nothing was stored."""
        now = self._clock()
        ttl = self.compute_ttl(record, now)
        with self._lock:
            if ttl <= datetime.timedelta(0):
                self._entries.pop(slug, None)
                CACHE_SIZE.set(len(self._entries))
                return False

            self._entries[slug] = CacheEntry(record=record, ttl=ttl, expires_at=now + ttl)
            self._entries.move_to_end(slug)
            while len(self._entries) > self._max_items:
                self._entries.popitem(last=False)
                CACHE_EVICTIONS_TOTAL.labels(reason="capacity").inc()
            CACHE_SIZE.set(len(self._entries))
            return True

    def invalidate(self, slug: str) -> bool:
        with self._lock:
            removed = self._entries.pop(slug, None) is not None
            CACHE_SIZE.set(len(self._entries))
            return removed

    def peek(self, slug: str) -> CacheEntry | None:
        """Return the raw entry without touching recency or lifetime."""
        with self._lock:
            return self._entries.get(slug)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            CACHE_SIZE.set(0)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max": self._max_items,
                "ttl_ms": int(self._default_ttl.total_seconds() * 1000),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, slug: object) -> bool:
        with self._lock:
            return slug in self._entries
