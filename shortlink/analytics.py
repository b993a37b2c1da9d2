"""Read-only analytics aggregation.

Analytics is expected to be up to date rather than fast, so it reads the
record and its click log straight from the store and never consults or
populates the slug cache.
"""

import logging
from dataclasses import dataclass

from shortlink.clock import Clock, utcnow
from shortlink.schemas import ClickEvent, UrlRecord
from shortlink.store import UrlStore

__all__ = ["AnalyticsReport", "AnalyticsService"]


@dataclass(frozen=True)
class AnalyticsReport:
    record: UrlRecord
    clicks: list[ClickEvent]
    is_expired: bool


class AnalyticsService:
    def __init__(
        self,
        store: UrlStore,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._logger = logger or logging.getLogger("shortlink")
        self._clock = clock

    async def get_analytics(self, slug: str) -> AnalyticsReport | None:
        record = await self._store.find_by_slug(slug)
        if record is None:
            self._logger.warning(f"Analytics not found for slug: {slug}")
            return None

        clicks = await self._store.list_click_events(record.id)
        return AnalyticsReport(
            record=record,
            clicks=clicks,
            is_expired=record.is_expired(self._clock()),
        )
