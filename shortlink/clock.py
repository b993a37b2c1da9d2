"""Wall-clock source shared by the cache and the services.

Components take a ``Clock`` argument so tests can move time forward without
sleeping.
"""

import datetime
from collections.abc import Callable

__all__ = ["Clock", "utcnow"]

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)
