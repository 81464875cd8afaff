from __future__ import annotations
import logging
from typing import Awaitable, Callable, Optional

from propsignal.core.models import PropertyPair
from propsignal.core.ttl_cache import CacheBackend, TTLCache

logger = logging.getLogger(__name__)


def cache_key(state: str, year: int) -> str:
    return f"{state}-{year}"


class StateAverageCache:
    def __init__(self, backend: Optional[CacheBackend[PropertyPair]] = None, ttl: float = 60 * 60 * 24):
        self._backend = backend if backend is not None else TTLCache(ttl=ttl)

    def get(self, state: str, year: int) -> Optional[PropertyPair]:
        # None means miss; the caller computes
        return self._backend.get(cache_key(state, year))

    def put(self, state: str, year: int, value: PropertyPair) -> None:
        self._backend.set(cache_key(state, year), value)

    async def get_or_compute(self, state: str, year: int, compute: Callable[[], Awaitable[PropertyPair]]) -> PropertyPair:
        key = cache_key(state, year)
        hit = self.get(state, year)
        if hit is not None:
            logger.debug("state average cache hit %s", key)
            return hit
        logger.debug("state average cache miss %s; aggregating", key)
        value = await compute()
        self.put(state, year, value)
        return value
