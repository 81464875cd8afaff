from __future__ import annotations
import hashlib
import time
from typing import Any, Callable, Dict, Generic, Optional, Protocol, Tuple, TypeVar

V = TypeVar("V")


def key_for(text: str) -> str:
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()


class CacheBackend(Protocol[V]):
    def get(self, key: str) -> Optional[V]: ...

    def set(self, key: str, value: V) -> None: ...

    def delete(self, key: str) -> None: ...


class TTLCache(Generic[V]):
    """In-process key/value store whose entries expire after `ttl` seconds.

    The default backing for session context, state averages and planner output.
    Swap in anything implementing `CacheBackend` for a shared deployment.
    """

    def __init__(self, ttl: float = 60 * 60 * 24, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._data: Dict[str, Tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        hit = self._data.get(key)
        if hit is None:
            return None
        if self._clock() - hit[0] >= self.ttl:
            self._data.pop(key, None)
            return None
        return hit[1]

    def set(self, key: str, value: V) -> None:
        self._data[key] = (self._clock(), value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._data)
