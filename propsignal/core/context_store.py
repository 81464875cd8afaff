from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from propsignal.core.models import UserContext
from propsignal.core.ttl_cache import CacheBackend, TTLCache

logger = logging.getLogger(__name__)


class ContextStore:
    """Session-keyed UserContext storage.

    Writes replace the whole context object, so concurrent turns of different
    sessions never share a mutable instance.
    """

    def __init__(self, backend: Optional[CacheBackend[UserContext]] = None, ttl: float = 60 * 60 * 2):
        self._backend = backend if backend is not None else TTLCache(ttl=ttl)

    def get(self, session_id: str) -> UserContext:
        ctx = self._backend.get(session_id)
        return ctx.model_copy(deep=True) if ctx is not None else UserContext()

    def update(self, session_id: str, partial: Dict[str, Any]) -> UserContext:
        # Shallow overlay; keys explicitly set to None clear the field
        current = self.get(session_id)
        merged = UserContext.model_validate({**current.model_dump(), **partial})
        self._backend.set(session_id, merged)
        logger.debug("context updated session=%s keys=%s", session_id, sorted(partial.keys()))
        return merged

    def reset(self, session_id: str) -> None:
        self._backend.delete(session_id)
        logger.info("context reset session=%s", session_id)
