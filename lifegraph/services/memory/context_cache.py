"""Per-user TTL cache for rendered memory context."""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from lifegraph.core.config import settings
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ContextCache:
    """In-process cache keyed by (user_id, variant).

    Entries expire after ``ttl_seconds``; an extraction run for a user
    invalidates every variant cached for that user.
    """

    def __init__(self, ttl_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, variant: str = "full") -> Optional[Any]:
        key = (user_id, variant)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, user_id: str, value: Any, variant: str = "full") -> None:
        with self._lock:
            self._entries[(user_id, variant)] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            stale = [key for key in self._entries if key[0] == user_id]
            for key in stale:
                del self._entries[key]
        if stale:
            LOGGER.debug("Invalidated memory context cache", extra={"user_id": user_id})

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Global context cache instance
context_cache = ContextCache(ttl_seconds=settings.memory.context_cache_ttl_seconds)
