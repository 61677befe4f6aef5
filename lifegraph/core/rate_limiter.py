"""Per-user fixed-window budget of LLM calls.

A single process-wide :class:`RateLimiter` is shared by every feature that
calls the remote generation service, keyed by the authenticated user id.
State lives in memory; it resets on restart and is not shared between
replicas.
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from lifegraph.core.config import settings
from lifegraph.core.exceptions import RateLimitError
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    """Outcome of a single :meth:`RateLimiter.check_and_consume` call."""

    allowed: bool
    remaining: int
    reset_in_ms: int


@dataclass
class _Window:
    count: int
    window_start: float


class RateLimiter:
    """Fixed-window counter per user.

    Every call consumes one unit, including refused ones, so a client that
    keeps hammering stays refused until the window rolls over.
    """

    def __init__(
        self,
        max_calls: int = 30,
        window_seconds: float = 60.0,
        gc_probability: float = 0.01,
        clock: Callable[[], float] = time.monotonic,
        random_source: Callable[[], float] = random.random,
    ):
        """Initialize the limiter.

        Args:
            max_calls: Calls allowed per user per window
            window_seconds: Window duration
            gc_probability: Chance per call of evicting stale windows
            clock: Monotonic time source in seconds
            random_source: Returns a float in [0, 1)
        """
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.gc_probability = gc_probability
        self._clock = clock
        self._random = random_source
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, user_id: str) -> RateLimitStatus:
        """Consume one call for ``user_id`` and report whether it is allowed.

        Args:
            user_id: Authenticated user identifier

        Returns:
            RateLimitStatus with remaining budget and time to window reset
        """
        key = f"user:{user_id}"

        with self._lock:
            now = self._clock()

            window = self._windows.get(key)
            if window is None or now - window.window_start >= self.window_seconds:
                window = _Window(count=0, window_start=now)
                self._windows[key] = window

            window.count += 1
            allowed = window.count <= self.max_calls
            remaining = max(0, self.max_calls - window.count)
            reset_in_ms = max(0, int((window.window_start + self.window_seconds - now) * 1000))

            if self._random() < self.gc_probability:
                self._evict_stale(now)

        if not allowed:
            LOGGER.warning(
                "AI rate limit exceeded",
                extra={"user_id": user_id, "reset_in_ms": reset_in_ms},
            )

        return RateLimitStatus(allowed=allowed, remaining=remaining, reset_in_ms=reset_in_ms)

    def enforce(self, user_id: str) -> RateLimitStatus:
        """Consume one call or raise.

        Raises:
            RateLimitError: If the user's budget for the window is exhausted
        """
        status = self.check_and_consume(user_id)
        if not status.allowed:
            raise RateLimitError(status.reset_in_ms)
        return status

    def _evict_stale(self, now: float) -> None:
        # Caller holds the lock
        cutoff = self.window_seconds * 2
        stale = [key for key, window in self._windows.items() if now - window.window_start > cutoff]
        for key in stale:
            del self._windows[key]
        if stale:
            LOGGER.debug(f"Evicted {len(stale)} stale rate-limit windows")

    def __len__(self) -> int:
        return len(self._windows)


_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter, creating it from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = RateLimiter(
                    max_calls=settings.memory.rate_limit_max_calls,
                    window_seconds=settings.memory.rate_limit_window_seconds,
                    gc_probability=settings.memory.rate_limit_gc_probability,
                )
    return _rate_limiter
