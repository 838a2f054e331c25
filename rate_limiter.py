from __future__ import annotations
import logging
import threading
import time
from typing import Callable

from config import AI_MIN_CALL_INTERVAL


logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between outbound AI calls.

    A call that comes too early is delayed, never rejected. Clock and sleep
    are injectable so tests can run against a fake clock.
    """

    def __init__(
        self,
        min_interval: float = AI_MIN_CALL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self.last_call_at: float | None = None

    def wait(self) -> float:
        """Block until the next call is allowed; returns the time waited."""
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self.last_call_at is not None:
                remaining = self.min_interval - (now - self.last_call_at)
                if remaining > 0:
                    logger.info("Rate limiter active; waiting %.2fs before next AI call", remaining)
                    self._sleep(remaining)
                    waited = remaining
                    now = self._clock()
            self.last_call_at = now
            return waited

    def reset(self) -> None:
        with self._lock:
            self.last_call_at = None


_shared: RateLimiter | None = None


def get_shared_limiter() -> RateLimiter:
    """Process-wide limiter for the vision/analysis endpoint."""
    global _shared
    if _shared is None:
        _shared = RateLimiter()
    return _shared
