"""Shared request pacing for store and provider calls."""

import logging
import threading
import time
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Minimum spacing between call starts plus a bound on concurrent calls."""

    def __init__(
        self,
        min_interval_ms: int = 250,
        max_concurrent: int = 2,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.min_interval = max(min_interval_ms, 0) / 1000.0
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._next_start = 0.0

    def _reserve_start(self) -> float:
        with self._lock:
            now = self._clock()
            start = max(now, self._next_start)
            self._next_start = start + self.min_interval
        return start - now

    def schedule(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self._slots:
            delay = self._reserve_start()
            if delay > 0:
                logger.debug("Rate limiter waiting %.3fs before %s", delay, getattr(fn, "__name__", fn))
                self._sleep(delay)
            return fn(*args, **kwargs)
