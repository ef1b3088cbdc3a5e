"""Fixed-window rate limiting.

Each bucket key maps to ``{count, window_end}``. The first call in a window
opens it; calls past ``max_count`` are denied until ``window_end``. Bursts of
up to ``2 * max_count`` can straddle a window boundary; that is the price of
O(1) state per key.

Expired windows are removed by ``sweep()``, which the server runs on a fixed
interval so the table stays bounded as new addresses and agents show up.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from chatr.exceptions import RateLimitExceeded

logger = logging.getLogger("chatr.rate_limiter")


@dataclass
class _Window:
    count: int
    window_end: float


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-bucket limits as ``(max_count, window_seconds)`` pairs."""
    message: Tuple[int, float] = (30, 60.0)
    register: Tuple[int, float] = (5, 3600.0)
    request: Tuple[int, float] = (300, 60.0)

    @classmethod
    def from_settings(cls, settings) -> "RateLimitPolicy":
        return cls(
            message=(settings.RATE_LIMIT_MESSAGES, settings.RATE_LIMIT_MESSAGES_WINDOW),
            register=(settings.RATE_LIMIT_REGISTER, settings.RATE_LIMIT_REGISTER_WINDOW),
            request=(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_REQUESTS_WINDOW),
        )


class FixedWindowRateLimiter:
    """Thread-safe fixed-window counters keyed by arbitrary strings.

    Usage::

        limiter = FixedWindowRateLimiter()
        if not limiter.allow(f"message:{agent_id}", 30, 60.0):
            ...
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def allow(self, key: str, max_count: int, window: float) -> bool:
        """Count one hit against ``key``. Returns False when the window is full."""
        with self._lock:
            now = self._clock()
            record = self._windows.get(key)
            if record is None or now >= record.window_end:
                self._windows[key] = _Window(count=1, window_end=now + window)
                return True
            if record.count >= max_count:
                return False
            record.count += 1
            return True

    def check(self, bucket: str, subject: str, limit: Tuple[int, float]) -> None:
        """Like ``allow`` but raises ``RateLimitExceeded`` on denial."""
        max_count, window = limit
        key = f"{bucket}:{subject}"
        if not self.allow(key, max_count, window):
            raise RateLimitExceeded(bucket, retry_after=self.retry_after(key))

    def retry_after(self, key: str) -> float:
        """Seconds until ``key``'s current window ends (0 if none is open)."""
        with self._lock:
            record = self._windows.get(key)
            if record is None:
                return 0.0
            return max(0.0, record.window_end - self._clock())

    def sweep(self) -> int:
        """Drop every expired window. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, w in self._windows.items() if now >= w.window_end]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug("Swept %d expired rate-limit windows", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
