"""
Token bucket rate limiting for feature triggers.

A bucket holds up to ``burst`` tokens and regains one token every
``refill_seconds``. Each trigger spends a token; when none is left the
trigger is dropped silently by the caller.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class TokenBucket:
    """Token bucket with fractional refill.

    Args:
        refill_seconds: Seconds needed to regain one token.
        burst: Maximum tokens held; the bucket starts full.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        refill_seconds: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if refill_seconds <= 0:
            raise ValueError("refill_seconds must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.refill_seconds = refill_seconds
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last
        if elapsed > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed / self.refill_seconds)
        self._last = now

    def allow(self) -> bool:
        """Spend one token if available and report whether the trigger may fire."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    @property
    def tokens(self) -> float:
        """Currently available tokens (after refill)."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens
