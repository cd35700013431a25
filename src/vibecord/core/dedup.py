"""Suppression of repeated (user, channel, message id) deliveries."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

DEFAULT_DEDUP_WINDOW_SECONDS = 30.0

DedupKey = Tuple[str, str, str]


class MessageDeduplicator:
    """
    Remembers recently seen messages for a trailing window.

    Expired entries are swept on every insert.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._seen: Dict[DedupKey, float] = {}
        self._lock = threading.Lock()

    def is_duplicate(self, user_id: str, channel_id: str, message_id: str) -> bool:
        """Return True if the message was seen within the window, else record it."""
        key = (user_id, channel_id, message_id)
        now = self._clock()
        with self._lock:
            seen_at = self._seen.get(key)
            if seen_at is not None and now - seen_at <= self._window:
                return True
            self._seen[key] = now
            self._sweep(now)
        return False

    def _sweep(self, now: float) -> None:
        expired = [key for key, seen_at in self._seen.items() if now - seen_at > self._window]
        for key in expired:
            del self._seen[key]

    def __len__(self) -> int:
        return len(self._seen)
