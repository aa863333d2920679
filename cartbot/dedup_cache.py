from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_MAX_ENTRIES = 10_000


class DedupCache:
    """Bounded set of recently seen inbound event ids.

    Entries expire after ``ttl_seconds``; when ``max_entries`` is reached the
    least recently inserted entry is evicted. Process-local: a restart forgets
    everything, which at worst lets one redelivered event through.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._max = int(max_entries)
        self._clock = clock
        self._lock = threading.Lock()
        # event id -> expiry timestamp, oldest first
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def _live(self, event_id: str, now: float) -> bool:
        expires_at = self._entries.get(event_id)
        if expires_at is None:
            return False
        if expires_at <= now:
            self._entries.pop(event_id, None)
            return False
        return True

    def _insert(self, event_id: str, now: float) -> None:
        self._entries.pop(event_id, None)
        self._entries[event_id] = now + self._ttl
        while len(self._entries) > self._max:
            self._entries.popitem(last=False)

    def seen(self, event_id: str) -> bool:
        with self._lock:
            return self._live(event_id, self._clock())

    def remember(self, event_id: str) -> None:
        with self._lock:
            self._insert(event_id, self._clock())

    def claim(self, event_id: str) -> bool:
        """Atomically remember event_id; False if it was already present."""
        with self._lock:
            now = self._clock()
            if self._live(event_id, now):
                return False
            self._insert(event_id, now)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
