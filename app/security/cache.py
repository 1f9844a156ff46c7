"""Keyed time-to-live cache for decrypted values."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """
    Thread-safe cache whose entries expire ``ttl`` seconds after being set.

    Entries are immutable; a refresh replaces the entry under the lock, so a
    reader never sees a partially updated value. ``clock`` is injectable for
    tests.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, _Entry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = _Entry(value, now + self.ttl)

    def _sweep(self, now: float) -> None:
        """Drop every expired entry. Caller holds the lock."""
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]

    def get_or_compute(self, key: Hashable, compute: Callable[[], V]) -> V:
        """Return the live entry or compute, store and return a fresh one.

        ``compute`` runs outside the lock; two concurrent misses may both
        compute, and the later result wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None
