"""In-memory TTL cache for Jira responses and aggregated snapshots."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

DEFAULT_TTL = 120


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return self.ttl <= 0 or now - self.created_at > self.ttl


class TTLCache:
    """Key/value store whose entries expire ``ttl`` seconds after ``set``.

    Expiry is lazy: an expired entry stays in memory until the next read of
    its key, which deletes it. There is no size bound. A single lock guards
    the store so concurrent board fetches can share one instance.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._store = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._store[key]
                return default
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        with self._lock:
            self._store[key] = CacheEntry(value=value, created_at=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __contains__(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        """Number of stored entries, expired ones included until read."""
        with self._lock:
            return len(self._store)
