"""In-memory TTL cache for market-data responses."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    data: T
    stored_at: float


class TTLCache(Generic[T]):
    """Keyed cache whose entries expire ``ttl_seconds`` after being stored.

    Expired entries are dropped whenever a new value is stored, and when
    ``max_entries`` is set the oldest entries are evicted past that size.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] | None = None,
        max_entries: int | None = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, _Entry[T]] = {}

    def get(self, key: Hashable) -> T | None:
        """Return the cached value if present and not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: Hashable, data: T) -> None:
        now = self._clock()
        self.purge_expired(now)
        # Re-inserting moves the key to the end of the eviction order
        self._entries.pop(key, None)
        self._entries[key] = _Entry(data=data, stored_at=now)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                del self._entries[next(iter(self._entries))]

    def purge_expired(self, now: float | None = None) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if now - entry.stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self, key: Hashable | None = None) -> None:
        """Clear a specific key or all cached data."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


__all__ = ["TTLCache"]
