"""Bounded least-recently-used cache for search results."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Dict, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass(slots=True)
class CacheEntry:
    value: Any
    last_access: int


class RecencyCache(Generic[K, V]):
    """Thread-safe key/value cache with capacity-triggered LRU eviction.

    Access times are ticks of a monotonically increasing counter, so two
    accesses never share a timestamp. Entries never expire by age.
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: Dict[K, CacheEntry] = {}
        self._clock = itertools.count()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Return the cached value and mark it as recently used."""
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return default
            entry.last_access = next(self._clock)
            return entry.value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, last_access=next(self._clock))
            if len(self._entries) > self.max_size:
                oldest = min(self._entries, key=lambda k: self._entries[k].last_access)
                del self._entries[oldest]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def last_access(self, key: K) -> Optional[int]:
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else entry.last_access
