"""
Bounded in-memory cache of already-compressed data URIs.

Entries are evicted oldest-inserted first once capacity is exceeded. Reads
do not refresh an entry's position. All operations are guarded by a lock so
batch worker threads can share one instance.

The cache is only an optimization: dropping entries changes cost, never output.
"""
from __future__ import annotations

from collections import OrderedDict
import threading
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_CAPACITY = 100


class ImageCache(Generic[K, V]):
    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        on_evict: Optional[Callable[[K, V], None]] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._capacity = capacity
        self._on_evict = on_evict
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        """Insert or replace, then evict the oldest entries beyond capacity."""
        evicted = []
        with self._lock:
            if key in self._entries:
                # Re-inserting counts as new: move to the young end.
                del self._entries[key]
            self._entries[key] = value
            while len(self._entries) > self._capacity:
                evicted.append(self._entries.popitem(last=False))

        # Callback runs outside the lock so it may touch the cache.
        if self._on_evict is not None:
            for old_key, old_value in evicted:
                self._on_evict(old_key, old_value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
