"""Bounded in-memory caches.

This module provides:
- LRUCache: fixed capacity, evicts the least recently used entry
- TTLCache: fixed capacity plus per-entry expiry, evicts by insertion order

Both caches are process-local and only ever hold data that can be
rebuilt from the stores, so losing them is harmless.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """Least-recently-used cache with a fixed capacity."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._data: OrderedDict[K, V] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def get(self, key: K) -> V | None:
        """Return the cached value and mark it as most recently used."""
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: K, value: V) -> None:
        """Insert or replace a value, evicting the oldest entry when full."""
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        if len(self._data) > self._capacity:
            self._data.popitem(last=False)

    def delete(self, key: K) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()


class TTLCache(Generic[K, V]):
    """Cache whose entries expire after a fixed time-to-live.

    Expired entries are dropped lazily on ``get``/``has`` or in bulk by
    ``cleanup``. When the cache is full, ``set`` evicts the entry that was
    inserted first, whether or not it is still fresh.
    """

    def __init__(
        self,
        capacity: int,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of entries.
            ttl: Time-to-live of each entry in seconds.
            clock: Monotonic time source, injectable for tests.
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._capacity = capacity
        self._ttl = ttl
        self._clock = clock
        self._data: OrderedDict[K, tuple[V, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def _expired(self, expires_at: float) -> bool:
        return self._clock() >= expires_at

    def get(self, key: K) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._data[key]
            return None
        return value

    def has(self, key: K) -> bool:
        return self.get(key) is not None

    def set(self, key: K, value: V) -> None:
        # Re-setting a key refreshes its expiry but keeps its insertion slot.
        if key not in self._data and len(self._data) >= self._capacity:
            self._data.popitem(last=False)
        self._data[key] = (value, self._clock() + self._ttl)

    def delete(self, key: K) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()

    def cleanup(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        stale = [key for key, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in stale:
            del self._data[key]
        return len(stale)
