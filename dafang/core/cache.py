"""Bounded LRU cache shared by the formation detector and the simulation agent."""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

from .. import config

MISSING: Any = object()


class BoundedCache:
    """LRU map with a fixed capacity.

    ``get`` on a hit moves the entry to most-recently-used; ``set`` inserts or
    refreshes and evicts the least-recently-used entry once the capacity is
    exceeded. All operations hold one lock so playouts on worker threads can
    share an instance.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._data: OrderedDict[Hashable, Any] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self.hits += 1
                return self._data[key]
            self.misses += 1
            return default

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._put(key, value)

    def _put(self, key: Hashable, value: Any) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        while len(self._data) > self.capacity:
            self._data.popitem(last=False)
            self.evictions += 1

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Serialised get/compute/set. ``compute`` must not touch this cache."""
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self.hits += 1
                return self._data[key]
            self.misses += 1
            value = compute()
            self._put(key, value)
            return value

    def keys(self) -> list[Hashable]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._data.keys())

    def __contains__(self, key: Hashable) -> bool:
        # Membership does not count as a use.
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "entries": len(self._data),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / lookups if lookups else 0.0,
            }


@dataclass
class CacheContext:
    """The caches one game hands to every component that memoises work."""

    formations: BoundedCache = field(
        default_factory=lambda: BoundedCache(config.FORMATION_CACHE_SIZE)
    )
    scores: BoundedCache = field(
        default_factory=lambda: BoundedCache(config.SCORE_CACHE_SIZE)
    )

    def clear(self) -> None:
        self.formations.clear()
        self.scores.clear()

    def stats(self) -> dict[str, Any]:
        return {"formations": self.formations.stats(), "scores": self.scores.stats()}
