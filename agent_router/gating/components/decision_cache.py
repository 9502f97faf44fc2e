"""
Bounded LRU cache with time-to-live for exploit-mode routing decisions.
"""

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class DecisionCache(Generic[V]):
    """
    LRU + TTL cache.

    Expired entries are dropped lazily on lookup. ``hits`` and ``misses``
    count lookups over the cache's lifetime and survive ``clear()``.
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[V, float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        value, stored_at = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def put(self, key: Hashable, value: V):
        if key in self._entries:
            self._entries.move_to_end(key)
        while len(self._entries) >= self.max_size and key not in self._entries:
            self._entries.popitem(last=False)
        self._entries[key] = (value, self._clock())

    def discard(self, key: Hashable):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()

    def reset_counters(self):
        self.hits = 0
        self.misses = 0
