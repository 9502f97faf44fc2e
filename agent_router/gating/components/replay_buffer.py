"""
Fixed-capacity circular replay buffer with proportional prioritized sampling.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np


@dataclass
class Experience:
    state_key: str
    action_idx: int
    reward: float
    next_state_key: Optional[str]
    timestamp: float = field(default_factory=time.time)
    priority: float = 1.0


class PrioritizedReplayBuffer:
    """
    Circular buffer of Experience tuples.

    Once full, new experiences overwrite the oldest slot. ``sample`` draws
    without replacement with probability proportional to each stored
    priority, so high-error transitions are replayed more often.
    """

    def __init__(self, capacity: int, rng: Optional[np.random.Generator] = None):
        self.capacity = capacity
        self.rng = rng or np.random.default_rng()
        self._items: List[Experience] = []
        self._next_idx = 0
        self.total_pushed = 0

    def __len__(self) -> int:
        return len(self._items)

    def push(self, experience: Experience):
        if len(self._items) < self.capacity:
            self._items.append(experience)
        else:
            self._items[self._next_idx] = experience
        self._next_idx = (self._next_idx + 1) % self.capacity
        self.total_pushed += 1

    def sample(self, batch_size: int) -> List[Tuple[int, Experience]]:
        """Return up to ``batch_size`` distinct (slot, experience) pairs."""
        n = len(self._items)
        if n == 0:
            return []
        k = min(batch_size, n)
        priorities = np.fromiter((e.priority for e in self._items), dtype=np.float64, count=n)
        total = priorities.sum()
        if not np.isfinite(total) or total <= 0:
            idx = self.rng.choice(n, size=k, replace=False)
        else:
            idx = self.rng.choice(n, size=k, replace=False, p=priorities / total)
        return [(int(i), self._items[int(i)]) for i in idx]

    def update_priority(self, slot: int, priority: float):
        self._items[slot].priority = priority

    def clear(self):
        self._items.clear()
        self._next_idx = 0
        self.total_pushed = 0
