"""Binary min-heap used as the pathfinder's open set."""

from __future__ import annotations

import heapq
from typing import Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class PriorityQueue(Generic[T]):
    """Min-heap of ``(priority, item)`` pairs backed by :mod:`heapq`.

    ``heappush`` sifts the new entry up and ``heappop`` moves the last entry
    to the root and sifts it down. A monotonically increasing sequence number
    sits between priority and item so items never need to be comparable;
    callers should not rely on any ordering among equal priorities.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[float, int, T]] = []
        self._counter = 0

    def enqueue(self, item: T, priority: float) -> None:
        heapq.heappush(self._heap, (priority, self._counter, item))
        self._counter += 1

    def dequeue(self) -> Optional[Tuple[T, float]]:
        """Remove and return ``(item, priority)`` with the lowest priority."""
        if not self._heap:
            return None
        priority, _, item = heapq.heappop(self._heap)
        return item, priority

    def peek(self) -> Optional[Tuple[T, float]]:
        if not self._heap:
            return None
        priority, _, item = self._heap[0]
        return item, priority

    def is_empty(self) -> bool:
        return not self._heap

    def size(self) -> int:
        return len(self._heap)

    def __len__(self) -> int:
        return len(self._heap)
