from collections import deque
from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")

WORKING_MEMORY_CAPACITY = 7


class WorkingMemoryQueue(Generic[T]):
    """Fixed-capacity FIFO. Pushing onto a full queue drops the oldest item."""

    def __init__(self, capacity: int = WORKING_MEMORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: deque = deque(maxlen=capacity)

    def push(self, item: T) -> Optional[T]:
        """Append `item`; returns the item it pushed out, if the queue was full."""
        evicted = self._items[0] if len(self._items) == self.capacity else None
        self._items.append(item)
        return evicted

    def snapshot(self) -> List[T]:
        """Oldest-first copy; reading does not consume anything."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())
