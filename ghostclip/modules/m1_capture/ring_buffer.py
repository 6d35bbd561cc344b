"""Fixed-capacity, drop-oldest sample queue for one recorded entity."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Generic, Iterator, List, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Single-writer queue; a push on a full buffer discards the oldest item first."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: Deque[T] = deque()
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped(self) -> int:
        """How many items were discarded by the drop-oldest policy."""
        return self._dropped

    def is_full(self) -> bool:
        return len(self._items) >= self._capacity

    def is_empty(self) -> bool:
        return not self._items

    def push(self, item: T) -> None:
        if self.is_full():
            self._items.popleft()
            self._dropped += 1
        self._items.append(item)

    def peek_oldest(self) -> Optional[T]:
        return self._items[0] if self._items else None

    def peek_newest(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def pop_oldest(self) -> Optional[T]:
        return self._items.popleft() if self._items else None

    def drain_all(self) -> List[T]:
        """Remove and return every item in enqueue order."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)
