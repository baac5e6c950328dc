"""
Fixed-capacity ring buffer.

Backed by a preallocated list (the arena) and a head index. Appending to a
full buffer overwrites the oldest entry, so history containers never grow
past their capacity and never need manual trimming.
"""

from typing import Generic, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar('T')


class RingBuffer(Generic[T]):

    def __init__(self, capacity: int, items: Optional[Iterable[T]] = None):
        if capacity <= 0:
            raise ValueError(f"RingBuffer capacity must be positive, got {capacity}")
        self._capacity = int(capacity)
        self._arena: List[Optional[T]] = [None] * self._capacity
        self._head = 0  # next write position
        self._size = 0
        if items is not None:
            self.extend(items)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, item: T) -> Optional[T]:
        """Append an item, returning the evicted oldest item when the buffer was full."""
        evicted = None
        if self._size == self._capacity:
            evicted = self._arena[self._head]
        else:
            self._size += 1
        self._arena[self._head] = item
        self._head = (self._head + 1) % self._capacity
        return evicted

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.append(item)

    def clear(self) -> None:
        self._arena = [None] * self._capacity
        self._head = 0
        self._size = 0

    def _start(self) -> int:
        return (self._head - self._size) % self._capacity

    def __iter__(self) -> Iterator[T]:
        start = self._start()
        for offset in range(self._size):
            yield self._arena[(start + offset) % self._capacity]

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._size > 0

    def __getitem__(self, index: int) -> T:
        if index < 0:
            index += self._size
        if not 0 <= index < self._size:
            raise IndexError("RingBuffer index out of range")
        return self._arena[(self._start() + index) % self._capacity]

    def is_full(self) -> bool:
        return self._size == self._capacity

    def to_list(self) -> List[T]:
        """Items ordered oldest to newest."""
        return list(self)

    def last(self, n: int) -> List[T]:
        if n <= 0:
            return []
        return self.to_list()[-n:]

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest items that still fit."""
        items = self.last(capacity)
        self.__init__(capacity, items)

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self._capacity}, size={self._size})"
