# robustunwrap/phase_unwrapping/record_queue.py
"""Growable FIFO of point records used as the per-bin queue of the region-growing unwrapper."""

import logging
from typing import List, NamedTuple, Optional

from ..config import DEFAULT_CAPACITY_INCREMENT, DEFAULT_QUEUE_CAPACITY
from ..errors import QueueOverflowError

logger = logging.getLogger(__name__)


class PointRecord(NamedTuple):
    """A voxel in flight: grid coordinates, flat offset and its unwrapped phase."""
    x: int
    y: int
    z: int
    p: int
    v: float


class RecordQueue:
    """
    FIFO queue backed by a circular buffer that grows in fixed increments.

    The buffer is not allocated until the first push. When a push would fill the
    buffer, capacity is raised by `capacity_increment` and the stored records are
    re-linearized so that the oldest record sits at offset 0: first the segment
    from the head to the end of the old buffer, then the segment from its start
    up to the tail.

    Args:
        initial_capacity (int): Capacity of the first allocation.
        capacity_increment (int): Number of slots added on each growth.
        max_capacity (int, optional): Growth past this capacity raises
            `QueueOverflowError`, as does a `MemoryError` during reallocation.
    """

    def __init__(
        self,
        initial_capacity: int = DEFAULT_QUEUE_CAPACITY,
        capacity_increment: int = DEFAULT_CAPACITY_INCREMENT,
        max_capacity: Optional[int] = None,
    ):
        if initial_capacity < 2:
            raise ValueError(f"initial_capacity must be at least 2, got {initial_capacity}")
        if capacity_increment < 1:
            raise ValueError(f"capacity_increment must be positive, got {capacity_increment}")
        self.capacity = initial_capacity
        self.capacity_increment = capacity_increment
        self.max_capacity = max_capacity
        self.growth_events = 0
        self._buffer: Optional[List[Optional[PointRecord]]] = None
        self._head = 0
        self._tail = 0

    def __len__(self) -> int:
        size = self._tail - self._head
        if size < 0:
            size += self.capacity
        return size

    def __bool__(self) -> bool:
        return self._head != self._tail

    @property
    def is_allocated(self) -> bool:
        return self._buffer is not None

    def push(self, record: PointRecord) -> None:
        if self._buffer is None:
            self._buffer = [None] * self.capacity
        # head == tail means empty, so the buffer never holds more than capacity - 1
        if len(self) + 1 == self.capacity:
            self._grow()
        self._buffer[self._tail] = record
        self._tail += 1
        if self._tail == self.capacity:
            self._tail = 0

    def pop(self) -> PointRecord:
        if self._head == self._tail:
            raise IndexError("pop from an empty RecordQueue")
        record = self._buffer[self._head]
        self._buffer[self._head] = None
        self._head += 1
        if self._head == self.capacity:
            self._head = 0
        return record

    def release(self) -> None:
        """Frees the buffer. Any records still queued are discarded."""
        self._buffer = None
        self._head = 0
        self._tail = 0

    def _grow(self) -> None:
        new_capacity = self.capacity + self.capacity_increment
        if self.max_capacity is not None and new_capacity > self.max_capacity:
            raise QueueOverflowError(
                f"Out of memory - point queue full at capacity {self.capacity} "
                f"(limit {self.max_capacity}).",
                capacity=self.capacity,
            )
        try:
            new_buffer: List[Optional[PointRecord]] = [None] * new_capacity
        except MemoryError as e:
            raise QueueOverflowError(
                f"Out of memory - could not grow point queue to {new_capacity} records.",
                capacity=self.capacity,
            ) from e

        size = len(self)
        if self._head <= self._tail:
            new_buffer[:size] = self._buffer[self._head:self._tail]
        else:
            above_head = self.capacity - self._head
            new_buffer[:above_head] = self._buffer[self._head:]
            new_buffer[above_head:size] = self._buffer[:self._tail]

        self._buffer = new_buffer
        self._head = 0
        self._tail = size
        self.capacity = new_capacity
        self.growth_events += 1
        logger.debug("Point queue grown to %d records", new_capacity)
