"""Fixed-capacity byte buffer that accumulates one upload chunk."""

from __future__ import annotations

from bucketsink.exceptions import ChunkOverflowError


class ChunkBuffer:
    """Accumulates bytes for a single chunk, up to a fixed capacity.

    The backing storage is either supplied by the caller (so one allocation
    can be reused for every chunk of an upload) or allocated on construction.
    """

    def __init__(self, capacity: int, storage: bytearray | None = None) -> None:
        """Initialize an empty chunk.

        Args:
            capacity: Maximum number of bytes the chunk may hold.
            storage: Optional preallocated buffer of at least ``capacity``
                bytes. Its previous contents are overwritten.
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if storage is None:
            storage = bytearray(capacity)
        elif len(storage) < capacity:
            raise ValueError(
                f"storage of {len(storage)} bytes cannot hold a {capacity} byte chunk"
            )
        self._storage: bytearray | None = storage
        self.capacity = capacity
        self.fill = 0

    @property
    def room(self) -> int:
        return self.capacity - self.fill

    @property
    def is_full(self) -> bool:
        return self.fill == self.capacity

    def write(self, data: memoryview) -> int:
        """Copy as much of ``data`` as fits into the chunk.

        Args:
            data: Byte view to copy from.

        Returns:
            Number of bytes copied.

        Raises:
            ChunkOverflowError: If the fill counter is already past capacity.
        """
        if self._storage is None:
            raise ValueError("write to a released chunk")
        if self.fill > self.capacity:
            raise ChunkOverflowError(
                f"Chunk holds {self.fill} bytes, capacity is {self.capacity}"
            )
        count = min(len(data), self.room)
        self._storage[self.fill : self.fill + count] = data[:count]
        self.fill += count
        return count

    def view(self) -> memoryview:
        """Return a read-only view of the filled prefix of the chunk."""
        if self._storage is None:
            raise ValueError("view of a released chunk")
        return memoryview(self._storage)[: self.fill].toreadonly()

    def release(self) -> None:
        """Drop the reference to the backing storage."""
        self._storage = None
