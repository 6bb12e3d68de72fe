"""State of one in-progress resumable upload."""

from __future__ import annotations

from dataclasses import dataclass

from bucketsink.const import MIN_CHUNK_SIZE
from bucketsink.streaming.chunk_buffer import ChunkBuffer
from bucketsink.streaming.destination import ObjectDestination


def align_chunk_size(preferred_chunk_size: int) -> int:
    """Round a preferred chunk size up to a valid multiple of 256 KiB.

    Args:
        preferred_chunk_size: Chunk size requested by the caller, in bytes.

    Returns:
        The smallest multiple of ``MIN_CHUNK_SIZE`` that is at least
        ``preferred_chunk_size`` and never below ``MIN_CHUNK_SIZE``.
    """
    if preferred_chunk_size <= MIN_CHUNK_SIZE:
        return MIN_CHUNK_SIZE
    multiples = -(-preferred_chunk_size // MIN_CHUNK_SIZE)
    return multiples * MIN_CHUNK_SIZE


@dataclass
class UploadSession:
    """Mutable offsets and buffers of a single upload.

    Owned by exactly one upload stream and passed by reference to the
    transfer driver.

    Attributes:
        destination: Object being written.
        chunk_size: Aligned chunk size, fixed for the session.
        endpoint: Upload URI, acquired lazily on the first flush.
        written_position: Bytes accepted from the caller.
        declared_length: Largest of ``written_position`` and any declared length.
        confirmed_offset: Bytes acknowledged by the backend for completed chunks.
        current_chunk: Chunk being filled, or ``None`` when no chunk is open.
        finalized: Set once finalization has been requested.
        flush_count: Number of chunks delivered so far.
    """

    destination: ObjectDestination
    chunk_size: int
    endpoint: str | None = None
    written_position: int = 0
    declared_length: int = 0
    confirmed_offset: int = 0
    current_chunk: ChunkBuffer | None = None
    finalized: bool = False
    flush_count: int = 0

    @property
    def chunk_fill(self) -> int:
        return self.current_chunk.fill if self.current_chunk is not None else 0

    def declare_length(self, length: int) -> int:
        """Raise the declared length; never lowers it below the bytes written."""
        self.declared_length = max(self.declared_length, self.written_position, length)
        return self.declared_length
