"""Write-only stream that uploads its contents as a resumable upload.

Bytes written to a ``ResumableUploadStream`` are buffered into fixed-size
chunks. Whenever a chunk is full and more data arrives, the full chunk is
sent to the backend before writing continues; closing the stream sends the
final, possibly partial, chunk together with the total object size.

Typical usage::

    with ResumableUploadStream.from_uri("gs://bucket/logs/run.jsonl") as stream:
        for line in lines:
            stream.write(line)
"""

from __future__ import annotations

import io
import logging
from typing import Any

import requests

from bucketsink.config.sink_config import UploadStreamConfig
from bucketsink.exceptions import UploadStreamError
from bucketsink.streaming.chunk_buffer import ChunkBuffer
from bucketsink.streaming.destination import ObjectDestination
from bucketsink.streaming.resumable_upload import ResumableUpload
from bucketsink.streaming.session_initiators import (
    SessionInitiator,
    make_session_initiator,
)
from bucketsink.streaming.upload_session import UploadSession, align_chunk_size

logger = logging.getLogger(__name__)


class ResumableUploadStream(io.RawIOBase):
    """A non-seekable, write-only stream backed by a resumable upload.

    No network traffic happens until the first chunk is full or the stream is
    closed. Every ``write`` that completes a chunk blocks while that chunk is
    delivered. ``close`` (explicitly, via ``with`` or on garbage collection)
    finalizes the upload exactly once.
    """

    def __init__(
        self,
        destination: ObjectDestination,
        initiator: SessionInitiator | None = None,
        config: UploadStreamConfig | None = None,
        http: requests.Session | None = None,
    ) -> None:
        """Initialize an upload stream.

        Args:
            destination: Object to write.
            initiator: Collaborator creating the upload endpoint. Chosen from
                ``config`` when omitted.
            config: Stream configuration; defaults are used when omitted.
            http: HTTP session to send requests with. When omitted the stream
                creates its own and closes it on finalization; an injected
                session is left open.
        """
        self._session: UploadSession | None = None
        self._http: requests.Session | None = None
        self._owns_http = False
        self._failed = False
        super().__init__()
        self.config = config or UploadStreamConfig()

        chunk_size = align_chunk_size(self.config.chunk_size)
        if chunk_size != self.config.chunk_size:
            logger.debug(
                "Adjusted chunk size from %d to %d bytes",
                self.config.chunk_size,
                chunk_size,
            )
        self._owns_http = http is None
        self._http = http if http is not None else requests.Session()
        self._driver = ResumableUpload(
            self._http,
            initiator or make_session_initiator(self.config),
            timeout=self.config.http_timeout,
            max_stalled_continuations=self.config.max_stalled_continuations,
        )
        self._shared_buffer = bytearray(chunk_size) if self.config.reuse_buffer else None
        self._session = UploadSession(destination=destination, chunk_size=chunk_size)

    @classmethod
    def from_uri(
        cls,
        uri: str,
        content_type: str | None = None,
        **kwargs: Any,
    ) -> ResumableUploadStream:
        """Open a stream writing to a ``gs://bucket/name`` URI."""
        config = kwargs.get("config") or UploadStreamConfig()
        destination = ObjectDestination.from_uri(
            uri, content_type=content_type or config.content_type
        )
        return cls(destination, **kwargs)

    @classmethod
    def from_bucket(
        cls,
        bucket: str,
        name: str,
        content_type: str | None = None,
        **kwargs: Any,
    ) -> ResumableUploadStream:
        """Open a stream writing object ``name`` in ``bucket``."""
        config = kwargs.get("config") or UploadStreamConfig()
        destination = ObjectDestination(
            bucket, name, content_type=content_type or config.content_type
        )
        return cls(destination, **kwargs)

    @property
    def session(self) -> UploadSession:
        if self._session is None:
            raise ValueError("upload stream was not initialized")
        return self._session

    @property
    def chunk_size(self) -> int:
        return self.session.chunk_size

    @property
    def position(self) -> int:
        return self.session.written_position

    @property
    def length(self) -> int:
        session = self.session
        return max(session.declared_length, session.written_position)

    @property
    def confirmed_offset(self) -> int:
        return self.session.confirmed_offset

    @property
    def endpoint(self) -> str | None:
        return self.session.endpoint

    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def writable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise io.UnsupportedOperation("read")

    def readinto(self, buffer: Any) -> int:
        raise io.UnsupportedOperation("readinto")

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        raise io.UnsupportedOperation("seek")

    def truncate(self, size: int | None = None) -> int:
        raise io.UnsupportedOperation("truncate")

    def tell(self) -> int:
        return self.position

    def declare_length(self, length: int) -> int:
        """Declare the expected object length.

        The declared length only ever grows: declaring less than has already
        been written (or declared) has no effect.

        Returns:
            The resulting declared length.
        """
        if length < 0:
            raise ValueError("length cannot be negative")
        return self.session.declare_length(length)

    def write(self, b: Any) -> int:
        """Append ``b`` to the upload.

        Args:
            b: Any bytes-like object.

        Returns:
            Number of bytes written, i.e. the byte size of ``b``.

        Raises:
            ValueError: If the stream has been finalized.
        """
        return self._write_view(memoryview(b).cast("B"))

    def write_from(self, buffer: Any, offset: int = 0, count: int | None = None) -> int:
        """Append ``count`` bytes of ``buffer`` starting at ``offset``.

        ``count`` is clamped to the bytes actually available after ``offset``,
        so the write never reads past the end of ``buffer``.

        Returns:
            Number of bytes written.
        """
        view = memoryview(buffer).cast("B")
        if offset < 0 or offset > len(view):
            raise ValueError(f"offset {offset} outside buffer of {len(view)} bytes")
        available = len(view) - offset
        if count is None or count > available:
            count = available
        if count < 0:
            raise ValueError("count cannot be negative")
        return self._write_view(view[offset : offset + count])

    def _write_view(self, view: memoryview) -> int:
        session = self.session
        if self.closed or session.finalized:
            raise ValueError("write to a finalized upload stream")
        if self._failed:
            raise UploadStreamError("write to an upload stream after a failed flush")
        if len(view) == 0:
            return 0

        cursor = 0
        while cursor < len(view):
            if session.current_chunk is None or session.current_chunk.is_full:
                self._start_new_chunk()

            written = session.current_chunk.write(view[cursor:])
            session.written_position += written
            cursor += written

        return cursor

    def _start_new_chunk(self) -> None:
        """Open an empty chunk, delivering the current one first if it is full."""
        session = self.session
        if session.current_chunk is not None:
            self._flush_if_full()
        session.current_chunk = ChunkBuffer(session.chunk_size, self._shared_buffer)

    def _flush_if_full(self) -> None:
        chunk = self.session.current_chunk
        if chunk is None or not chunk.is_full:
            return
        self._deliver(final=False)

    def _deliver(self, final: bool) -> None:
        try:
            self._driver.flush_chunk(self.session, final=final)
        except BaseException:
            self._failed = True
            raise

    def flush(self) -> None:
        """Deliver the current chunk if, and only if, it is full.

        Partial chunks are held back until more data fills them or the stream
        is closed.
        """
        if (
            self._session is None
            or self.closed
            or self._failed
            or self._session.finalized
        ):
            return
        self._flush_if_full()

    def close(self) -> None:
        """Finalize the upload and release the stream's HTTP resources.

        The last chunk (partial or empty) is sent with the total object size.
        Resources are released even if finalization fails, and the stream is
        marked closed either way, so a second ``close`` is a no-op and never
        re-sends data. A stream whose earlier flush failed is only released.
        """
        if self.closed:
            return
        try:
            if self._failed:
                logger.warning(
                    "Abandoning upload to %s after a failed flush",
                    self.session.destination.uri,
                )
            elif self._session is not None:
                self._finalize()
        finally:
            if self._owns_http and self._http is not None:
                self._http.close()
            super().close()

    def _finalize(self) -> None:
        session = self.session
        session.finalized = True

        if session.declared_length > session.written_position:
            logger.warning(
                "Declared length %d exceeds the %d bytes written to %s; "
                "finalizing with the written size",
                session.declared_length,
                session.written_position,
                session.destination.uri,
            )

        self._deliver(final=True)
        self._shared_buffer = None
        logger.info(
            "Upload finalized: object=%s total_bytes=%d chunks=%d",
            session.destination.uri,
            session.confirmed_offset,
            session.flush_count,
        )
