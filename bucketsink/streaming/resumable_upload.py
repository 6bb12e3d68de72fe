"""Chunk transfer over the resumable upload protocol.

This module delivers the bytes of one chunk to a resumable upload endpoint.
Each chunk is sent with a ``Content-Range`` header; the backend answers
``200``/``201`` when the upload (or chunk) is complete and ``308 Resume
Incomplete`` with a ``Range`` header naming the last byte it has persisted.
On a ``308`` the remainder of the chunk is re-sent starting exactly at the
first byte the backend does not have, so acknowledged bytes are never sent
twice and offsets never drift.
"""

from __future__ import annotations

import logging
import re

import requests

from bucketsink.const import (
    FINAL_SUCCESS_CODES,
    MAX_STALLED_CONTINUATIONS,
    RESUME_INCOMPLETE_CODE,
)
from bucketsink.exceptions import (
    EmptyChunkError,
    ProtocolViolationError,
    UploadStatusError,
)
from bucketsink.streaming.session_initiators import SessionInitiator
from bucketsink.streaming.upload_session import UploadSession
from bucketsink.utils.http_errors import extract_error_detail

logger = logging.getLogger(__name__)

_BYTES_RANGE_RE = re.compile(r"^\s*bytes=(\d+)-(\d+)\s*$", flags=re.IGNORECASE)


def build_content_range(start: int, end: int, total: int | None) -> str:
    """Format a ``Content-Range`` header value.

    Args:
        start: First byte offset of the payload (inclusive).
        end: Last byte offset of the payload (inclusive). ``end < start``
            denotes an empty payload.
        total: Total object size, or ``None`` while it is still unknown.

    Returns:
        ``bytes {start}-{end}/{total}``, with ``*`` for an unknown total and
        ``bytes */{total}`` for an empty payload.
    """
    total_part = "*" if total is None else str(total)
    if end < start:
        return f"bytes */{total_part}"
    return f"bytes {start}-{end}/{total_part}"


def parse_range_header(value: str) -> int:
    """Return the last persisted byte offset from a ``Range: bytes=0-N`` header.

    Raises:
        ProtocolViolationError: If the header is not of that form.
    """
    match = _BYTES_RANGE_RE.match(value)
    if match is None:
        raise ProtocolViolationError(
            f'Unexpected Range header {value!r}, expected "bytes=0-{{end}}"'
        )
    return int(match.group(2))


class ResumableUpload:
    """Drives the chunk PUT exchange for an upload session.

    The driver holds no upload state of its own: offsets, the endpoint and
    the chunk being sent all live on the ``UploadSession`` passed to
    ``flush_chunk``, which the owning stream never shares.
    """

    def __init__(
        self,
        http: requests.Session,
        initiator: SessionInitiator,
        timeout: float | None = None,
        max_stalled_continuations: int = MAX_STALLED_CONTINUATIONS,
    ):
        """Initialize the transfer driver.

        Args:
            http: HTTP session used for every request of the upload.
            initiator: Collaborator that creates the upload endpoint.
            timeout: Per-request timeout in seconds.
            max_stalled_continuations: Consecutive ``308`` responses without
                progress tolerated before the flush is abandoned.
        """
        self.http = http
        self.initiator = initiator
        self.timeout = timeout
        self.max_stalled_continuations = max_stalled_continuations

    def ensure_endpoint(self, session: UploadSession) -> str:
        """Acquire the session's upload endpoint on first use.

        The initiator is called at most once per session and its failures
        propagate unchanged.
        """
        if session.endpoint is None:
            logger.info(
                "Initiating upload session: object=%s chunk_size=%d",
                session.destination.uri,
                session.chunk_size,
            )
            session.endpoint = self.initiator.initiate(
                session.destination, session.chunk_size, self.http
            )
        return session.endpoint

    def flush_chunk(self, session: UploadSession, final: bool) -> None:
        """Deliver the session's current chunk to the backend.

        Sends the chunk, following ``308`` continuations until the backend
        has persisted every byte of it (and, when ``final``, has committed the
        object). Only then is ``confirmed_offset`` advanced and the chunk
        released.

        Args:
            session: Upload session owning the chunk and offsets.
            final: Whether this is the last chunk; the total object size is
                declared in the ``Content-Range`` header only in that case.

        Raises:
            EmptyChunkError: If a non-final flush has no bytes to send.
            ProtocolViolationError: If a ``308`` response lacks a usable
                ``Range`` header or continuations stop making progress.
            UploadStatusError: On any status other than 200, 201 or 308.
            requests.RequestException: On transport failures.
        """
        chunk = session.current_chunk
        length = session.chunk_fill
        if length == 0 and not final:
            raise EmptyChunkError("Refusing to flush an empty non-final chunk")

        endpoint = self.ensure_endpoint(session)
        base = session.confirmed_offset
        total = base + length if final else None
        payload = chunk.view() if chunk is not None else memoryview(b"")

        cursor = 0
        stalled = 0
        while True:
            response = self._put_range(endpoint, payload, base, cursor, length, total)
            status_code = response.status_code

            if status_code in FINAL_SUCCESS_CODES:
                break

            if status_code != RESUME_INCOMPLETE_CODE:
                logger.warning(
                    "Upload chunk failed: status=%d object=%s response=%s",
                    status_code,
                    session.destination.uri,
                    response.text[:200] if response.text else "",
                )
                raise UploadStatusError(status_code, extract_error_detail(response))

            accepted = self._accepted_offset(response, base, length)
            next_cursor = accepted - base
            if next_cursor >= length and not final:
                break

            if next_cursor > cursor:
                stalled = 0
            else:
                stalled += 1
                if stalled > self.max_stalled_continuations:
                    raise ProtocolViolationError(
                        f"Upload made no progress after {stalled} continuations "
                        f"at offset {accepted}"
                    )

            if next_cursor < length:
                logger.warning(
                    "Partial chunk accepted: object=%s accepted=%d resending=%d",
                    session.destination.uri,
                    accepted,
                    length - next_cursor,
                )
            cursor = next_cursor

        session.confirmed_offset += length
        session.flush_count += 1
        if chunk is not None:
            chunk.release()
        session.current_chunk = None
        logger.info(
            "Chunk uploaded: object=%s bytes=%d confirmed=%d final=%s",
            session.destination.uri,
            length,
            session.confirmed_offset,
            final,
        )

    def _put_range(
        self,
        endpoint: str,
        payload: memoryview,
        base: int,
        cursor: int,
        length: int,
        total: int | None,
    ) -> requests.Response:
        data = bytes(payload[cursor:length])
        headers = {
            "Content-Length": str(len(data)),
            "Content-Range": build_content_range(
                base + cursor, base + length - 1, total
            ),
        }
        logger.debug(
            "PUT chunk: bytes=%d range=%s final=%s",
            len(data),
            headers["Content-Range"],
            total is not None,
        )
        response = self.http.put(
            endpoint, headers=headers, data=data, timeout=self.timeout
        )
        logger.debug("PUT chunk response: status=%d", response.status_code)
        return response

    @staticmethod
    def _accepted_offset(response: requests.Response, base: int, length: int) -> int:
        """Number of bytes the backend reports as persisted for the whole object."""
        range_header = response.headers.get("Range")
        if range_header is None:
            raise ProtocolViolationError("Range header not found in 308 response.")

        accepted = parse_range_header(range_header) + 1
        if accepted < base or accepted > base + length:
            raise ProtocolViolationError(
                f"Range header {range_header!r} is outside the chunk "
                f"[{base}, {base + length})"
            )
        return accepted
