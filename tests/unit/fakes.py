"""In-memory GCS-like resumable upload backend used by the unit tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import requests

from bucketsink.streaming.destination import ObjectDestination
from bucketsink.streaming.session_initiators import SessionInitiator

MiB = 1024 * 1024
CHUNK_256K = 256 * 1024


@dataclass
class RequestInfo:
    url: str
    content_range: str
    start: int | None
    end: int | None
    total: int | None
    payload: bytes


@dataclass
class ResponseAction:
    status: int
    headers: dict[str, str] | None = None
    body: bytes | None = None
    drop: bool = False


class UploadedObject:
    def __init__(self) -> None:
        self.data = bytearray()
        self.total_bytes: int | None = None
        self.finalized = False

    @property
    def uploaded_bytes(self) -> int:
        return len(self.data)


class FakeResponse:
    def __init__(
        self,
        status_code: int,
        headers: dict[str, str] | None = None,
        text: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self.text = text or ""

    def json(self) -> dict[str, Any]:
        raise ValueError("No JSON body")


def parse_content_range(
    content_range: str,
) -> tuple[int | None, int | None, int | None]:
    _, range_spec = content_range.split(" ", 1)
    range_part, total_part = range_spec.split("/")
    total = None if total_part == "*" else int(total_part)
    if range_part == "*":
        return None, None, total
    range_start, range_end = range_part.split("-")
    return int(range_start), int(range_end), total


class FakeResumableTransport:
    """Stands in for ``requests.Session`` against a resumable upload endpoint.

    Follows GCS semantics: non-final chunks are answered with ``308`` and a
    ``Range`` header covering everything persisted; the request completing the
    declared total is answered with ``200``.
    """

    def __init__(self) -> None:
        self.objects: dict[str, UploadedObject] = {}
        self.request_log: list[RequestInfo] = []
        self.pre_request: Callable[[RequestInfo], ResponseAction | None] | None = None
        self.accept_limit: Callable[[RequestInfo], int | None] | None = None
        self.closed = False
        self.base_url = "http://fake"

    def create_session(self) -> str:
        session_id = f"sess-{len(self.objects) + 1}"
        self.objects[session_id] = UploadedObject()
        return f"{self.base_url}/upload/{session_id}"

    def object_for(self, url: str) -> UploadedObject:
        return self.objects[url.rsplit("/", 1)[-1]]

    @property
    def last_object(self) -> UploadedObject:
        return list(self.objects.values())[-1]

    def _range_headers(self, uploaded: UploadedObject) -> dict[str, str]:
        if uploaded.uploaded_bytes == 0:
            return {}
        return {"Range": f"bytes=0-{uploaded.uploaded_bytes - 1}"}

    def put(
        self,
        url: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
        **_: Any,
    ) -> FakeResponse:
        headers = headers or {}
        payload = bytes(data or b"")
        content_range = headers.get("Content-Range", "")
        start, end, total = parse_content_range(content_range)
        info = RequestInfo(url, content_range, start, end, total, payload)
        self.request_log.append(info)

        if self.pre_request:
            action = self.pre_request(info)
            if action:
                if action.drop:
                    raise requests.exceptions.ConnectionError("Dropped connection")
                return FakeResponse(
                    action.status,
                    headers=action.headers,
                    text=action.body.decode() if action.body else "",
                )

        uploaded = self.object_for(url)
        if total is not None:
            uploaded.total_bytes = total

        if start is not None:
            if start != uploaded.uploaded_bytes:
                return FakeResponse(308, headers=self._range_headers(uploaded))
            limit = self.accept_limit(info) if self.accept_limit else None
            accepted = payload if limit is None else payload[:limit]
            uploaded.data.extend(accepted)

        if (
            uploaded.total_bytes is not None
            and uploaded.uploaded_bytes == uploaded.total_bytes
        ):
            uploaded.finalized = True
            return FakeResponse(200)

        return FakeResponse(308, headers=self._range_headers(uploaded))

    def close(self) -> None:
        self.closed = True


class FakeInitiator(SessionInitiator):
    def __init__(self, transport: FakeResumableTransport) -> None:
        self.transport = transport
        self.calls: list[tuple[ObjectDestination, int]] = []

    def initiate(
        self,
        destination: ObjectDestination,
        chunk_size: int,
        http: requests.Session,
    ) -> str:
        self.calls.append((destination, chunk_size))
        return self.transport.create_session()


def payload_of(size: int, seed: int = 0) -> bytes:
    """Deterministic test data of ``size`` bytes."""
    pattern = bytes((index * 31 + seed) % 251 for index in range(251))
    return (pattern * (size // 251 + 1))[:size]
