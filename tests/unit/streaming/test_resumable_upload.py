from __future__ import annotations

import pytest
import requests

from bucketsink.exceptions import (
    EmptyChunkError,
    ProtocolViolationError,
    SessionInitiationError,
    UploadStatusError,
)
from bucketsink.streaming.chunk_buffer import ChunkBuffer
from bucketsink.streaming.resumable_upload import (
    ResumableUpload,
    build_content_range,
    parse_range_header,
)
from bucketsink.streaming.upload_session import UploadSession
from tests.unit.fakes import (
    CHUNK_256K,
    RequestInfo,
    ResponseAction,
    payload_of,
)


def _session_with_chunk(destination, data: bytes) -> UploadSession:
    session = UploadSession(destination=destination, chunk_size=CHUNK_256K)
    chunk = ChunkBuffer(CHUNK_256K)
    chunk.write(memoryview(data))
    session.current_chunk = chunk
    session.written_position = len(data)
    return session


@pytest.mark.parametrize(
    "start, end, total, expected",
    [
        (0, 99, None, "bytes 0-99/*"),
        (100, 199, 200, "bytes 100-199/200"),
        (200, 199, 200, "bytes */200"),
        (0, -1, 0, "bytes */0"),
    ],
)
def test_build_content_range(start, end, total, expected) -> None:
    assert build_content_range(start, end, total) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("bytes=0-0", 0),
        ("bytes=0-1048575", 1048575),
        ("Bytes=0-42", 42),
    ],
)
def test_parse_range_header(value: str, expected: int) -> None:
    assert parse_range_header(value) == expected


@pytest.mark.parametrize("value", ["", "0-10", "bytes 0-10", "bytes=0-", "bytes=a-b"])
def test_parse_range_header_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ProtocolViolationError):
        parse_range_header(value)


def test_empty_non_final_flush_is_refused(destination, initiator, transport) -> None:
    session = UploadSession(destination=destination, chunk_size=CHUNK_256K)
    driver = ResumableUpload(transport, initiator)

    with pytest.raises(EmptyChunkError):
        driver.flush_chunk(session, final=False)

    assert initiator.calls == []
    assert transport.request_log == []


def test_flush_advances_offsets_and_releases_chunk(
    destination, initiator, transport
) -> None:
    data = payload_of(CHUNK_256K)
    session = _session_with_chunk(destination, data)
    driver = ResumableUpload(transport, initiator)

    driver.flush_chunk(session, final=False)

    assert session.confirmed_offset == CHUNK_256K
    assert session.current_chunk is None
    assert session.flush_count == 1
    assert transport.last_object.finalized is False
    assert bytes(transport.last_object.data) == data


def test_existing_endpoint_is_reused(destination, initiator, transport) -> None:
    session = _session_with_chunk(destination, b"abc")
    session.endpoint = transport.create_session()
    driver = ResumableUpload(transport, initiator)

    driver.flush_chunk(session, final=True)

    assert initiator.calls == []
    assert transport.request_log[0].url == session.endpoint


def test_final_flush_commits_when_all_bytes_already_persisted(
    destination, initiator, transport
) -> None:
    data = payload_of(1000)
    session = _session_with_chunk(destination, data)
    first = {"done": False}

    def pre_request(info: RequestInfo) -> ResponseAction | None:
        if first["done"]:
            return None
        first["done"] = True
        transport.object_for(info.url).data.extend(info.payload)
        return ResponseAction(status=308, headers={"Range": "bytes=0-999"})

    transport.pre_request = pre_request
    ResumableUpload(transport, initiator).flush_chunk(session, final=True)

    assert [entry.content_range for entry in transport.request_log] == [
        "bytes 0-999/1000",
        "bytes */1000",
    ]
    assert transport.request_log[1].payload == b""
    assert transport.last_object.finalized is True
    assert session.confirmed_offset == 1000


def test_stalled_continuations_are_bounded(destination, initiator, transport) -> None:
    session = _session_with_chunk(destination, payload_of(CHUNK_256K))
    transport.pre_request = lambda info: ResponseAction(
        status=308, headers={"Range": "bytes=0-99"}
    )
    driver = ResumableUpload(transport, initiator, max_stalled_continuations=2)

    with pytest.raises(ProtocolViolationError, match="no progress"):
        driver.flush_chunk(session, final=False)

    ranges = [entry.content_range for entry in transport.request_log]
    assert ranges[0] == f"bytes 0-{CHUNK_256K - 1}/*"
    assert ranges[1:] == [f"bytes 100-{CHUNK_256K - 1}/*"] * 3
    assert session.confirmed_offset == 0


def test_range_beyond_chunk_is_a_protocol_violation(
    destination, initiator, transport
) -> None:
    session = _session_with_chunk(destination, payload_of(1000))
    transport.pre_request = lambda info: ResponseAction(
        status=308, headers={"Range": "bytes=0-999999"}
    )

    with pytest.raises(ProtocolViolationError, match="outside the chunk"):
        ResumableUpload(transport, initiator).flush_chunk(session, final=True)
    assert session.confirmed_offset == 0


def test_unexpected_status_carries_code_and_detail(
    destination, initiator, transport
) -> None:
    session = _session_with_chunk(destination, b"abc")
    transport.pre_request = lambda info: ResponseAction(
        status=404, body=b"No such upload"
    )

    with pytest.raises(UploadStatusError) as exc_info:
        ResumableUpload(transport, initiator).flush_chunk(session, final=True)

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == "No such upload"
    assert session.current_chunk is not None


def test_initiator_failure_propagates_without_any_put(
    destination, transport
) -> None:
    class FailingInitiator:
        def initiate(self, destination, chunk_size, http):
            raise SessionInitiationError("quota exceeded")

    session = _session_with_chunk(destination, b"abc")
    driver = ResumableUpload(transport, FailingInitiator())

    with pytest.raises(SessionInitiationError):
        driver.flush_chunk(session, final=True)

    assert session.endpoint is None
    assert transport.request_log == []


def test_transport_failure_propagates(destination, initiator, transport) -> None:
    transport.pre_request = lambda info: ResponseAction(status=0, drop=True)
    session = _session_with_chunk(destination, b"abc")

    with pytest.raises(requests.exceptions.ConnectionError):
        ResumableUpload(transport, initiator).flush_chunk(session, final=True)

    assert session.confirmed_offset == 0
