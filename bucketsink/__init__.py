"""Resumable, chunked uploads exposed as a write-only stream."""

from .config import ConfigManager, UploadStreamConfig
from .exceptions import (
    ChunkOverflowError,
    EmptyChunkError,
    ProtocolViolationError,
    SessionInitiationError,
    UploadStatusError,
    UploadStreamError,
)
from .streaming.destination import ObjectDestination
from .streaming.session_initiators import (
    ApiSessionInitiator,
    GCSSessionInitiator,
    SessionInitiator,
)
from .streaming.upload_stream import ResumableUploadStream

__version__ = "0.1.0"

__all__ = [
    "ApiSessionInitiator",
    "ChunkOverflowError",
    "ConfigManager",
    "EmptyChunkError",
    "GCSSessionInitiator",
    "ObjectDestination",
    "ProtocolViolationError",
    "ResumableUploadStream",
    "SessionInitiationError",
    "SessionInitiator",
    "UploadStatusError",
    "UploadStreamConfig",
    "UploadStreamError",
]
