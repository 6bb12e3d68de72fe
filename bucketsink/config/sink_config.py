"""Pydantic model for resumable upload stream configuration."""

from pydantic import BaseModel, Field

from bucketsink.const import (
    API_URL,
    DEFAULT_CONTENT_TYPE,
    GCS_UPLOAD_URL,
    HTTP_TIMEOUT_SECONDS,
    MAX_STALLED_CONTINUATIONS,
    PREFERRED_CHUNK_SIZE,
)


class UploadStreamConfig(BaseModel):
    """Configuration options for a resumable upload stream.

    Attributes:
        chunk_size: preferred chunk size in bytes, aligned up to 256 KiB.
        content_type: MIME type recorded on the uploaded object.
        reuse_buffer: when true, every chunk is filled into one preallocated
            buffer; otherwise a fresh buffer is allocated per chunk.
        http_timeout: timeout in seconds applied to each HTTP request.
        max_stalled_continuations: consecutive 308 responses without progress
            tolerated before a chunk flush is abandoned.
        api_url: backend API issuing upload endpoints; when unset, sessions are
            initiated directly against the GCS JSON API.
        gcs_upload_url: base URL of the GCS JSON upload API.
        access_token: bearer token sent with session initiation requests.
    """

    chunk_size: int = Field(default=PREFERRED_CHUNK_SIZE, gt=0)
    content_type: str = DEFAULT_CONTENT_TYPE
    reuse_buffer: bool = True
    http_timeout: float = Field(default=HTTP_TIMEOUT_SECONDS, gt=0)
    max_stalled_continuations: int = Field(default=MAX_STALLED_CONTINUATIONS, ge=0)
    api_url: str | None = API_URL
    gcs_upload_url: str = GCS_UPLOAD_URL
    access_token: str | None = None
