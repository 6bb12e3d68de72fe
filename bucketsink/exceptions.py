"""Exception classes for the resumable upload stream."""


class UploadStreamError(Exception):
    """Base error for resumable upload streams."""


class ProtocolViolationError(UploadStreamError):
    """Raised when the backend answers outside the resumable upload protocol."""


class UploadStatusError(UploadStreamError):
    """Raised when a chunk PUT returns a status the protocol does not allow."""

    def __init__(self, status_code: int, detail: str | None = None):
        """Initialize UploadStatusError with the offending status code.

        Args:
            status_code: HTTP status returned by the upload endpoint.
            detail: Optional error detail extracted from the response body.
        """
        message = f"Upload failed with HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ChunkOverflowError(UploadStreamError):
    """Raised when a chunk would hold more bytes than the chunk size."""


class EmptyChunkError(UploadStreamError):
    """Raised when an empty chunk is flushed outside finalization."""


class SessionInitiationError(UploadStreamError):
    """Raised when an upload endpoint cannot be obtained."""
