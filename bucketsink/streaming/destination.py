"""Destination identity of an uploaded object."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

from bucketsink.const import DEFAULT_CONTENT_TYPE

GCS_URI_SCHEME = "gs"


@dataclass(frozen=True)
class ObjectDestination:
    """Bucket, object name and content type of the object being written."""

    bucket: str
    name: str
    content_type: str = DEFAULT_CONTENT_TYPE

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ValueError("bucket cannot be empty")
        if not self.name:
            raise ValueError("object name cannot be empty")

    @classmethod
    def from_uri(
        cls, uri: str, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> ObjectDestination:
        """Build a destination from a ``gs://bucket/path/to/object`` URI.

        Args:
            uri: Object URI.
            content_type: MIME type for the object.

        Returns:
            The parsed destination.

        Raises:
            ValueError: If the URI is not a ``gs://`` object URI.
        """
        parsed = urlparse(uri)
        if parsed.scheme != GCS_URI_SCHEME:
            raise ValueError(f"Expected a gs:// URI, got {uri!r}")
        return cls(
            bucket=parsed.netloc,
            name=parsed.path.lstrip("/"),
            content_type=content_type,
        )

    @property
    def uri(self) -> str:
        return f"{GCS_URI_SCHEME}://{self.bucket}/{self.name}"
