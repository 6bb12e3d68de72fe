"""Session initiation against the storage backend.

A session initiator turns an object destination into a resumable upload
endpoint: the URI that every chunk PUT of one upload is sent to. The upload
stream calls its initiator at most once per upload and never retries it.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

import requests

from bucketsink.config.sink_config import UploadStreamConfig
from bucketsink.exceptions import SessionInitiationError
from bucketsink.streaming.destination import ObjectDestination
from bucketsink.utils.http_errors import extract_error_detail

logger = logging.getLogger(__name__)


def _truncate_uri(uri: str) -> str:
    return uri[:80] + "..." if len(uri) > 80 else uri


class SessionInitiator(ABC):
    """Strategy interface for obtaining a resumable upload endpoint.

    Implementations must return an absolute URI accepting ``PUT`` requests
    with ``Content-Range`` headers, and raise on any failure.
    """

    @abstractmethod
    def initiate(
        self,
        destination: ObjectDestination,
        chunk_size: int,
        http: requests.Session,
    ) -> str:
        """Start an upload session and return its endpoint URI."""
        ...


class GCSSessionInitiator(SessionInitiator):
    """Initiates sessions directly against the GCS JSON upload API."""

    def __init__(
        self,
        upload_url: str,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the initiator.

        Args:
            upload_url: Base URL of the JSON upload API, e.g.
                ``https://storage.googleapis.com/upload/storage/v1``.
            access_token: OAuth2 bearer token; omitted from requests when unset.
            timeout: Per-request timeout in seconds.
        """
        self.upload_url = upload_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def initiate(
        self,
        destination: ObjectDestination,
        chunk_size: int,
        http: requests.Session,
    ) -> str:
        """Start a resumable session and return the ``Location`` header.

        Args:
            destination: Object to create.
            chunk_size: Chunk size the session will be driven with.
            http: Session used for the request.

        Returns:
            The resumable upload session URI.

        Raises:
            SessionInitiationError: If the API rejects the request or does not
                return a session URI.
        """
        headers = {
            "Content-Type": "application/json; charset=UTF-8",
            "X-Upload-Content-Type": destination.content_type,
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        metadata = {"name": destination.name, "contentType": destination.content_type}
        logger.info(
            "POST resumable session: bucket=%s name=%s chunk_size=%d",
            destination.bucket,
            destination.name,
            chunk_size,
        )
        response = http.post(
            f"{self.upload_url}/b/{destination.bucket}/o",
            params={"uploadType": "resumable", "name": destination.name},
            data=json.dumps(metadata).encode("utf-8"),
            headers=headers,
            timeout=self.timeout,
        )
        logger.info(
            "POST resumable session response: status=%d name=%s",
            response.status_code,
            destination.name,
        )
        if response.status_code not in (200, 201):
            detail = extract_error_detail(response) or "no detail"
            raise SessionInitiationError(
                f"Failed to initiate upload session for {destination.uri}: "
                f"HTTP {response.status_code} ({detail})"
            )

        session_uri = response.headers.get("Location")
        if not session_uri:
            raise SessionInitiationError(
                "Location header not found in session initiation response"
            )
        logger.info("Upload endpoint ready: %s", _truncate_uri(session_uri))
        return session_uri


class ApiSessionInitiator(SessionInitiator):
    """Obtains presigned resumable upload URLs from a backend API."""

    def __init__(
        self,
        api_url: str,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def initiate(
        self,
        destination: ObjectDestination,
        chunk_size: int,
        http: requests.Session,
    ) -> str:
        """Ask the API for a resumable upload URL for ``destination``.

        Raises:
            SessionInitiationError: If the API fails or returns no URL.
        """
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        logger.info(
            "GET resumable_upload_url: bucket=%s filepath=%s",
            destination.bucket,
            destination.name,
        )
        response = http.get(
            f"{self.api_url}/buckets/{destination.bucket}/resumable_upload_url",
            params={
                "filepath": destination.name,
                "content_type": destination.content_type,
                "chunk_size": chunk_size,
            },
            headers=headers,
            timeout=self.timeout,
        )
        logger.info(
            "GET resumable_upload_url response: status=%d filepath=%s",
            response.status_code,
            destination.name,
        )
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise SessionInitiationError(
                f"Failed to get upload URL: {extract_error_detail(response) or e}"
            ) from e

        try:
            url = response.json().get("url")
        except ValueError as e:
            raise SessionInitiationError("API returned a malformed response") from e
        if not url:
            raise SessionInitiationError("API did not return an upload URL")
        logger.info("Upload endpoint ready: %s", _truncate_uri(url))
        return url


def make_session_initiator(config: UploadStreamConfig) -> SessionInitiator:
    """Choose an initiator for ``config``.

    A configured ``api_url`` selects the backend API; otherwise sessions are
    started directly against GCS.
    """
    if config.api_url:
        return ApiSessionInitiator(
            config.api_url,
            access_token=config.access_token,
            timeout=config.http_timeout,
        )
    return GCSSessionInitiator(
        config.gcs_upload_url,
        access_token=config.access_token,
        timeout=config.http_timeout,
    )
