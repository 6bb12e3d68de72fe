"""Resolve upload stream configuration from defaults, environment, and overrides."""

from __future__ import annotations

import logging
import os
from typing import Any

from bucketsink.config.helpers import parse_bytes
from bucketsink.config.sink_config import UploadStreamConfig

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "chunk_size": "BUCKETSINK_CHUNK_SIZE",
    "content_type": "BUCKETSINK_CONTENT_TYPE",
    "reuse_buffer": "BUCKETSINK_REUSE_BUFFER",
    "http_timeout": "BUCKETSINK_HTTP_TIMEOUT",
    "max_stalled_continuations": "BUCKETSINK_MAX_STALLED_CONTINUATIONS",
    "api_url": "BUCKETSINK_API_URL",
    "gcs_upload_url": "BUCKETSINK_GCS_UPLOAD_URL",
    "access_token": "BUCKETSINK_ACCESS_TOKEN",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class ConfigManager:
    """Build effective upload stream configuration from env and explicit overrides."""

    def __init__(self, base_config: UploadStreamConfig | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            base_config: Configuration to start from. Defaults are used when
                omitted.
        """
        self.base_config = base_config or UploadStreamConfig()

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Unparseable values are skipped with a warning.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            try:
                if field_name == "chunk_size":
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name == "max_stalled_continuations":
                    overrides[field_name] = int(env_value)
                elif field_name == "http_timeout":
                    overrides[field_name] = float(env_value)
                elif field_name == "reuse_buffer":
                    overrides[field_name] = env_value.lower() in YES_CONFIRMATION
                else:
                    overrides[field_name] = env_value
            except ValueError:
                logger.warning(
                    "Ignoring invalid value for %s: %r", env_var_name, env_value
                )

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> UploadStreamConfig:
        """Resolve the effective configuration for one upload stream.

        Args:
            overrides: Optional explicit overrides; ``None`` values are ignored
                so unset CLI options do not mask the environment.

        Returns:
            The resolved ``UploadStreamConfig``.
        """
        merged_config = self.base_config.model_copy(
            update=self._read_env_overrides()
        )

        if overrides:
            explicit = {key: val for key, val in overrides.items() if val is not None}
            merged_config = merged_config.model_copy(update=explicit)

        return UploadStreamConfig.model_validate(merged_config.model_dump())
