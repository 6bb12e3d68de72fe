"""Configuration for resumable upload streams."""

from bucketsink.config.config import ConfigManager
from bucketsink.config.sink_config import UploadStreamConfig

__all__ = ["ConfigManager", "UploadStreamConfig"]
