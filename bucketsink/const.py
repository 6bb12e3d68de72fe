import os

API_URL = os.getenv("BUCKETSINK_API_URL")
GCS_UPLOAD_URL = os.getenv(
    "BUCKETSINK_GCS_UPLOAD_URL", "https://storage.googleapis.com/upload/storage/v1"
)

MIN_CHUNK_SIZE = 256 * 1024  # chunk sizes must be a multiple of 256 KiB
PREFERRED_CHUNK_SIZE = 5 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

HTTP_TIMEOUT_SECONDS = 60
MAX_STALLED_CONTINUATIONS = 5

FINAL_SUCCESS_CODES = {200, 201}
RESUME_INCOMPLETE_CODE = 308
