"""Error taxonomy shared by the pipeline and the HTTP layer."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    # Invalid input, rejected before a job exists
    INVALID_URL = "invalid_url"
    UNRESOLVABLE_ID = "unresolvable_id"

    # Catalog lookup
    PROVIDER_NOT_FOUND = "provider_not_found"
    PROVIDER_PRIVATE = "provider_private"
    PROVIDER_ERROR = "provider_error"
    NO_SUITABLE_FORMAT = "no_suitable_format"

    # Inside a running pipeline
    PIPELINE_IO = "pipeline_io"
    TRANSCODE_ERROR = "transcode_error"

    NOT_FOUND = "not_found"


# Stable, user-facing messages. Internal detail never goes here.
PUBLIC_MESSAGES = {
    ErrorKind.INVALID_URL: "Invalid YouTube URL",
    ErrorKind.UNRESOLVABLE_ID: "Could not extract video ID from URL",
    ErrorKind.PROVIDER_NOT_FOUND: "Video not found or unavailable",
    ErrorKind.PROVIDER_PRIVATE: "This video is private",
    ErrorKind.PROVIDER_ERROR: "Failed to fetch video information",
    ErrorKind.NO_SUITABLE_FORMAT: "No suitable audio format found",
    ErrorKind.PIPELINE_IO: "Download failed",
    ErrorKind.TRANSCODE_ERROR: "Conversion failed",
    ErrorKind.NOT_FOUND: "Not found",
}

HTTP_STATUS = {
    ErrorKind.INVALID_URL: 400,
    ErrorKind.UNRESOLVABLE_ID: 400,
    ErrorKind.PROVIDER_NOT_FOUND: 404,
    ErrorKind.PROVIDER_PRIVATE: 403,
    ErrorKind.PROVIDER_ERROR: 500,
    ErrorKind.NO_SUITABLE_FORMAT: 400,
    ErrorKind.PIPELINE_IO: 500,
    ErrorKind.TRANSCODE_ERROR: 500,
    ErrorKind.NOT_FOUND: 404,
}

INVALID_INPUT = {ErrorKind.INVALID_URL, ErrorKind.UNRESOLVABLE_ID}


class ServiceError(Exception):
    """Raised when a request or a pipeline run hits a known error condition.

    ``detail`` carries the underlying message (provider text, ffmpeg stderr)
    for diagnostics; only ``public_message`` is safe to show untrusted callers.
    """

    def __init__(self, kind: ErrorKind, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail or PUBLIC_MESSAGES[kind]
        super().__init__(f"[{kind.value}] {self.detail}")

    @property
    def public_message(self) -> str:
        return PUBLIC_MESSAGES[self.kind]

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    @property
    def is_invalid_input(self) -> bool:
        return self.kind in INVALID_INPUT
