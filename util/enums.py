# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class MediaKind(str, Enum):
    """Coarse codec family a conversion runs through."""

    IMAGE = "image"
    VIDEO = "video"  # video and audio share the ffmpeg path
    DOCUMENT = "document"


class ErrorInfo(NamedTuple):
    code: str
    message: str
    http_status: int


class ErrorMessage(Enum):
    STORE_UNAVAILABLE = ErrorInfo(
        "store_unavailable", "Storage unavailable", status.HTTP_502_BAD_GATEWAY
    )
    BLOB_NOT_FOUND = ErrorInfo("not_found", "File not found", status.HTTP_404_NOT_FOUND)
    SESSION_NOT_FOUND = ErrorInfo(
        "session_not_found", "Upload session not found", status.HTTP_404_NOT_FOUND
    )
    JOB_NOT_FOUND = ErrorInfo("job_not_found", "not found", status.HTTP_404_NOT_FOUND)
    CHUNK_REJECTED = ErrorInfo(
        "chunk_rejected", "Chunk rejected, retry it", status.HTTP_409_CONFLICT
    )
    UNSUPPORTED_FORMAT = ErrorInfo(
        "unsupported_format",
        "Unsupported format",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    TRANSCODE_FAILURE = ErrorInfo(
        "transcode_failure", "Conversion failed", status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    CLEANUP_FAILURE = ErrorInfo(
        "cleanup_failure", "Cleanup failed", status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    FILE_TOO_LARGE = ErrorInfo(
        "file_too_large", "Payload too large", status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    )
