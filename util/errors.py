# util/errors.py
from util.enums import ErrorInfo, ErrorMessage


class ConverterError(Exception):
    """
    Base for pipeline errors. Each subclass is bound to an ErrorMessage so the
    HTTP layer can render it without knowing the concrete type.
    """

    info: ErrorInfo = ErrorMessage.STORE_UNAVAILABLE.value

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.info.message
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return self.info.code

    @property
    def http_status(self) -> int:
        return self.info.http_status


class StoreUnavailable(ConverterError):
    info = ErrorMessage.STORE_UNAVAILABLE.value


class BlobNotFound(StoreUnavailable):
    info = ErrorMessage.BLOB_NOT_FOUND.value


class SessionNotFound(ConverterError):
    info = ErrorMessage.SESSION_NOT_FOUND.value


class JobNotFound(ConverterError):
    info = ErrorMessage.JOB_NOT_FOUND.value


class ChunkRejected(ConverterError):
    info = ErrorMessage.CHUNK_REJECTED.value


class UnsupportedFormat(ConverterError):
    info = ErrorMessage.UNSUPPORTED_FORMAT.value

    def __init__(self, fmt: str, detail: str | None = None) -> None:
        self.format = fmt
        super().__init__(detail or f"Unsupported format: {fmt}")


class TranscodeFailure(ConverterError):
    info = ErrorMessage.TRANSCODE_FAILURE.value


class CleanupFailure(ConverterError):
    info = ErrorMessage.CLEANUP_FAILURE.value
