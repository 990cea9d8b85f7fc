# controller/controller_dependencies.py
from functools import lru_cache
from typing import List
from fastapi import Depends, File, HTTPException, Request, UploadFile
from fastapi.params import Depends as DependsParam
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from repository.blob_repository import BlobRepository, BlobStore
from repository.job_repository import JobRepository
from repository.upload_session_repository import UploadSessionRepository
from service.conversion_service import ConversionJobTracker
from service.file_service import FileService
from service.upload_service import UploadService
from util.enums import ErrorMessage


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return BlobRepository()


def get_upload_service() -> UploadService:
    _sessions = UploadSessionRepository()
    _service = UploadService(_sessions, get_blob_store())
    return _service


@lru_cache(maxsize=1)
def get_conversion_tracker() -> ConversionJobTracker:
    # One tracker per process: it owns the in-flight job tasks.
    return ConversionJobTracker(JobRepository())


def get_file_service() -> FileService:
    return FileService(get_blob_store())


def rate_limited() -> List[DependsParam]:
    if not settings.RATE_LIMIT_ENABLED:
        return []
    return [
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]


def _too_large(max_bytes: int) -> HTTPException:
    info = ErrorMessage.FILE_TOO_LARGE.value
    return HTTPException(
        status_code=info.http_status,
        detail={
            "ok": False,
            "error": info.code,
            "message": info.message,
            "maxBytes": max_bytes,
        },
    )


async def _enforce(request: Request, file: UploadFile, max_bytes: int) -> UploadFile:
    # Fast pre-check via Content-Length if present
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes + 64 * 1024:
        raise _too_large(max_bytes)

    # Hard cap while reading (works even without Content-Length)
    blob = await file.read(max_bytes + 1)
    if len(blob) > max_bytes:
        raise _too_large(max_bytes)

    # Reset so downstream can re-read file stream
    await file.seek(0)
    return file


async def enforce_max_upload_size(
    request: Request, file: UploadFile = File(...)
) -> UploadFile:
    return await _enforce(request, file, settings.MAX_FILE_MB * 1024 * 1024)


async def enforce_max_chunk_size(
    request: Request, chunk: UploadFile = File(...)
) -> UploadFile:
    return await _enforce(request, chunk, settings.MAX_CHUNK_BYTES)
