# controller/upload_controller.py
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from controller.controller_dependencies import (
    enforce_max_chunk_size,
    get_upload_service,
    rate_limited,
)
from model.api import ChunkUploadResponse, InitUploadRequest, InitUploadResponse
from model.upload import FileMetadata
from service.upload_service import UploadService
from util.constants import InternalURIs

upload_router = APIRouter(tags=["uploads"], dependencies=rate_limited())


@upload_router.post(
    InternalURIs.UPLOADS,
    response_model=InitUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def init_upload(
    payload: InitUploadRequest,
    service: UploadService = Depends(get_upload_service),
) -> InitUploadResponse:
    session_id = await service.init(
        payload.fileName, payload.mimeType, payload.declaredSize
    )
    return InitUploadResponse(sessionId=session_id)


@upload_router.post(
    InternalURIs.UPLOAD_CHUNK,
    response_model=ChunkUploadResponse,
    dependencies=[Depends(enforce_max_chunk_size)],
)
async def upload_chunk(
    session_id: str,
    chunk: UploadFile = File(...),
    start: int = Form(...),
    end: int = Form(...),
    service: UploadService = Depends(get_upload_service),
) -> ChunkUploadResponse:
    data = await chunk.read()
    return await service.upload_chunk(session_id, data, start, end)


@upload_router.post(InternalURIs.COMPLETE_UPLOAD, response_model=FileMetadata)
async def complete_upload(
    session_id: str,
    service: UploadService = Depends(get_upload_service),
) -> FileMetadata:
    return await service.complete(session_id)
