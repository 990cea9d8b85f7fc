# controller/file_controller.py
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from controller.controller_dependencies import get_file_service, rate_limited
from service.file_service import FileService
from util.constants import InternalURIs
from util.functions import content_disposition

file_router = APIRouter(tags=["files"], dependencies=rate_limited())


@file_router.get(InternalURIs.FILE)
async def download_file(
    file_id: str,
    service: FileService = Depends(get_file_service),
):
    meta, body = await service.open_download(file_id)
    return StreamingResponse(
        body,
        media_type=meta.mimeType,
        headers={
            "Content-Disposition": content_disposition(meta.name),
            "Content-Length": str(meta.size),
        },
    )


@file_router.delete(InternalURIs.FILE, status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    service: FileService = Depends(get_file_service),
) -> Response:
    await service.delete(file_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
