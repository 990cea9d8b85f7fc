# controller/conversion_controller.py
import logging
from typing import AsyncIterator
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from controller.controller_dependencies import (
    enforce_max_upload_size,
    get_blob_store,
    get_conversion_tracker,
    rate_limited,
)
from model.api import (
    JobStatusResponse,
    StartConversionRequest,
    StartConversionResponse,
    StreamEvent,
)
from repository.blob_repository import BlobStore
from service.conversion_service import ConversionJobTracker
from util.constants import InternalURIs
from util.functions import ndjson_line
from util.types import ErrorPayload

logger = logging.getLogger(__name__)

conversion_router = APIRouter(tags=["conversions"], dependencies=rate_limited())
# Status reads are not rate limited.
status_router = APIRouter(tags=["conversions"])


@conversion_router.post(
    InternalURIs.CONVERSIONS,
    response_model=StartConversionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_conversion(
    payload: StartConversionRequest,
    tracker: ConversionJobTracker = Depends(get_conversion_tracker),
    store: BlobStore = Depends(get_blob_store),
) -> StartConversionResponse:
    job_id = await tracker.start(payload.fileId, payload.targetFormat, store)
    return StartConversionResponse(jobId=job_id)


@conversion_router.post(
    InternalURIs.CONVERT_LOCAL,
    response_model=StartConversionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def start_local_conversion(
    file: UploadFile = File(...),
    targetFormat: str = Form(..., min_length=1),
    tracker: ConversionJobTracker = Depends(get_conversion_tracker),
    store: BlobStore = Depends(get_blob_store),
) -> StartConversionResponse:
    job_id = await tracker.start_local(file, targetFormat, store)
    return StartConversionResponse(jobId=job_id)


@status_router.get(InternalURIs.CONVERSION_STATUS, response_model=JobStatusResponse)
async def get_conversion_status(
    job_id: str,
    tracker: ConversionJobTracker = Depends(get_conversion_tracker),
) -> JobStatusResponse:
    return await tracker.get_status(job_id)


async def _event_lines(tracker: ConversionJobTracker, job_id: str) -> AsyncIterator[bytes]:
    last = None
    async for snap in tracker.subscribe(job_id):
        last = snap
        yield ndjson_line(
            StreamEvent(type="status", payload=snap.model_dump(exclude_none=True)).model_dump()
        )
    if last is not None and last.status == "error":
        yield ndjson_line(
            StreamEvent(
                type="error", payload=ErrorPayload(message=last.errorDetail or "error")
            ).model_dump()
        )
    yield ndjson_line(StreamEvent(type="done", payload={}).model_dump())
    logger.info("job.events.done job=%s", job_id)


@status_router.get(InternalURIs.CONVERSION_EVENTS)
async def stream_conversion_events(
    job_id: str,
    tracker: ConversionJobTracker = Depends(get_conversion_tracker),
):
    return StreamingResponse(
        _event_lines(tracker, job_id), media_type="application/x-ndjson"
    )
