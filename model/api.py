# model/api.py
from typing import Optional
from pydantic import BaseModel, Field
from model.job import JobStatus
from util.constants import BLOB_ID_PATTERN
from util.types import EventType


class InitUploadRequest(BaseModel):
    fileName: str = Field(min_length=1)
    mimeType: str = "application/octet-stream"
    declaredSize: int = Field(ge=0)


class InitUploadResponse(BaseModel):
    sessionId: str


class ChunkUploadResponse(BaseModel):
    progress: int
    uploadedSize: int


class StartConversionRequest(BaseModel):
    fileId: str = Field(pattern=BLOB_ID_PATTERN)
    targetFormat: str = Field(min_length=1)


class StartConversionResponse(BaseModel):
    jobId: str


class JobStatusResponse(BaseModel):
    progress: int
    status: JobStatus
    resultRef: Optional[str] = None
    errorDetail: Optional[str] = None


class StreamEvent(BaseModel):
    type: EventType
    payload: dict
