# model/upload.py
from typing import Literal
from pydantic import BaseModel, Field

UploadStatus = Literal[
    "initializing",
    "uploading",
    "completed",
    "failed",
]


class UploadSession(BaseModel):
    sessionId: str
    fileName: str
    mimeType: str
    declaredSize: int = Field(ge=0)
    uploadedSize: int = 0
    status: UploadStatus = "initializing"


class FileMetadata(BaseModel):
    """Canonical metadata as reported by the blob store."""

    id: str
    name: str
    mimeType: str
    size: int = 0
