# model/job.py
from typing import Final, Literal, Optional, Tuple
from pydantic import BaseModel, Field
from util.enums import MediaKind

JobStatus = Literal[
    "queued",
    "downloading",
    "converting",
    "uploading",
    "completed",
    "error",
]

# Forward order a job walks; any prefix-respecting subsequence is legal.
STATUS_ORDER: Final[Tuple[str, ...]] = (
    "queued",
    "downloading",
    "converting",
    "uploading",
    "completed",
)
TERMINAL_STATUSES: Final[frozenset] = frozenset({"completed", "error"})

LOCAL_SOURCE: Final[str] = "local"


class Job(BaseModel):
    id: str
    sourceRef: str
    targetFormat: str
    sourceName: Optional[str] = None
    mediaKind: Optional[MediaKind] = None
    status: JobStatus = "queued"
    progress: int = Field(default=0, ge=0, le=100)
    resultRef: Optional[str] = None
    errorDetail: Optional[str] = None
    createdAt: int = 0
    updatedAt: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
