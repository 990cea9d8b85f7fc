# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "fileshift"

JOBS: Final[str] = f"{ROOT}:jobs"
UPLOADS: Final[str] = f"{ROOT}:uploads"
UPLOAD_RANGES: Final[str] = f"{UPLOADS}:ranges"  # applied (start, end) pairs per session
BLOBS: Final[str] = f"{ROOT}:blobs"
BLOB_META: Final[str] = f"{BLOBS}:meta"
