# util/functions.py
import json
import math
import re
from pathlib import PurePath
from typing import Dict, Final
from urllib.parse import quote

from util.constants import CONVERT_SPAN, PROGRESS_CONVERT_START


def percent_of(done: int, total: int) -> int:
    """
    - floor(done / total * 100), clamped to 0..100.
    - An empty total reports 0; completion is signalled separately.
    """
    if total <= 0:
        return 0
    return max(0, min(100, (done * 100) // total))


def remap_convert_progress(engine_percent: float) -> int:
    """Map an engine percent (0..100) into the job's 30..70 converting band."""
    p = max(0.0, min(100.0, float(engine_percent)))
    return PROGRESS_CONVERT_START + math.floor(p * CONVERT_SPAN)


def extension_of(name: str | None) -> str:
    if not name:
        return ""
    return PurePath(name).suffix.lower().lstrip(".")


def swap_extension(name: str, fmt: str) -> str:
    stem = PurePath(name).stem or "converted"
    return f"{stem}.{fmt.lower()}"


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str, fallback: str = "download") -> str:
    cleaned = _UNSAFE.sub("_", PurePath(name or "").name).strip("._")
    return cleaned or fallback


def content_disposition(name: str) -> str:
    """Attachment header with an ASCII fallback plus RFC 5987 utf-8 name."""
    ascii_name = safe_filename(name)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(name or ascii_name)}"


LINE_SEP: Final[str] = "\n"


def ndjson_line(obj: Dict[str, object]) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + LINE_SEP).encode("utf-8")
