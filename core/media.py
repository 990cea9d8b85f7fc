# core/media.py
from dataclasses import dataclass
from typing import Dict, Final, FrozenSet, Optional
from util.enums import MediaKind
from util.errors import UnsupportedFormat
from util.functions import extension_of

IMAGE_FORMATS: Final[FrozenSet[str]] = frozenset(
    {"jpg", "jpeg", "png", "gif", "bmp", "tiff", "webp"}
)
VIDEO_FORMATS: Final[FrozenSet[str]] = frozenset(
    {"mp4", "mkv", "avi", "webm", "mov", "wmv", "flv"}
)
AUDIO_FORMATS: Final[FrozenSet[str]] = frozenset({"mp3", "wav", "flac", "aac"})
DOCUMENT_FORMATS: Final[FrozenSet[str]] = frozenset({"pdf", "docx", "txt"})

MIME_TYPES: Final[Dict[str, str]] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "mkv": "video/x-matroska",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
}

_FORMAT_BY_MIME: Final[Dict[str, str]] = {
    **{mime: fmt for fmt, mime in MIME_TYPES.items() if fmt != "jpg"},
    "image/jpg": "jpeg",
    "audio/mp3": "mp3",
    "audio/x-wav": "wav",
    "audio/x-flac": "flac",
}


def normalize_format(fmt: str) -> str:
    f = (fmt or "").strip().lower().lstrip(".")
    return "jpeg" if f == "jpg" else ("tiff" if f == "tif" else f)


def kind_of(fmt: str) -> Optional[MediaKind]:
    f = normalize_format(fmt)
    if f in IMAGE_FORMATS:
        return MediaKind.IMAGE
    if f in VIDEO_FORMATS or f in AUDIO_FORMATS:
        return MediaKind.VIDEO
    if f in DOCUMENT_FORMATS:
        return MediaKind.DOCUMENT
    return None


def is_audio(fmt: str) -> bool:
    return normalize_format(fmt) in AUDIO_FORMATS


def mime_for(fmt: str) -> str:
    return MIME_TYPES.get(normalize_format(fmt), "application/octet-stream")


def format_from(name: Optional[str], mime_type: Optional[str] = None) -> str:
    """Source format from the file extension, falling back to the declared mime type."""
    ext = normalize_format(extension_of(name))
    if kind_of(ext) is not None:
        return ext
    mime = (mime_type or "").split(";")[0].strip().lower()
    return normalize_format(_FORMAT_BY_MIME.get(mime, ext))


@dataclass(frozen=True)
class ConversionPlan:
    """Resolved once per job and carried through every stage."""

    kind: MediaKind
    source_format: str
    target_format: str
    # Extension as requested (jpg stays jpg); target_format is the canonical codec name.
    output_extension: str = ""

    @property
    def target_mime(self) -> str:
        return mime_for(self.target_format)


def resolve_target(target_format: str) -> MediaKind:
    kind = kind_of(target_format)
    if kind is None:
        raise UnsupportedFormat(
            target_format, f"Unsupported target format: {target_format}"
        )
    return kind


def plan_conversion(
    target_format: str, source_name: Optional[str], source_mime: Optional[str] = None
) -> ConversionPlan:
    """
    Validate that the source can reach the target inside one codec family.
    Raises UnsupportedFormat naming the offending format.
    """
    kind = resolve_target(target_format)
    source_format = format_from(source_name, source_mime)
    source_kind = kind_of(source_format)
    if source_kind is None:
        shown = source_format or (source_mime or "unknown")
        raise UnsupportedFormat(shown, f"Unsupported source format: {shown}")
    if source_kind is not kind:
        raise UnsupportedFormat(
            target_format,
            f"Cannot convert {source_format} ({source_kind.value}) "
            f"to {target_format} ({kind.value})",
        )
    if kind is MediaKind.VIDEO and is_audio(source_format) and not is_audio(target_format):
        raise UnsupportedFormat(
            target_format, f"Cannot convert audio {source_format} to video {target_format}"
        )
    return ConversionPlan(
        kind=kind,
        source_format=source_format,
        target_format=normalize_format(target_format),
        output_extension=target_format.strip().lower().lstrip("."),
    )
