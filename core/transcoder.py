# core/transcoder.py
import asyncio
import inspect
import io
import logging
from pathlib import Path
from typing import AsyncIterator, Dict, Final, List, Optional, Union
import ffmpeg
from docx import Document
from PIL import Image, UnidentifiedImageError
from config.settings import settings
from core.media import ConversionPlan, is_audio
from core.pdf_text import extract_pages_texts, render_text_pdf
from util.enums import MediaKind
from util.errors import TranscodeFailure, UnsupportedFormat
from util.timing import timed
from util.types import ProgressCallback

logger = logging.getLogger(__name__)

Source = Union[Path, bytes]

PIL_FORMATS: Final[Dict[str, str]] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "bmp": "BMP",
    "tiff": "TIFF",
    "webp": "WEBP",
}

# Output kwargs handed to ffmpeg-python; None renders a bare flag.
FFMPEG_OUTPUTS: Final[Dict[str, Dict[str, Optional[str]]]] = {
    "mp4": {"vcodec": "libx264", "acodec": "aac", "pix_fmt": "yuv420p", "movflags": "+faststart"},
    "mkv": {"vcodec": "libx264", "acodec": "aac"},
    "avi": {"vcodec": "libx264", "acodec": "aac"},
    "mov": {"vcodec": "libx264", "acodec": "aac", "pix_fmt": "yuv420p"},
    "flv": {"vcodec": "libx264", "acodec": "aac"},
    "webm": {"vcodec": "libvpx", "acodec": "libvorbis"},
    "wmv": {"vcodec": "wmv2", "acodec": "wmav2"},
    "mp3": {"acodec": "libmp3lame", "vn": None},
    "wav": {"acodec": "pcm_s16le", "vn": None},
    "flac": {"acodec": "flac", "vn": None},
    "aac": {"acodec": "aac", "f": "adts", "vn": None},
}

STDERR_TAIL = 600


async def _report(on_progress: Optional[ProgressCallback], percent: float) -> None:
    if on_progress is None:
        return
    res = on_progress(percent)
    if inspect.isawaitable(res):
        await res


def encoder_percent(key: str, value: str, duration_s: Optional[float]) -> Optional[float]:
    """
    Translate one `-progress` key=value pair into a percent of the input duration.
    ffmpeg reports out_time_us and (despite the name) out_time_ms in microseconds.
    """
    if key == "progress" and value.strip() == "end":
        return 100.0
    if key not in ("out_time_us", "out_time_ms") or not duration_s:
        return None
    try:
        micros = int(value.strip())
    except ValueError:
        return None
    if micros < 0:
        return None
    return max(0.0, min(100.0, micros / 1_000_000 / duration_s * 100.0))


async def iter_encoder_percent(
    stream: asyncio.StreamReader, duration_s: Optional[float]
) -> AsyncIterator[float]:
    while True:
        raw = await stream.readline()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace").strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        pct = encoder_percent(key, value, duration_s)
        if pct is not None:
            yield pct


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[-1])
        return bg
    return img.convert("RGB")


def encode_image(data: bytes, target: str, quality: int) -> bytes:
    fmt = PIL_FORMATS.get(target)
    if fmt is None:
        raise UnsupportedFormat(target, f"Unsupported image format: {target}")
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            img = src
            if fmt == "JPEG" and img.mode not in ("RGB", "L"):
                img = _flatten(img)
            elif fmt == "BMP" and img.mode not in ("1", "L", "P", "RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            params = {"quality": quality} if fmt in ("JPEG", "WEBP") else {}
            buf = io.BytesIO()
            img.save(buf, format=fmt, **params)
            return buf.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise TranscodeFailure(f"Image conversion to {target} failed: {e}") from e


def _document_pages(data: bytes, source: str) -> List[str]:
    if source == "pdf":
        return [text for _, text in extract_pages_texts(data)]
    if source == "docx":
        try:
            doc = Document(io.BytesIO(data))
        except Exception as e:
            raise TranscodeFailure(f"Could not read DOCX: {e}") from e
        return ["\n".join(p.text for p in doc.paragraphs)]
    if source == "txt":
        return [data.decode("utf-8-sig", errors="replace")]
    raise UnsupportedFormat(source, f"Unsupported document format: {source}")


def _render_docx(pages: List[str]) -> bytes:
    doc = Document()
    for i, page in enumerate(pages):
        if i:
            doc.add_page_break()
        for line in page.splitlines() or [""]:
            doc.add_paragraph(line)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def convert_document(data: bytes, source: str, target: str) -> bytes:
    if source == target:
        return data
    pages = _document_pages(data, source)
    if target == "txt":
        return "\n\n".join(pages).encode("utf-8")
    if target == "pdf":
        return render_text_pdf("\n\f\n".join(pages))
    if target == "docx":
        return _render_docx(pages)
    raise UnsupportedFormat(target, f"Unsupported document format: {target}")


class TranscodeEngine:
    """
    Dispatches a source to the codec path named by the plan's MediaKind and
    reports engine progress (0..100) through on_progress.
    """

    def __init__(
        self,
        ffmpeg_binary: str = settings.FFMPEG_BINARY,
        ffprobe_binary: str = settings.FFPROBE_BINARY,
        image_quality: int = settings.IMAGE_QUALITY,
    ) -> None:
        self._ffmpeg = ffmpeg_binary
        self._ffprobe = ffprobe_binary
        self._quality = image_quality

    async def transcode(
        self,
        source: Source,
        plan: ConversionPlan,
        on_progress: Optional[ProgressCallback],
        workdir: Path,
    ) -> bytes:
        with timed(
            logger,
            "transcode",
            kind=plan.kind.value,
            src=plan.source_format,
            dst=plan.target_format,
        ) as fields:
            if plan.kind is MediaKind.IMAGE:
                out = await self._image(source, plan, on_progress)
            elif plan.kind is MediaKind.VIDEO:
                out = await self._media(source, plan, on_progress, workdir)
            elif plan.kind is MediaKind.DOCUMENT:
                out = await self._document(source, plan, on_progress)
            else:
                raise UnsupportedFormat(plan.target_format)
            fields["bytes"] = len(out)
        return out

    @staticmethod
    async def _load(source: Source) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        return await asyncio.to_thread(Path(source).read_bytes)

    async def _image(
        self, source: Source, plan: ConversionPlan, on_progress: Optional[ProgressCallback]
    ) -> bytes:
        await _report(on_progress, 0)
        data = await self._load(source)
        out = await asyncio.to_thread(
            encode_image, data, plan.target_format, self._quality
        )
        await _report(on_progress, 100)
        return out

    async def _document(
        self, source: Source, plan: ConversionPlan, on_progress: Optional[ProgressCallback]
    ) -> bytes:
        await _report(on_progress, 0)
        data = await self._load(source)
        out = await asyncio.to_thread(
            convert_document, data, plan.source_format, plan.target_format
        )
        await _report(on_progress, 100)
        return out

    # ---------------- ffmpeg path ----------------

    def build_command(self, src: Path, dst: Path, plan: ConversionPlan) -> List[str]:
        opts = FFMPEG_OUTPUTS.get(plan.target_format)
        if opts is None:
            raise UnsupportedFormat(plan.target_format)
        opts = dict(opts)
        if is_audio(plan.target_format):
            opts.setdefault("vn", None)
        return (
            ffmpeg.input(str(src))
            .output(str(dst), **opts)
            .global_args("-progress", "pipe:1", "-nostats", "-loglevel", "error")
            .overwrite_output()
            .compile(cmd=self._ffmpeg)
        )

    async def probe_duration(self, src: Path) -> Optional[float]:
        try:
            info = await asyncio.to_thread(ffmpeg.probe, str(src), cmd=self._ffprobe)
        except (ffmpeg.Error, FileNotFoundError) as e:
            logger.warning("transcode.probe.error err=%s", type(e).__name__)
            return None
        try:
            duration = float(info.get("format", {}).get("duration") or 0)
        except (TypeError, ValueError):
            return None
        return duration if duration > 0 else None

    async def _media(
        self,
        source: Source,
        plan: ConversionPlan,
        on_progress: Optional[ProgressCallback],
        workdir: Path,
    ) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            src = workdir / f"input.{plan.source_format}"
            await asyncio.to_thread(src.write_bytes, bytes(source))
        else:
            src = Path(source)
        dst = workdir / f"output.{plan.target_format}"

        duration = await self.probe_duration(src)
        args = self.build_command(src, dst, plan)
        logger.info(
            "transcode.ffmpeg.start dst=%s duration=%s", plan.target_format, duration
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeFailure(f"ffmpeg not available: {self._ffmpeg}") from e

        stderr_task = asyncio.create_task(proc.stderr.read())
        last = 0.0
        await _report(on_progress, 0)
        try:
            async for pct in iter_encoder_percent(proc.stdout, duration):
                # Bound callback volume to whole-percent steps.
                if pct - last >= 1:
                    last = pct
                    await _report(on_progress, pct)
            rc = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            stderr_task.cancel()
            raise
        stderr = (await stderr_task).decode("utf-8", errors="replace").strip()

        if rc != 0:
            logger.error("transcode.ffmpeg.error rc=%d", rc)
            raise TranscodeFailure(
                f"ffmpeg exited with {rc}: {stderr[-STDERR_TAIL:] or 'no output'}"
            )
        if last < 100:
            await _report(on_progress, 100)
        return await asyncio.to_thread(dst.read_bytes)
