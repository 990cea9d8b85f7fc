import asyncio
import io
import os
from pathlib import Path

import fitz
import pytest
from docx import Document
from PIL import Image

from conftest import make_image
from core.media import plan_conversion
from core.pdf_text import _layout_lines, render_text_pdf
from core.transcoder import (
    TranscodeEngine,
    convert_document,
    encode_image,
    encoder_percent,
    iter_encoder_percent,
)
from util.errors import TranscodeFailure


async def test_jpeg_to_webp_reports_start_and_end(tmp_path, jpeg_bytes):
    engine = TranscodeEngine()
    seen = []
    out = await engine.transcode(
        jpeg_bytes, plan_conversion("webp", "cat.jpg"), seen.append, tmp_path
    )
    assert seen == [0, 100]
    with Image.open(io.BytesIO(out)) as img:
        assert img.format == "WEBP"
        assert img.size == (64, 48)


def test_transparent_png_flattens_to_jpeg():
    out = encode_image(make_image("PNG", mode="RGBA"), "jpeg", 90)
    with Image.open(io.BytesIO(out)) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"


def test_garbage_image_is_a_transcode_failure():
    with pytest.raises(TranscodeFailure):
        encode_image(b"not an image", "png", 90)


@pytest.mark.parametrize(
    "key,value,duration,expected",
    [
        ("out_time_us", "5000000", 10.0, 50.0),
        ("out_time_ms", "2500000", 10.0, 25.0),
        ("out_time_us", "20000000", 10.0, 100.0),
        ("out_time_us", "N/A", 10.0, None),
        ("out_time_us", "5000000", None, None),
        ("progress", "end", None, 100.0),
        ("frame", "12", 10.0, None),
    ],
)
def test_encoder_percent(key, value, duration, expected):
    assert encoder_percent(key, value, duration) == expected


async def test_iter_encoder_percent_reads_progress_blocks():
    reader = asyncio.StreamReader()
    reader.feed_data(
        b"frame=10\nout_time_us=2500000\nprogress=continue\n"
        b"out_time_us=7500000\nprogress=continue\nprogress=end\n"
    )
    reader.feed_eof()
    got = [p async for p in iter_encoder_percent(reader, 10.0)]
    assert got == [25.0, 75.0, 100.0]


def test_audio_target_drops_video_stream():
    engine = TranscodeEngine(ffmpeg_binary="ffmpeg")
    plan = plan_conversion("mp3", "talk.mp4")
    args = engine.build_command(Path("in.mp4"), Path("out.mp3"), plan)
    assert args[0] == "ffmpeg"
    assert "-vn" in args
    assert args[args.index("-acodec") + 1] == "libmp3lame"
    assert args[args.index("-progress") + 1] == "pipe:1"
    assert "out.mp3" in args


async def test_document_progress_and_text_to_pdf(tmp_path):
    engine = TranscodeEngine()
    seen = []
    out = await engine.transcode(
        b"first line\nsecond line", plan_conversion("pdf", "notes.txt"), seen.append, tmp_path
    )
    assert seen == [0, 100]
    with fitz.open(stream=out, filetype="pdf") as doc:
        assert "second line" in doc.load_page(0).get_text()


def test_pdf_pages_survive_round_into_docx():
    pdf = render_text_pdf("page one\n\f\npage two")
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        assert doc.page_count == 2

    out = convert_document(pdf, "pdf", "docx")
    texts = [p.text for p in Document(io.BytesIO(out)).paragraphs]
    assert "page one" in texts
    assert "page two" in texts

    txt = convert_document(pdf, "pdf", "txt").decode("utf-8")
    assert "page one" in txt and "page two" in txt


def test_form_feed_line_is_kept_as_page_break():
    assert _layout_lines("a\n\f\nb") == ["a", "\f", "b"]


# ---------------- ffmpeg path with stand-in binaries ----------------

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses /bin/sh scripts")

FFPROBE_TEN_SECONDS = """echo '{"format": {"duration": "10.0"}, "streams": []}'\n"""


def fake_binary(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def bin_dir(tmp_path):
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def media_engine(bin_dir: Path, ffmpeg_body: str) -> TranscodeEngine:
    return TranscodeEngine(
        ffmpeg_binary=fake_binary(bin_dir / "ffmpeg", ffmpeg_body),
        ffprobe_binary=fake_binary(bin_dir / "ffprobe", FFPROBE_TEN_SECONDS),
    )


@posix_only
async def test_media_progress_is_throttled_to_whole_percents(bin_dir, workdir):
    engine = media_engine(
        bin_dir,
        """for arg in "$@"; do
  case "$arg" in */output.*) out="$arg" ;; esac
done
printf 'frame=1\\nout_time_us=2500000\\nprogress=continue\\n'
printf 'out_time_us=2550000\\nprogress=continue\\n'
printf 'out_time_us=5000000\\nprogress=continue\\nprogress=end\\n'
printf 'encoded' > "$out"
""",
    )
    seen = []
    out = await engine.transcode(
        b"\x00" * 16, plan_conversion("webm", "clip.mp4"), seen.append, workdir
    )
    assert out == b"encoded"
    assert seen == [0, 25.0, 50.0, 100.0]
    assert (workdir / "input.mp4").read_bytes() == b"\x00" * 16


@posix_only
async def test_media_nonzero_exit_carries_stderr(bin_dir, workdir):
    engine = media_engine(
        bin_dir, "echo 'Invalid data found when processing input' >&2\nexit 1\n"
    )
    seen = []
    with pytest.raises(TranscodeFailure) as info:
        await engine.transcode(
            b"\x00" * 16, plan_conversion("mp3", "clip.mp4"), seen.append, workdir
        )
    assert "exited with 1" in info.value.detail
    assert "Invalid data found" in info.value.detail
    assert seen == [0]


@posix_only
async def test_media_cancel_kills_encoder(bin_dir, workdir):
    pid_file = workdir / "encoder.pid"
    engine = media_engine(bin_dir, f'echo $$ > "{pid_file}"\nexec sleep 30\n')
    task = asyncio.create_task(
        engine.transcode(b"\x00" * 16, plan_conversion("mkv", "clip.mp4"), None, workdir)
    )

    async def started() -> int:
        while not (pid_file.exists() and pid_file.read_text().strip()):
            await asyncio.sleep(0.02)
        return int(pid_file.read_text())

    pid = await asyncio.wait_for(started(), timeout=10)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
