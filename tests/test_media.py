import pytest

from core.media import format_from, mime_for, plan_conversion
from util.enums import MediaKind
from util.errors import UnsupportedFormat


def test_plan_image_conversion_normalizes_formats():
    plan = plan_conversion("JPG", "holiday.png", "image/png")
    assert plan.kind is MediaKind.IMAGE
    assert plan.source_format == "png"
    assert plan.target_format == "jpeg"
    assert plan.target_mime == "image/jpeg"
    assert plan.output_extension == "jpg"


def test_video_to_audio_extraction_is_allowed():
    plan = plan_conversion("mp3", "talk.mp4", "video/mp4")
    assert plan.kind is MediaKind.VIDEO


def test_source_format_falls_back_to_mime():
    assert format_from("upload", "image/webp") == "webp"
    assert format_from("notes.txt", "application/octet-stream") == "txt"


@pytest.mark.parametrize(
    "target,name,mime,bad",
    [
        ("xyz", "a.png", "image/png", "xyz"),
        ("mp4", "a.png", "image/png", "mp4"),
        ("mp4", "song.wav", "audio/wav", "mp4"),
        ("png", "blob", "application/x-unknown", "application/x-unknown"),
    ],
)
def test_unsupported_conversions_name_the_format(target, name, mime, bad):
    with pytest.raises(UnsupportedFormat) as exc:
        plan_conversion(target, name, mime)
    assert exc.value.http_status == 422
    assert bad in exc.value.detail


def test_unknown_mime_defaults_to_octet_stream():
    assert mime_for("xyz") == "application/octet-stream"
