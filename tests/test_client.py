import httpx
import pytest

from client.converter_client import (
    ConversionFailedError,
    ConversionTrackingError,
    ConverterClient,
    ConverterClientError,
)


def make_client(handler, **kwargs):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return ConverterClient("http://test", client=http, sleep=fake_sleep, **kwargs), sleeps


def scripted(responses):
    """Serve status-poll responses in order; ints are error codes."""
    queue = list(responses)

    def handler(request):
        item = queue.pop(0)
        if isinstance(item, int):
            return httpx.Response(item, json={"ok": False, "error": "store_unavailable"})
        return httpx.Response(200, json=item)

    return handler


async def test_poll_backs_off_and_resets_after_success():
    sdk, sleeps = make_client(
        scripted(
            [
                500,
                {"progress": 10, "status": "downloading"},
                500,
                500,
                {"progress": 100, "status": "completed", "resultRef": "r1"},
            ]
        )
    )
    seen = []
    final = await sdk.wait_for_conversion("j1", seen.append)

    assert final.resultRef == "r1"
    assert seen == [10, 100]
    assert sleeps == [2.0, 1.0, 2.0, 4.0]


async def test_poll_gives_up_after_three_consecutive_failures():
    sdk, sleeps = make_client(scripted([503, 503, 503, {"progress": 0, "status": "queued"}]))
    with pytest.raises(ConversionTrackingError):
        await sdk.wait_for_conversion("j1")
    assert sleeps == [2.0, 4.0]


async def test_poll_raises_on_job_error():
    sdk, _ = make_client(
        scripted([{"progress": 0, "status": "error", "errorDetail": "not found"}])
    )
    with pytest.raises(ConversionFailedError) as exc:
        await sdk.wait_for_conversion("ghost")
    assert exc.value.detail == "not found"


async def test_upload_reports_strictly_increasing_progress():
    data = b"x" * 10
    chunk_progress = iter([40, 40, 100])
    calls = []

    def handler(request):
        path = request.url.path
        calls.append(path)
        if path == "/api/v1/uploads":
            return httpx.Response(201, json={"sessionId": "s1"})
        if path.endswith("/chunks"):
            return httpx.Response(200, json={"progress": next(chunk_progress), "uploadedSize": 0})
        if path.endswith("/complete"):
            return httpx.Response(
                200, json={"id": "s1", "name": "a.bin", "mimeType": "text/plain", "size": 10}
            )
        return httpx.Response(404)

    sdk, _ = make_client(handler, chunk_size=4)
    seen = []
    meta = await sdk.upload_file(data, "a.bin", "text/plain", seen.append)

    assert meta.id == "s1"
    assert seen == [40, 100]
    assert calls.count("/api/v1/uploads/s1/chunks") == 3


async def test_error_envelope_is_surfaced():
    def handler(request):
        return httpx.Response(
            404, json={"ok": False, "error": "not_found", "message": "File not found"}
        )

    sdk, _ = make_client(handler)
    with pytest.raises(ConverterClientError) as exc:
        await sdk.download("r1")
    assert (exc.value.status_code, exc.value.code) == (404, "not_found")
