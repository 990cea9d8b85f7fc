import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from controller.controller_dependencies import (
    get_blob_store,
    get_conversion_tracker,
    get_file_service,
    get_upload_service,
)
from main import app
from model.api import ChunkUploadResponse, JobStatusResponse
from model.upload import FileMetadata
from util.errors import BlobNotFound, ChunkRejected, SessionNotFound

FILE_ID = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def uploads():
    service = AsyncMock()
    app.dependency_overrides[get_upload_service] = lambda: service
    return service


@pytest.fixture
def tracker():
    mock = MagicMock()
    mock.start = AsyncMock()
    mock.start_local = AsyncMock()
    mock.get_status = AsyncMock()
    app.dependency_overrides[get_conversion_tracker] = lambda: mock
    app.dependency_overrides[get_blob_store] = lambda: "store"
    return mock


@pytest.fixture
def files():
    service = AsyncMock()
    app.dependency_overrides[get_file_service] = lambda: service
    return service


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_init_upload(client, uploads):
    uploads.init.return_value = "s1"
    res = client.post(
        "/api/v1/uploads",
        json={"fileName": "a.jpg", "mimeType": "image/jpeg", "declaredSize": 10},
    )
    assert res.status_code == 201
    assert res.json() == {"sessionId": "s1"}
    uploads.init.assert_awaited_once_with("a.jpg", "image/jpeg", 10)


def test_init_upload_rejects_negative_size(client, uploads):
    res = client.post("/api/v1/uploads", json={"fileName": "a.jpg", "declaredSize": -1})
    assert res.status_code == 422
    uploads.init.assert_not_awaited()


def test_upload_chunk(client, uploads):
    uploads.upload_chunk.return_value = ChunkUploadResponse(progress=30, uploadedSize=3)
    res = client.post(
        "/api/v1/uploads/s1/chunks",
        files={"chunk": ("blob", b"abc", "application/octet-stream")},
        data={"start": "0", "end": "3"},
    )
    assert res.status_code == 200
    assert res.json() == {"progress": 30, "uploadedSize": 3}
    uploads.upload_chunk.assert_awaited_once_with("s1", b"abc", 0, 3)


def test_rejected_chunk_uses_error_envelope(client, uploads):
    uploads.upload_chunk.side_effect = ChunkRejected("Range 0-9 outside declared size 4")
    res = client.post(
        "/api/v1/uploads/s1/chunks",
        files={"chunk": ("blob", b"abc", "application/octet-stream")},
        data={"start": "0", "end": "9"},
    )
    assert res.status_code == 409
    assert res.json() == {
        "ok": False,
        "error": "chunk_rejected",
        "message": "Range 0-9 outside declared size 4",
    }


def test_complete_unknown_session(client, uploads):
    uploads.complete.side_effect = SessionNotFound()
    res = client.post("/api/v1/uploads/nope/complete")
    assert res.status_code == 404
    assert res.json()["error"] == "session_not_found"


def test_start_conversion(client, tracker):
    tracker.start.return_value = f"{FILE_ID}-1-abc"
    res = client.post("/api/v1/conversions", json={"fileId": FILE_ID, "targetFormat": "webp"})
    assert res.status_code == 202
    assert res.json() == {"jobId": f"{FILE_ID}-1-abc"}
    tracker.start.assert_awaited_once_with(FILE_ID, "webp", "store")


@pytest.mark.parametrize("file_id", ["../outside/evil", "f1", FILE_ID.upper(), ""])
def test_start_conversion_rejects_malformed_file_id(client, tracker, file_id):
    res = client.post("/api/v1/conversions", json={"fileId": file_id, "targetFormat": "png"})
    assert res.status_code == 422
    tracker.start.assert_not_awaited()


def test_start_local_conversion(client, tracker):
    tracker.start_local.return_value = "local-1-abc"
    res = client.post(
        "/api/v1/conversions/local",
        files={"file": ("a.png", b"png-bytes", "image/png")},
        data={"targetFormat": "jpeg"},
    )
    assert res.status_code == 202
    assert res.json() == {"jobId": "local-1-abc"}


def test_poll_unknown_job_is_200(client, tracker):
    tracker.get_status.return_value = JobStatusResponse(
        progress=0, status="error", errorDetail="not found"
    )
    res = client.get("/api/v1/conversions/missing")
    assert res.status_code == 200
    assert res.json()["errorDetail"] == "not found"


def test_events_stream_ends_with_done(client, tracker):
    async def snapshots(job_id):
        yield JobStatusResponse(progress=50, status="converting")
        yield JobStatusResponse(progress=50, status="error", errorDetail="boom")

    tracker.subscribe = snapshots
    res = client.get("/api/v1/conversions/j1/events")
    assert res.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in res.text.splitlines()]
    assert [e["type"] for e in events] == ["status", "status", "error", "done"]
    assert events[1]["payload"] == {"progress": 50, "status": "error", "errorDetail": "boom"}
    assert events[2]["payload"] == {"message": "boom"}


def test_download_file(client, files):
    async def body():
        yield b"hello "
        yield b"world"

    files.open_download.return_value = (
        FileMetadata(id="r1", name="cat.webp", mimeType="image/webp", size=11),
        body(),
    )
    res = client.get("/api/v1/files/r1")
    assert res.status_code == 200
    assert res.content == b"hello world"
    assert res.headers["content-type"] == "image/webp"
    assert 'filename="cat.webp"' in res.headers["content-disposition"]


def test_delete_missing_file(client, files):
    files.delete.side_effect = BlobNotFound()
    res = client.delete("/api/v1/files/r1")
    assert res.status_code == 404
    assert res.json() == {"ok": False, "error": "not_found", "message": "File not found"}


def test_delete_file(client, files):
    res = client.delete("/api/v1/files/r1")
    assert res.status_code == 204
    files.delete.assert_awaited_once_with("r1")
