"""
Shared fixtures: in-memory Redis, scratch directory, image payloads.

Settings are read at import time, so the environment is pinned before any
application module is imported.
"""

import io
import os

os.environ.setdefault("APP_ENV", "prod")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import fakeredis.aioredis
import pytest
from PIL import Image

from config.cache import use_redis
from repository.blob_repository import BlobRepository
from repository.job_repository import JobRepository


@pytest.fixture
async def redis():
    client = fakeredis.aioredis.FakeRedis()
    await client.flushall()
    use_redis(client)
    yield client
    use_redis(None)
    await client.aclose()


@pytest.fixture
def scratch(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def blobs(redis):
    return BlobRepository(ttl_seconds=600, stream_chunk_bytes=64 * 1024)


@pytest.fixture
def jobs(redis):
    return JobRepository(ttl_seconds=600)


def make_image(fmt: str = "JPEG", size=(64, 48), mode: str = "RGB") -> bytes:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image("JPEG")


async def put_blob(store: BlobRepository, name: str, mime: str, data: bytes) -> str:
    blob_id = await store.create({"name": name, "mimeType": mime})
    await store.write(blob_id, data)
    return blob_id
