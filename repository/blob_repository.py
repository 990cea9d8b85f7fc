# repository/blob_repository.py
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import AsyncIterator, Iterator, Mapping, Optional
from uuid import uuid4
from redis.asyncio import Redis
from redis.exceptions import RedisError
from config.cache import get_redis
from config.settings import settings
from model.upload import FileMetadata
from repository.namespaces import BLOB_META, BLOBS
from util.errors import BlobNotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """
    Uniform get/put/delete/stream surface over remote storage.
    Implementations raise StoreUnavailable (or BlobNotFound) for provider errors.
    """

    @abstractmethod
    async def create(self, metadata: Mapping[str, str]) -> str: ...

    @abstractmethod
    async def write(
        self, blob_id: str, data: bytes, offset: Optional[int] = None
    ) -> None:
        """offset=None replaces the content; an int writes in place at that byte."""

    @abstractmethod
    def read_stream(self, blob_id: str) -> AsyncIterator[bytes]: ...

    @abstractmethod
    async def get_metadata(self, blob_id: str) -> FileMetadata: ...

    @abstractmethod
    async def delete(self, blob_id: str) -> None: ...

    async def read_all(self, blob_id: str) -> bytes:
        parts = [part async for part in self.read_stream(blob_id)]
        return b"".join(parts)


@contextmanager
def _provider_errors(op: str, blob_id: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.error("blob.%s.error id=%s err=%s", op, blob_id, type(e).__name__)
        raise StoreUnavailable(f"Storage {op} failed: {type(e).__name__}") from e


class BlobRepository(BlobStore):
    """
    Redis-backed blob store: bytes under one key, metadata in a sibling hash.

    Positional writes use SETRANGE so chunks may land in any order and a
    replayed chunk overwrites itself. TTL is refreshed on every write.
    """

    def __init__(
        self,
        ttl_seconds: int = settings.PERSISTENCE_TTL_SECONDS,
        stream_chunk_bytes: int = settings.STREAM_CHUNK_BYTES,
    ) -> None:
        self._ttl = int(ttl_seconds)
        self._chunk = max(1, int(stream_chunk_bytes))

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _key(blob_id: str) -> str:
        return f"{BLOBS}:{blob_id}"

    @staticmethod
    def _meta_key(blob_id: str) -> str:
        return f"{BLOB_META}:{blob_id}"

    async def _require(self, r: Redis, blob_id: str) -> dict:
        h = await r.hgetall(self._meta_key(blob_id))
        if not h:
            raise BlobNotFound(f"File {blob_id} not found")
        return {
            (k.decode("utf-8") if isinstance(k, (bytes, bytearray)) else str(k)): (
                v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)
            )
            for k, v in h.items()
        }

    async def _refresh(self, r: Redis, blob_id: str) -> None:
        await r.expire(self._key(blob_id), self._ttl)
        await r.expire(self._meta_key(blob_id), self._ttl)

    async def create(self, metadata: Mapping[str, str]) -> str:
        blob_id = uuid4().hex
        with _provider_errors("create", blob_id):
            r = await self._client()
            await r.hset(
                self._meta_key(blob_id),
                mapping={
                    "id": blob_id,
                    "name": str(metadata.get("name") or blob_id),
                    "mimeType": str(
                        metadata.get("mimeType") or "application/octet-stream"
                    ),
                    "createdAt": str(int(time.time())),
                },
            )
            await r.set(self._key(blob_id), b"", ex=self._ttl)
            await r.expire(self._meta_key(blob_id), self._ttl)
        logger.info("blob.create id=%s", blob_id)
        return blob_id

    async def write(
        self, blob_id: str, data: bytes, offset: Optional[int] = None
    ) -> None:
        with _provider_errors("write", blob_id):
            r = await self._client()
            await self._require(r, blob_id)
            if offset is None:
                await r.set(self._key(blob_id), data, ex=self._ttl)
            else:
                await r.setrange(self._key(blob_id), int(offset), data)
            await self._refresh(r, blob_id)
        logger.debug(
            "blob.write id=%s offset=%s bytes=%d", blob_id, offset, len(data)
        )

    async def read_stream(self, blob_id: str) -> AsyncIterator[bytes]:
        with _provider_errors("read", blob_id):
            r = await self._client()
            await self._require(r, blob_id)
            size = int(await r.strlen(self._key(blob_id)) or 0)
        pos = 0
        while pos < size:
            end = min(pos + self._chunk, size) - 1
            with _provider_errors("read", blob_id):
                part = await r.getrange(self._key(blob_id), pos, end)
            if not part:
                break
            yield bytes(part)
            pos += len(part)

    async def get_metadata(self, blob_id: str) -> FileMetadata:
        with _provider_errors("metadata", blob_id):
            r = await self._client()
            meta = await self._require(r, blob_id)
            size = int(await r.strlen(self._key(blob_id)) or 0)
        return FileMetadata(
            id=meta.get("id") or blob_id,
            name=meta.get("name") or blob_id,
            mimeType=meta.get("mimeType") or "application/octet-stream",
            size=size,
        )

    async def delete(self, blob_id: str) -> None:
        with _provider_errors("delete", blob_id):
            r = await self._client()
            removed = int(await r.delete(self._key(blob_id), self._meta_key(blob_id)))
        if removed == 0:
            raise BlobNotFound(f"File {blob_id} not found")
        logger.info("blob.delete id=%s", blob_id)
