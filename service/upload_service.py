# service/upload_service.py
import asyncio
import logging
from config.settings import settings
from model.api import ChunkUploadResponse
from model.upload import FileMetadata, UploadSession
from repository.blob_repository import BlobStore
from repository.upload_session_repository import UploadSessionRepository
from util.errors import ChunkRejected, ConverterError, SessionNotFound
from util.functions import percent_of

logger = logging.getLogger(__name__)


class UploadService:
    """
    Chunked upload into the blob store.

    Flow:
    - init: the store allocates a placeholder whose id becomes the session id.
    - upload_chunk: positional write of [start, end), counted once per range;
      a range overlapping a different applied range is rejected.
    - complete: returns the store's canonical metadata, drops bookkeeping.
    """

    def __init__(
        self,
        sessions: UploadSessionRepository,
        store: BlobStore,
        chunk_timeout: float = settings.CHUNK_TIMEOUT_SECONDS,
    ) -> None:
        self._sessions = sessions
        self._store = store
        self._chunk_timeout = float(chunk_timeout)

    async def init(self, file_name: str, mime_type: str, declared_size: int) -> str:
        if declared_size < 0:
            raise ChunkRejected(f"Declared size must be >= 0, got {declared_size}")
        session_id = await self._store.create({"name": file_name, "mimeType": mime_type})
        await self._sessions.create(
            UploadSession(
                sessionId=session_id,
                fileName=file_name,
                mimeType=mime_type,
                declaredSize=declared_size,
            )
        )
        logger.info("upload.init session=%s declared=%d", session_id, declared_size)
        return session_id

    async def _require(self, session_id: str) -> UploadSession:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Upload session {session_id} not found")
        return session

    async def upload_chunk(
        self, session_id: str, chunk: bytes, start: int, end: int
    ) -> ChunkUploadResponse:
        session = await self._require(session_id)
        declared = session.declaredSize
        if start < 0 or end <= start or end > declared:
            raise ChunkRejected(
                f"Range {start}-{end} outside declared size {declared}"
            )
        if len(chunk) != end - start:
            raise ChunkRejected(
                f"Range {start}-{end} expects {end - start} bytes, got {len(chunk)}"
            )
        # Only exact replays may touch bytes that were already counted.
        applied = await self._sessions.applied_ranges(session_id)
        if (start, end) not in applied:
            for a_start, a_end in applied:
                if a_start < end and start < a_end:
                    logger.warning(
                        "upload.chunk.overlap session=%s range=%d-%d applied=%d-%d",
                        session_id,
                        start,
                        end,
                        a_start,
                        a_end,
                    )
                    raise ChunkRejected(
                        f"Range {start}-{end} overlaps uploaded range {a_start}-{a_end}"
                    )

        try:
            await asyncio.wait_for(
                self._store.write(session_id, chunk, offset=start),
                timeout=self._chunk_timeout,
            )
        except asyncio.TimeoutError as e:
            await self._sessions.set_status(session_id, "failed")
            logger.error("upload.chunk.timeout session=%s range=%d-%d", session_id, start, end)
            raise ChunkRejected(
                f"Chunk write timed out after {self._chunk_timeout:g} s"
            ) from e
        except ConverterError as e:
            await self._sessions.set_status(session_id, "failed")
            logger.error(
                "upload.chunk.error session=%s range=%d-%d err=%s",
                session_id,
                start,
                end,
                e.code,
            )
            raise ChunkRejected(f"Chunk write failed: {e.detail}") from e

        if await self._sessions.claim_range(session_id, start, end):
            uploaded = await self._sessions.add_uploaded(session_id, end - start, declared)
        else:
            # Retry of an applied range: bytes rewritten in place, not recounted.
            logger.info("upload.chunk.replay session=%s range=%d-%d", session_id, start, end)
            uploaded = session.uploadedSize
        await self._sessions.set_status(session_id, "uploading")

        progress = percent_of(uploaded, declared)
        logger.info(
            "upload.chunk.ok session=%s progress=%d uploaded=%d", session_id, progress, uploaded
        )
        return ChunkUploadResponse(progress=progress, uploadedSize=uploaded)

    async def complete(self, session_id: str) -> FileMetadata:
        session = await self._require(session_id)
        meta = await self._store.get_metadata(session_id)
        if session.uploadedSize < session.declaredSize:
            logger.warning(
                "upload.complete.short session=%s uploaded=%d declared=%d",
                session_id,
                session.uploadedSize,
                session.declaredSize,
            )
        await self._sessions.delete(session_id)
        logger.info("upload.complete session=%s size=%d", session_id, meta.size)
        return meta
