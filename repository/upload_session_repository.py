# repository/upload_session_repository.py
from typing import List, Optional, Tuple
from redis.asyncio import Redis
from config.cache import get_redis
from config.settings import settings
from model.upload import UploadSession, UploadStatus
from repository.namespaces import UPLOAD_RANGES, UPLOADS


class UploadSessionRepository:
    """
    Flow:
    - One hash per in-flight upload keyed by the blob store's session id.
    - uploadedSize grows via HINCRBY so concurrent chunk calls never lose an update.
    - Applied (start, end) ranges live in a set; SADD tells a first delivery
      from a retry of an already-counted chunk; applied_ranges feeds the
      service's overlap check.
    """

    def __init__(self, ttl_seconds: int = settings.PERSISTENCE_TTL_SECONDS) -> None:
        self._ttl = int(ttl_seconds)

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{UPLOADS}:{session_id}"

    @staticmethod
    def _ranges_key(session_id: str) -> str:
        return f"{UPLOAD_RANGES}:{session_id}"

    async def create(self, session: UploadSession) -> None:
        r = await self._client()
        await r.hset(
            self._key(session.sessionId),
            mapping={
                "sessionId": session.sessionId,
                "fileName": session.fileName,
                "mimeType": session.mimeType,
                "declaredSize": str(session.declaredSize),
                "uploadedSize": str(session.uploadedSize),
                "status": session.status,
            },
        )
        await r.expire(self._key(session.sessionId), self._ttl)

    async def get(self, session_id: str) -> Optional[UploadSession]:
        if not session_id:
            return None
        r = await self._client()
        h = await r.hgetall(self._key(session_id))
        if not h:
            return None

        def _s(key: str, default: str = "") -> str:
            v = h.get(key.encode("utf-8"), h.get(key))
            if v is None:
                return default
            return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)

        declared = int(_s("declaredSize", "0") or 0)
        return UploadSession(
            sessionId=_s("sessionId") or session_id,
            fileName=_s("fileName"),
            mimeType=_s("mimeType") or "application/octet-stream",
            declaredSize=declared,
            uploadedSize=min(declared, int(_s("uploadedSize", "0") or 0)),
            status=_s("status") or "initializing",
        )

    async def claim_range(self, session_id: str, start: int, end: int) -> bool:
        """True when (start, end) had not been applied before."""
        r = await self._client()
        added = await r.sadd(self._ranges_key(session_id), f"{start}-{end}")
        await r.expire(self._ranges_key(session_id), self._ttl)
        return bool(added)

    async def applied_ranges(self, session_id: str) -> List[Tuple[int, int]]:
        r = await self._client()
        members = await r.smembers(self._ranges_key(session_id))
        ranges = []
        for m in members:
            text = m.decode("utf-8") if isinstance(m, (bytes, bytearray)) else str(m)
            start, _, end = text.partition("-")
            ranges.append((int(start), int(end)))
        return sorted(ranges)

    async def add_uploaded(self, session_id: str, nbytes: int, declared: int) -> int:
        r = await self._client()
        total = int(await r.hincrby(self._key(session_id), "uploadedSize", nbytes))
        if total > declared:
            # Racing overlapping chunks can both pass the overlap check.
            # Never report more than declared.
            await r.hset(self._key(session_id), "uploadedSize", str(declared))
            total = declared
        await r.expire(self._key(session_id), self._ttl)
        return total

    async def set_status(self, session_id: str, status: UploadStatus) -> None:
        r = await self._client()
        await r.hset(self._key(session_id), mapping={"status": status})
        await r.expire(self._key(session_id), self._ttl)

    async def delete(self, session_id: str) -> int:
        r = await self._client()
        return int(await r.delete(self._key(session_id), self._ranges_key(session_id)))
