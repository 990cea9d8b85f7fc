# repository/job_repository.py
import time
from typing import Dict, Final, Optional
from redis.asyncio import Redis
from redis.exceptions import RedisError
from config.cache import get_redis
from config.settings import settings
from model.job import Job
from repository.namespaces import JOBS
from util.errors import JobNotFound, StoreUnavailable

KEY_PREFIX: Final[str] = JOBS


class JobRepository:
    """
    Job status table: one Redis hash per job id, replaced atomically on every
    write (MULTI/EXEC). Only the pipeline task owning a job writes its key.
    """

    def __init__(self, ttl_seconds: int = settings.PERSISTENCE_TTL_SECONDS) -> None:
        self._ttl = int(ttl_seconds)

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{KEY_PREFIX}:{job_id}"

    @staticmethod
    def _mapping(job: Job) -> Dict[str, str]:
        raw = job.model_dump(mode="json", exclude_none=True)
        return {k: str(v) for k, v in raw.items()}

    # ---------------- Core CRUD ----------------

    async def create(self, job: Job) -> Job:
        now = int(time.time())
        job = job.model_copy(update={"createdAt": now, "updatedAt": now})
        await self.put(job)
        return job

    async def put(self, job: Job) -> None:
        key = self._key(job.id)
        try:
            r = await self._client()
            async with r.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=self._mapping(job))
                pipe.expire(key, self._ttl)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Job table write failed: {type(e).__name__}") from e

    async def get(self, job_id: str) -> Optional[Job]:
        if not job_id:
            return None
        r = await self._client()
        h = await r.hgetall(self._key(job_id))
        if not h:
            return None

        def _s(key: str) -> Optional[str]:
            v = h.get(key.encode("utf-8"), h.get(key))
            if v is None:
                return None
            return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)

        try:
            return Job(
                id=_s("id") or job_id,
                sourceRef=_s("sourceRef") or "",
                targetFormat=_s("targetFormat") or "",
                sourceName=_s("sourceName"),
                mediaKind=_s("mediaKind"),
                status=_s("status") or "queued",
                progress=int(_s("progress") or 0),
                resultRef=_s("resultRef"),
                errorDetail=_s("errorDetail"),
                createdAt=int(_s("createdAt") or 0),
                updatedAt=int(_s("updatedAt") or 0),
            )
        except Exception:
            return None

    async def require(self, job_id: str) -> Job:
        job = await self.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return job

    async def delete(self, job_id: str) -> int:
        if not job_id:
            return 0
        r = await self._client()
        return int(await r.delete(self._key(job_id)))
