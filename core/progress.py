# core/progress.py
import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Dict, Optional, Set
from model.job import STATUS_ORDER, Job, JobStatus
from repository.job_repository import JobRepository
from util.constants import PROGRESS_DONE

logger = logging.getLogger(__name__)


class ProgressHub:
    """
    In-process fan-out of job snapshots to event-stream subscribers.
    Each subscriber owns an unbounded queue; publishing never blocks the pipeline.
    """

    def __init__(self) -> None:
        self._subs: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        self._subs[job_id].add(q)
        return q

    def unsubscribe(self, job_id: str, q: asyncio.Queue) -> None:
        subs = self._subs.get(job_id)
        if not subs:
            return
        subs.discard(q)
        if not subs:
            self._subs.pop(job_id, None)

    def publish(self, job: Job) -> None:
        for q in list(self._subs.get(job.id, ())):
            q.put_nowait(job)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subs.get(job_id, ()))


class ProgressSink:
    """
    The only writer of a job's record while its pipeline runs.

    - progress never decreases (error keeps the last value)
    - status only moves forward along STATUS_ORDER; error is reachable from
      any non-terminal status
    - once terminal, further updates are ignored
    Every accepted change is persisted first, then published to the hub.
    """

    def __init__(
        self, job: Job, jobs: JobRepository, hub: Optional[ProgressHub] = None
    ) -> None:
        self._job = job
        self._jobs = jobs
        self._hub = hub

    @property
    def job(self) -> Job:
        return self._job

    async def _commit(self, update: Dict[str, Any]) -> Job:
        update["updatedAt"] = int(time.time())
        self._job = self._job.model_copy(update=update)
        await self._jobs.put(self._job)
        if self._hub is not None:
            self._hub.publish(self._job)
        return self._job

    async def advance(
        self, status: JobStatus, progress: Optional[int] = None, **fields: Any
    ) -> Job:
        job = self._job
        if job.is_terminal:
            logger.debug("job.progress.ignored job=%s status=%s", job.id, status)
            return job
        if status == "error":
            raise ValueError("use fail() to enter the error status")

        cur_idx = STATUS_ORDER.index(job.status)
        new_idx = STATUS_ORDER.index(status)
        if new_idx < cur_idx:
            logger.warning(
                "job.status.backwards job=%s from=%s to=%s", job.id, job.status, status
            )
            status = job.status

        new_progress = job.progress
        if progress is not None:
            new_progress = max(job.progress, min(PROGRESS_DONE, int(progress)))

        changed = {k: v for k, v in fields.items() if getattr(job, k) != v}
        if status == job.status and new_progress == job.progress and not changed:
            return job
        if status != job.status:
            logger.info("job.status job=%s status=%s progress=%d", job.id, status, new_progress)
        return await self._commit({"status": status, "progress": new_progress, **changed})

    async def complete(self, result_ref: str) -> Job:
        if self._job.is_terminal:
            return self._job
        logger.info("job.completed job=%s result=%s", self._job.id, result_ref)
        return await self._commit(
            {"status": "completed", "progress": PROGRESS_DONE, "resultRef": result_ref}
        )

    async def fail(self, detail: str) -> Job:
        if self._job.is_terminal:
            return self._job
        logger.error(
            "job.error job=%s at=%s progress=%d detail=%s",
            self._job.id,
            self._job.status,
            self._job.progress,
            detail,
        )
        return await self._commit({"status": "error", "errorDetail": detail})
