# service/conversion_service.py
import asyncio
import logging
import re
import time
from pathlib import Path
from typing import AsyncIterator, Optional, Set
from uuid import uuid4
import aiofiles
from fastapi import UploadFile
from config.settings import settings
from core.conversion_pipeline import ConversionPipeline, remove_scratch
from core.media import format_from
from core.progress import ProgressHub, ProgressSink
from core.transcoder import TranscodeEngine
from model.api import JobStatusResponse
from model.job import LOCAL_SOURCE, STATUS_ORDER, TERMINAL_STATUSES, Job
from repository.blob_repository import BlobStore
from repository.job_repository import JobRepository
from util.constants import BLOB_ID_PATTERN, NOT_FOUND_DETAIL
from util.errors import BlobNotFound, ConverterError, JobNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

UPLOAD_READ_BYTES = 1024 * 1024


def new_job_id(source_id: str) -> str:
    """<sourceId>-<ns timestamp>-<random suffix>: unique even for repeated sources."""
    return f"{source_id}-{time.time_ns()}-{uuid4().hex[:8]}"


def _snapshot(job: Job) -> JobStatusResponse:
    return JobStatusResponse(
        progress=job.progress,
        status=job.status,
        resultRef=job.resultRef,
        errorDetail=job.errorDetail,
    )


def _rank(snap: JobStatusResponse) -> tuple:
    order = STATUS_ORDER.index(snap.status) if snap.status in STATUS_ORDER else len(STATUS_ORDER)
    return order, snap.progress


class ConversionJobTracker:
    """
    Owns every in-flight conversion in this process.

    Flow:
    - start/start_local register a queued job and spawn one asyncio task per job.
    - Each task runs the pipeline under a watchdog (JOB_TIMEOUT_SECONDS).
    - get_status reads the job table and never raises.
    - subscribe yields snapshots until the job is terminal.
    """

    def __init__(
        self,
        jobs: JobRepository,
        engine: Optional[TranscodeEngine] = None,
        hub: Optional[ProgressHub] = None,
        scratch_root: Path | str = settings.SCRATCH_DIR,
        job_timeout: float = settings.JOB_TIMEOUT_SECONDS,
        download_timeout: float = settings.DOWNLOAD_TIMEOUT_SECONDS,
    ) -> None:
        self._jobs = jobs
        self._hub = hub or ProgressHub()
        self._scratch = Path(scratch_root)
        self._timeout = float(job_timeout)
        self._pipeline = ConversionPipeline(
            engine or TranscodeEngine(), self._scratch, download_timeout
        )
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ---------------- Start ----------------

    async def start(self, source_ref: str, target_format: str, store: BlobStore) -> str:
        # The source id is part of the job id and therefore of its scratch path.
        if not re.fullmatch(BLOB_ID_PATTERN, source_ref):
            raise BlobNotFound(f"File {source_ref} not found")
        job = Job(
            id=new_job_id(source_ref),
            sourceRef=source_ref,
            targetFormat=target_format.strip().lower(),
        )
        job = await self._jobs.create(job)
        logger.info(
            "job.queued job=%s source=%s target=%s", job.id, source_ref, job.targetFormat
        )
        self._spawn(job, store)
        return job.id

    async def start_local(
        self, file: UploadFile, target_format: str, store: BlobStore
    ) -> str:
        """Stage an uploaded file in scratch and convert it without a download stage."""
        job_id = new_job_id(LOCAL_SOURCE)
        name = file.filename or "upload"
        fmt = format_from(name, file.content_type)
        workdir = self._pipeline.workdir(job_id)
        staged = workdir / (f"source.{fmt}" if fmt else "source")

        written = 0
        try:
            workdir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(staged, "wb") as out:
                while chunk := await file.read(UPLOAD_READ_BYTES):
                    await out.write(chunk)
                    written += len(chunk)
        except OSError as e:
            logger.error("job.stage.error job=%s err=%s", job_id, type(e).__name__)
            remove_scratch(workdir)
            raise StoreUnavailable(f"Could not stage upload: {e}") from e

        job = Job(
            id=job_id,
            sourceRef=LOCAL_SOURCE,
            sourceName=name,
            targetFormat=target_format.strip().lower(),
        )
        job = await self._jobs.create(job)
        logger.info(
            "job.queued job=%s source=local bytes=%d target=%s",
            job.id,
            written,
            job.targetFormat,
        )
        self._spawn(job, store, staged=staged, staged_mime=file.content_type)
        return job.id

    def _spawn(self, job: Job, store: BlobStore, **kwargs) -> None:
        task = asyncio.create_task(self._guarded(job, store, **kwargs), name=f"job:{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, job: Job, store: BlobStore, **kwargs) -> None:
        sink = ProgressSink(job, self._jobs, self._hub)
        try:
            await asyncio.wait_for(
                self._pipeline.run(sink, store, **kwargs), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            await self._fail_quietly(
                sink, f"conversion timed out after {self._timeout:g} s"
            )
        except asyncio.CancelledError:
            await self._fail_quietly(sink, "conversion cancelled")
            raise
        except ConverterError as e:
            # The pipeline could not persist its own terminal status.
            logger.error("job.pipeline.persist.error job=%s err=%s", job.id, e.code)

    @staticmethod
    async def _fail_quietly(sink: ProgressSink, detail: str) -> None:
        try:
            await sink.fail(detail)
        except ConverterError as e:
            logger.error("job.fail.persist.error job=%s err=%s", sink.job.id, e.code)

    # ---------------- Read ----------------

    async def get_status(self, job_id: str) -> JobStatusResponse:
        try:
            job = await self._jobs.require(job_id)
        except JobNotFound:
            job = None
        except Exception as e:
            logger.warning("job.status.read.error job=%s err=%s", job_id, type(e).__name__)
            job = None
        if job is None:
            # Polling is always safe: unknown ids read as a failed job.
            return JobStatusResponse(
                progress=0, status="error", errorDetail=NOT_FOUND_DETAIL
            )
        return _snapshot(job)

    async def subscribe(self, job_id: str) -> AsyncIterator[JobStatusResponse]:
        """
        Current snapshot first, then every change, ending after a terminal one.
        An unknown job yields the not-found snapshot once.
        """
        q = self._hub.subscribe(job_id)
        try:
            current = await self.get_status(job_id)
            yield current
            if current.status in TERMINAL_STATUSES:
                return
            last = current
            while True:
                job: Job = await q.get()
                snap = _snapshot(job)
                # Queued snapshots may predate the one read from the table.
                if snap == last or _rank(snap) < _rank(last):
                    continue
                last = snap
                yield snap
                if job.is_terminal:
                    return
        finally:
            self._hub.unsubscribe(job_id, q)

    # ---------------- Lifecycle ----------------

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight jobs; returns early after `timeout` seconds."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self) -> None:
        tasks = set(self._tasks)
        if not tasks:
            return
        logger.info("job.shutdown cancelling=%d", len(tasks))
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
