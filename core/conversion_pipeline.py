# core/conversion_pipeline.py
import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional, Tuple
import aiofiles
from config.settings import settings
from core.media import ConversionPlan, plan_conversion, resolve_target
from core.progress import ProgressSink
from core.transcoder import TranscodeEngine
from model.upload import FileMetadata
from repository.blob_repository import BlobStore
from util.constants import (
    PROGRESS_CONVERT_START,
    PROGRESS_DOWNLOAD_START,
    PROGRESS_UPLOAD_START,
)
from util.errors import CleanupFailure, ConverterError, StoreUnavailable
from util.functions import extension_of, remap_convert_progress, swap_extension
from util.timing import timed

logger = logging.getLogger(__name__)


def job_workdir(scratch_root: Path, job_id: str) -> Path:
    """Per-job scratch directory; raises StoreUnavailable if it would leave the root."""
    root = Path(scratch_root).resolve()
    workdir = (root / job_id).resolve()
    if workdir == root or not workdir.is_relative_to(root):
        raise StoreUnavailable(f"Invalid scratch directory for job {job_id!r}")
    return workdir


def remove_scratch(workdir: Path) -> None:
    """Remove a job's scratch directory; raises CleanupFailure on OS errors."""
    if not workdir.exists():
        return
    try:
        shutil.rmtree(workdir)
    except OSError as e:
        raise CleanupFailure(f"Could not remove {workdir.name}: {e}") from e


class ConversionPipeline:
    """
    Stages (sequential, one task per job):
      1) download  source blob -> <scratch>/<jobId>/source.<ext>   (10 -> 30)
      2) convert   TranscodeEngine, engine % remapped to 30..70
      3) upload    result bytes -> new blob                        (70)
      4) cleanup   scratch dir removed, then the terminal status is written
    Any stage failure ends in `error` with the failure's message.
    """

    def __init__(
        self,
        engine: TranscodeEngine,
        scratch_root: Path,
        download_timeout: float = settings.DOWNLOAD_TIMEOUT_SECONDS,
    ) -> None:
        self._engine = engine
        self._scratch = Path(scratch_root)
        self._download_timeout = float(download_timeout)

    def workdir(self, job_id: str) -> Path:
        return job_workdir(self._scratch, job_id)

    async def run(
        self,
        sink: ProgressSink,
        store: BlobStore,
        staged: Optional[Path] = None,
        staged_mime: Optional[str] = None,
    ) -> None:
        job = sink.job
        try:
            workdir = self.workdir(job.id)
        except ConverterError as e:
            await sink.fail(e.detail)
            return
        try:
            with timed(logger, "job.pipeline", job=job.id, target=job.targetFormat):
                result_id = await self._stages(sink, store, workdir, staged, staged_mime)
        except asyncio.CancelledError:
            self._cleanup(workdir, job.id)
            raise
        except ConverterError as e:
            self._cleanup(workdir, job.id)
            await sink.fail(e.detail)
            return
        except Exception as e:
            logger.exception("job.pipeline.unexpected job=%s", job.id)
            self._cleanup(workdir, job.id)
            await sink.fail(f"Conversion failed: {e}")
            return

        self._cleanup(workdir, job.id)
        await sink.complete(result_id)

    async def _stages(
        self,
        sink: ProgressSink,
        store: BlobStore,
        workdir: Path,
        staged: Optional[Path],
        staged_mime: Optional[str],
    ) -> str:
        job = sink.job
        # Reject unknown targets before touching the store.
        resolve_target(job.targetFormat)
        workdir.mkdir(parents=True, exist_ok=True)

        if staged is None:
            await sink.advance("downloading", PROGRESS_DOWNLOAD_START)
            meta, source_path = await self._download(store, job.sourceRef, workdir)
            source_name, source_mime = meta.name, meta.mimeType
            await sink.advance("downloading", PROGRESS_CONVERT_START, sourceName=source_name)
        else:
            source_path = staged
            source_name, source_mime = job.sourceName or staged.name, staged_mime

        plan = plan_conversion(job.targetFormat, source_name, source_mime)
        await sink.advance("converting", PROGRESS_CONVERT_START, mediaKind=plan.kind)

        async def on_progress(engine_percent: float) -> None:
            await sink.advance("converting", remap_convert_progress(engine_percent))

        data = await self._engine.transcode(source_path, plan, on_progress, workdir)

        await sink.advance("uploading", PROGRESS_UPLOAD_START)
        return await self._upload(store, data, source_name, plan)

    async def _download(
        self, store: BlobStore, blob_id: str, workdir: Path
    ) -> Tuple[FileMetadata, Path]:
        try:
            return await asyncio.wait_for(
                self._fetch(store, blob_id, workdir), timeout=self._download_timeout
            )
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                f"Download timed out after {self._download_timeout:g} s"
            ) from e

    @staticmethod
    async def _fetch(
        store: BlobStore, blob_id: str, workdir: Path
    ) -> Tuple[FileMetadata, Path]:
        with timed(logger, "job.download", blob=blob_id) as fields:
            meta = await store.get_metadata(blob_id)
            ext = extension_of(meta.name)
            path = workdir / (f"source.{ext}" if ext else "source")
            written = 0
            async with aiofiles.open(path, "wb") as out:
                async for part in store.read_stream(blob_id):
                    await out.write(part)
                    written += len(part)
            fields["bytes"] = written
        return meta, path

    @staticmethod
    async def _upload(
        store: BlobStore, data: bytes, source_name: str, plan: ConversionPlan
    ) -> str:
        name = swap_extension(
            source_name or "converted", plan.output_extension or plan.target_format
        )
        with timed(logger, "job.upload", bytes=len(data)):
            result_id = await store.create({"name": name, "mimeType": plan.target_mime})
            try:
                await store.write(result_id, data)
            except ConverterError:
                try:
                    await store.delete(result_id)
                except ConverterError as e:
                    logger.warning(
                        "job.upload.placeholder.leak id=%s err=%s", result_id, e.code
                    )
                raise
        return result_id

    @staticmethod
    def _cleanup(workdir: Path, job_id: str) -> None:
        try:
            remove_scratch(workdir)
        except CleanupFailure as e:
            logger.error("job.cleanup.error job=%s detail=%s", job_id, e.detail)
