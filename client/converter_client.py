# client/converter_client.py
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union
import httpx
from model.api import JobStatusResponse
from model.upload import FileMetadata
from util.constants import CHUNK_SIZE, InternalURIs

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int], Union[Awaitable[None], None]]

MAX_POLL_RETRIES = 3


class ConverterClientError(Exception):
    """Non-2xx answer from the service, carrying its error envelope."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code}: {message}")


class ConversionTrackingError(Exception):
    """Status polling failed too many times in a row."""


class ConversionFailedError(Exception):
    def __init__(self, job_id: str, detail: Optional[str]) -> None:
        self.job_id = job_id
        self.detail = detail or "error"
        super().__init__(f"Conversion {job_id} failed: {self.detail}")


async def _notify(fn: Optional[ProgressFn], value: int) -> None:
    if fn is None:
        return
    res = fn(value)
    if inspect.isawaitable(res):
        await res


def _raise_for_envelope(res: httpx.Response) -> None:
    if res.is_success:
        return
    code, message = "http_error", res.reason_phrase
    try:
        body = res.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        # ConverterError envelope, or FastAPI's {"detail": ...}
        env = body.get("detail") if isinstance(body.get("detail"), dict) else body
        code = str(env.get("error") or code)
        message = str(env.get("message") or env.get("detail") or message)
    raise ConverterClientError(res.status_code, code, message)


class ConverterClient:
    """
    Async SDK for the conversion service.

    Flow:
    - upload_file: init session, send CHUNK_SIZE slices, complete.
    - convert: start a job, then poll until completed (or raise).
    - download: fetch result bytes.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        chunk_size: int = CHUNK_SIZE,
        chunk_timeout: float = 30.0,
        poll_interval: float = 1.0,
        max_poll_retries: int = MAX_POLL_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = client or httpx.AsyncClient(base_url=base_url, timeout=30.0)
        self._owns_http = client is None
        self._chunk_size = max(1, int(chunk_size))
        self._chunk_timeout = chunk_timeout
        self._poll_interval = poll_interval
        self._max_retries = max(1, int(max_poll_retries))
        self._sleep = sleep

    async def __aenter__(self) -> "ConverterClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ---------------- Upload ----------------

    async def upload_file(
        self,
        data: bytes,
        file_name: str,
        mime_type: str = "application/octet-stream",
        on_progress: Optional[ProgressFn] = None,
    ) -> FileMetadata:
        res = await self._http.post(
            InternalURIs.UPLOADS,
            json={"fileName": file_name, "mimeType": mime_type, "declaredSize": len(data)},
        )
        _raise_for_envelope(res)
        session_id = res.json()["sessionId"]

        last = -1
        for start in range(0, len(data), self._chunk_size):
            end = min(start + self._chunk_size, len(data))
            res = await self._http.post(
                InternalURIs.UPLOAD_CHUNK.format(session_id=session_id),
                files={"chunk": (file_name, data[start:end], "application/octet-stream")},
                data={"start": str(start), "end": str(end)},
                timeout=self._chunk_timeout,
            )
            _raise_for_envelope(res)
            progress = int(res.json()["progress"])
            # Only strictly increasing values reach the caller.
            if progress > last:
                last = progress
                await _notify(on_progress, progress)

        res = await self._http.post(
            InternalURIs.COMPLETE_UPLOAD.format(session_id=session_id)
        )
        _raise_for_envelope(res)
        meta = FileMetadata.model_validate(res.json())
        logger.info("client.upload.done file=%s size=%d", meta.id, meta.size)
        return meta

    # ---------------- Conversion ----------------

    async def start_conversion(self, file_id: str, target_format: str) -> str:
        res = await self._http.post(
            InternalURIs.CONVERSIONS,
            json={"fileId": file_id, "targetFormat": target_format},
        )
        _raise_for_envelope(res)
        return res.json()["jobId"]

    async def get_status(self, job_id: str) -> JobStatusResponse:
        res = await self._http.get(InternalURIs.CONVERSION_STATUS.format(job_id=job_id))
        _raise_for_envelope(res)
        return JobStatusResponse.model_validate(res.json())

    async def wait_for_conversion(
        self, job_id: str, on_progress: Optional[ProgressFn] = None
    ) -> JobStatusResponse:
        """
        Poll every poll_interval. A failed poll waits poll_interval * 2**failures;
        a success resets the count. MAX_POLL_RETRIES consecutive failures give up.
        """
        failures = 0
        while True:
            try:
                snap = await self.get_status(job_id)
            except (httpx.HTTPError, ConverterClientError, ValueError) as e:
                failures += 1
                logger.warning(
                    "client.poll.error job=%s failures=%d err=%s",
                    job_id,
                    failures,
                    type(e).__name__,
                )
                if failures >= self._max_retries:
                    raise ConversionTrackingError(
                        f"Lost track of conversion {job_id} after {failures} failed polls"
                    ) from e
                await self._sleep(self._poll_interval * 2**failures)
                continue

            failures = 0
            await _notify(on_progress, snap.progress)
            if snap.status == "completed":
                return snap
            if snap.status == "error":
                raise ConversionFailedError(job_id, snap.errorDetail)
            await self._sleep(self._poll_interval)

    async def convert(
        self,
        file_id: str,
        target_format: str,
        on_progress: Optional[ProgressFn] = None,
    ) -> JobStatusResponse:
        job_id = await self.start_conversion(file_id, target_format)
        return await self.wait_for_conversion(job_id, on_progress)

    # ---------------- Files ----------------

    async def download(self, file_id: str) -> bytes:
        res = await self._http.get(InternalURIs.FILE.format(file_id=file_id))
        _raise_for_envelope(res)
        return res.content

    async def delete(self, file_id: str) -> None:
        res = await self._http.delete(InternalURIs.FILE.format(file_id=file_id))
        _raise_for_envelope(res)
