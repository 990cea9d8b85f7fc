# service/janitor_service.py
import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import List, Optional
from config.settings import settings

logger = logging.getLogger(__name__)


class TempFileJanitor:
    """
    Removes scratch entries (files or per-job directories) older than the
    retention window. Never raises: per-entry failures are logged and skipped.
    """

    def __init__(
        self,
        directory: Path | str = settings.SCRATCH_DIR,
        retention_seconds: float = settings.SCRATCH_RETENTION_SECONDS,
        interval_seconds: float = settings.JANITOR_INTERVAL_SECONDS,
    ) -> None:
        self._dir = Path(directory)
        self._retention = float(retention_seconds)
        self._interval = float(interval_seconds)

    def sweep(self, directory: Optional[Path] = None, now: Optional[float] = None) -> List[Path]:
        root = Path(directory) if directory is not None else self._dir
        now = time.time() if now is None else now
        removed: List[Path] = []
        try:
            entries = list(root.iterdir())
        except FileNotFoundError:
            return removed
        except OSError as e:
            logger.error("janitor.list.error dir=%s err=%s", root, type(e).__name__)
            return removed

        for entry in entries:
            try:
                age = now - entry.stat().st_mtime
                if age <= self._retention:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed.append(entry)
                logger.info("janitor.deleted entry=%s age_s=%d", entry.name, int(age))
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(
                    "janitor.delete.error entry=%s err=%s", entry.name, type(e).__name__
                )
        return removed

    async def run(self) -> None:
        """Sweep now, then every interval, until cancelled."""
        logger.info(
            "janitor.start dir=%s retention_s=%d interval_s=%d",
            self._dir,
            int(self._retention),
            int(self._interval),
        )
        while True:
            removed = await asyncio.to_thread(self.sweep)
            if removed:
                logger.info("janitor.sweep removed=%d", len(removed))
            await asyncio.sleep(self._interval)
