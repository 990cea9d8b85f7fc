# service/file_service.py
import logging
from typing import AsyncIterator, Tuple
from model.upload import FileMetadata
from repository.blob_repository import BlobStore

logger = logging.getLogger(__name__)


class FileService:
    def __init__(self, store: BlobStore) -> None:
        self._store = store

    async def open_download(self, file_id: str) -> Tuple[FileMetadata, AsyncIterator[bytes]]:
        """Metadata is fetched up front so a missing blob fails before streaming starts."""
        meta = await self._store.get_metadata(file_id)
        logger.info("file.download id=%s size=%d", file_id, meta.size)
        return meta, self._store.read_stream(file_id)

    async def delete(self, file_id: str) -> None:
        await self._store.delete(file_id)
        logger.info("file.delete id=%s", file_id)
