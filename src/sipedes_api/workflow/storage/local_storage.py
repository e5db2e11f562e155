"""Local filesystem blob storage (default backend for single-node deployments)."""

import asyncio
from pathlib import Path
from typing import Union

from loguru import logger

from sipedes_api.workflow.storage.blob_storage import BlobStorage

LOCATOR_SCHEME = "file://"


class LocalBlobStorage(BlobStorage):
    """Writes each blob to ``<root>/<name>``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _path_for(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Blob name escapes storage root: {name}")
        return path

    def _write(self, name: str, data: bytes) -> Path:
        path = self._path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        await asyncio.to_thread(self._write, name, data)
        logger.debug("Stored blob on local disk", blob_name=name, size_bytes=len(data), content_type=content_type)
        return f"{LOCATOR_SCHEME}{name}"

    async def get(self, locator: str) -> bytes:
        if not locator.startswith(LOCATOR_SCHEME):
            raise ValueError(f"Not a local storage locator: {locator}")
        path = self._path_for(locator[len(LOCATOR_SCHEME):])
        return await asyncio.to_thread(path.read_bytes)

    async def health_check(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return self.root.is_dir()
        except OSError as e:
            logger.error(f"Local blob storage health check failed: {e}")
            return False
