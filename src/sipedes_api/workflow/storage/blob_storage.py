"""
Blob Storage Interface

Stores document bytes and returns an opaque locator. The workflow only keeps
the locator; nothing outside the storage backend interprets it.
"""

from abc import ABC
from abc import abstractmethod


class BlobStorage(ABC):
    """Bytes in, locator out."""

    @abstractmethod
    async def put(self, name: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``name`` and return its locator."""

    @abstractmethod
    async def get(self, locator: str) -> bytes:
        """Read the bytes a locator points at."""

    async def health_check(self) -> bool:
        return True
