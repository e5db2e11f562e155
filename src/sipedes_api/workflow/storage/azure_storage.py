"""Azure Blob Storage backend for permohonan documents."""

import asyncio
from typing import Optional

from azure.core.exceptions import ResourceExistsError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient
from azure.storage.blob import ContentSettings
from loguru import logger

from sipedes_api.workflow.storage.blob_storage import BlobStorage

LOCATOR_SCHEME = "azblob://"


class AzureBlobStorage(BlobStorage):
    """
    Stores documents as block blobs in one container.

    Authentication: connection string when given, otherwise the storage
    account URL with DefaultAzureCredential (managed identity in Azure).
    """

    def __init__(
        self,
        container_name: str = "permohonan-documents",
        connection_string: Optional[str] = None,
        account_url: Optional[str] = None,
    ):
        """
        Initialize Azure Blob Storage backend.

        Args:
            container_name: Container for documents (created if missing)
            connection_string: Azure Storage connection string
            account_url: Storage Account URL (e.g., https://<account>.blob.core.windows.net)
        """
        if connection_string:
            self.blob_service_client = BlobServiceClient.from_connection_string(connection_string)
            self._auth_method = "connection_string"
        elif account_url:
            self.blob_service_client = BlobServiceClient(
                account_url=account_url,
                credential=DefaultAzureCredential(),
            )
            self._auth_method = "managed_identity"
        else:
            raise ValueError("AzureBlobStorage needs a connection string or an account URL")

        self.container_name = container_name
        self.container_client = self.blob_service_client.get_container_client(container_name)
        self._container_ready = False

    def _ensure_container(self) -> None:
        if self._container_ready:
            return
        try:
            self.container_client.create_container()
            logger.info(f"Created blob container '{self.container_name}'")
        except ResourceExistsError:
            logger.debug(f"Blob container '{self.container_name}' exists")
        self._container_ready = True

    def _upload(self, name: str, data: bytes, content_type: str) -> None:
        self._ensure_container()
        blob_client = self.container_client.get_blob_client(name)
        blob_client.upload_blob(
            data,
            overwrite=False,
            content_settings=ContentSettings(content_type=content_type),
        )

    def _download(self, name: str) -> bytes:
        return self.container_client.get_blob_client(name).download_blob().readall()

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(self._upload, name, data, content_type)
        except Exception as e:
            logger.error(
                f"Failed to upload blob {name}: {e}",
                container=self.container_name,
                auth_method=self._auth_method,
            )
            raise
        logger.debug("Stored blob in Azure", blob_name=name, size_bytes=len(data), container=self.container_name)
        return f"{LOCATOR_SCHEME}{self.container_name}/{name}"

    async def get(self, locator: str) -> bytes:
        prefix = f"{LOCATOR_SCHEME}{self.container_name}/"
        if not locator.startswith(prefix):
            raise ValueError(f"Locator does not belong to container '{self.container_name}': {locator}")
        return await asyncio.to_thread(self._download, locator[len(prefix):])

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self.container_client.get_container_properties)
            return True
        except Exception as e:
            logger.error(f"Azure blob storage health check failed: {e}")
            return False
