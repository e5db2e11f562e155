"""
Document Registry

Validates uploads against the document policy, hands the bytes to blob
storage and returns the metadata record the aggregate keeps.
"""

import hashlib
from pathlib import PurePosixPath
from typing import Optional
from uuid import UUID
from uuid import uuid4

from loguru import logger

from sipedes_api.workflow.enums import MediaType
from sipedes_api.workflow.enums import RESULT_LABEL
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.document import DocumentPolicy
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.document import UploadedFile
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.storage.blob_storage import BlobStorage
from sipedes_api.workflow.timeutils import Clock
from sipedes_api.workflow.timeutils import utc_now

EXTENSIONS = {
    MediaType.JPEG: ".jpg",
    MediaType.PNG: ".png",
    MediaType.PDF: ".pdf",
}


def display_name(filename: Optional[str]) -> str:
    """Client-supplied file name without any directory part."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    return name or "document"


class DocumentRegistry:
    """Identity and integrity of stored documents; content is never inspected."""

    def __init__(
        self,
        storage: BlobStorage,
        policy: Optional[DocumentPolicy] = None,
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.policy = policy or DocumentPolicy()
        self.clock = clock

    def validate(self, file: UploadedFile) -> MediaType:
        """
        Check an upload without storing it.

        Returns:
            Normalised media type

        Raises:
            ValidationFailed: empty file
            UnsupportedType: media type outside the allowed set
            FileTooLarge: above the configured maximum
        """
        name = display_name(file.filename)
        if file.size == 0:
            raise ValidationFailed(f"File '{name}' is empty", filename=name)
        return self.policy.check(name, file.content_type, file.size)

    async def validate_and_store(self, file: UploadedFile, label: str, permohonan_id: UUID) -> DocumentRecord:
        """
        Validate ``file`` and store its bytes.

        Args:
            file: Upload from the HTTP layer
            label: Requirement label, or ``result``
            permohonan_id: Owning permohonan, used to namespace the blob

        Returns:
            DocumentRecord carrying the storage locator
        """
        media_type = self.validate(file)
        document_id = uuid4()
        blob_name = f"{permohonan_id}/{document_id}{EXTENSIONS[media_type]}"
        locator = await self.storage.put(blob_name, file.data, media_type.value)

        record = DocumentRecord(
            document_id=document_id,
            name=display_name(file.filename),
            media_type=media_type,
            size_bytes=file.size,
            locator=locator,
            uploaded_at=self.clock(),
            label=label,
            sha256=hashlib.sha256(file.data).hexdigest(),
        )
        logger.info(
            "Document stored",
            permohonan_id=str(permohonan_id),
            document_id=str(document_id),
            label=record.label,
            media_type=media_type.value,
            size_bytes=record.size_bytes,
        )
        return record

    async def store_result(self, file: UploadedFile, permohonan_id: UUID) -> DocumentRecord:
        """Store the issued document under the ``result`` label."""
        return await self.validate_and_store(file, RESULT_LABEL, permohonan_id)

    def replace(self, permohonan: Permohonan, record: DocumentRecord) -> Permohonan:
        """Swap in ``record`` for its label (one record per requirement label)."""
        return permohonan.with_requirement_document(record)

    async def open(self, record: DocumentRecord) -> bytes:
        """Read back a stored document's bytes."""
        return await self.storage.get(record.locator)
