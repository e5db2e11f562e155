"""
Document Models

Metadata records for requirement uploads and the final result document.
The bytes themselves live with the blob storage collaborator.
"""

from datetime import datetime
from typing import FrozenSet
from uuid import UUID

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from sipedes_api.workflow.enums import MediaType
from sipedes_api.workflow.enums import RESULT_LABEL
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.timeutils import utc

DEFAULT_MAX_DOCUMENT_BYTES = 5 * 1024 * 1024  # 5 MiB

# Non-canonical spellings browsers still send
MEDIA_TYPE_ALIASES = {
    "image/jpg": MediaType.JPEG.value,
    "image/pjpeg": MediaType.JPEG.value,
}


def normalize_media_type(media_type: str) -> str:
    """Lower-case, strip parameters (``; charset=...``) and resolve aliases."""
    value = (media_type or "").split(";", 1)[0].strip().lower()
    return MEDIA_TYPE_ALIASES.get(value, value)


class UploadedFile(BaseModel):
    """Raw upload handed over by the HTTP layer."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class DocumentPolicy(BaseModel):
    """Type and size rules every stored document must satisfy."""

    model_config = ConfigDict(frozen=True)

    allowed_media_types: FrozenSet[MediaType] = frozenset(MediaType)
    max_bytes: int = Field(default=DEFAULT_MAX_DOCUMENT_BYTES, gt=0)

    def check(self, name: str, media_type: str, size_bytes: int) -> MediaType:
        """
        Validate a document's metadata.

        Returns:
            The normalised media type

        Raises:
            UnsupportedType: media type outside the allowed set
            FileTooLarge: size above ``max_bytes``
        """
        normalized = normalize_media_type(media_type)
        allowed = {m.value for m in self.allowed_media_types}
        if normalized not in allowed:
            raise UnsupportedType(
                f"File '{name}' has unsupported type '{media_type}'. Allowed: {', '.join(sorted(allowed))}",
                filename=name,
                media_type=media_type,
            )
        if size_bytes > self.max_bytes:
            raise FileTooLarge(
                f"File '{name}' exceeds the maximum of {self.max_bytes} bytes",
                filename=name,
                size_bytes=size_bytes,
                max_bytes=self.max_bytes,
            )
        return MediaType(normalized)


class DocumentRecord(BaseModel):
    """Immutable metadata for one stored file."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    document_id: UUID
    name: str
    media_type: MediaType
    size_bytes: int = Field(ge=0)
    locator: str  # opaque to the engine
    uploaded_at: datetime
    label: str  # requirement label, or "result"
    sha256: str = ""

    @field_validator("media_type", mode="before")
    @classmethod
    def _normalize_media_type(cls, value):
        if isinstance(value, str):
            return normalize_media_type(value)
        return value

    @field_validator("uploaded_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return utc(value)

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("document label must not be empty")
        return value

    @property
    def is_result(self) -> bool:
        return self.label == RESULT_LABEL
