"""Settings for the SIPEDES permohonan API."""

import json
from typing import Annotated
from typing import List
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import NoDecode
from pydantic_settings import SettingsConfigDict

from sipedes_api.workflow.enums import MediaType
from sipedes_api.workflow.models.document import DEFAULT_MAX_DOCUMENT_BYTES
from sipedes_api.workflow.timeutils import DEFAULT_VILLAGE_TIMEZONE


class Settings(BaseSettings):
    """
    Settings for the SIPEDES permohonan API.

    [pydantic.BaseSettings](https://docs.pydantic.dev/latest/concepts/pydantic_settings/) is a popular
    framework for organizing, validating, and reading configuration values from a variety of sources
    including environment variables.

    This class automatically reads from:
    1. Environment variables (production - Azure Web App Configuration)
    2. .env file (local development)

    Environment variable names are treated case-insensitively. Nothing is required:
    without a database, storage account or queue the service runs on its
    in-memory repository, local disk and a log-only notifier.
    """

    app_name: str = "SIPEDES Legok"
    """Display name used in the OpenAPI title and health responses."""

    # Logging
    log_level: str = "INFO"
    """Minimum level for the stdout sink."""

    log_file_path: Optional[str] = None
    """Optional path of a JSON-lines log file sink (rotated by loguru)."""

    # Workflow
    village_timezone: str = DEFAULT_VILLAGE_TIMEZONE
    """IANA timezone that decides the calendar day of tracking numbers and "today" counts."""

    tracking_prefix: str = "REG"
    """Tracking number prefix (REG-YYYYMMDD-NNNN)."""

    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES
    """Maximum size of one uploaded document (default: 5 MiB)."""

    allowed_media_types: Annotated[List[MediaType], NoDecode] = list(MediaType)
    """Media types accepted for uploads; may only narrow the built-in set."""

    service_catalog_path: Optional[str] = None
    """YAML file with the layanan catalog. Defaults to the bundled catalog.yaml."""

    # Persistence
    domain_db_connection_string: Optional[str] = None
    """PostgreSQL connection string. When unset the in-memory repository is used."""

    # Document storage
    local_storage_dir: str = "./data/documents"
    """Directory for uploaded documents when Azure Blob Storage is not configured."""

    azure_storage_connection_string: Optional[str] = None
    """Azure Storage Account connection string for documents.
    If provided, will be used instead of DefaultAzureCredential."""

    azure_storage_account_url: Optional[str] = None
    """Azure Storage Account URL (e.g., https://<account>.blob.core.windows.net), used with managed identity."""

    azure_documents_container: str = "permohonan-documents"
    """Azure Blob Storage container for permohonan documents."""

    # Notifications
    azure_queue_connection_string: Optional[str] = None
    """Azure Storage Queue connection string. When unset status changes are only logged."""

    notification_queue_name: str = "permohonan-status"
    """Azure Storage Queue name for StatusChanged events."""

    notification_max_attempts: int = 3
    """Send attempts for transient queue failures."""

    notification_backoff_seconds: float = 1.0
    """Initial retry delay; doubles on every further attempt."""

    @field_validator("allowed_media_types", mode="before")
    @classmethod
    def _split_csv(cls, value):
        # Environment variables arrive as "image/jpeg,application/pdf" or a JSON list
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("tracking_prefix")
    @classmethod
    def _prefix_letters(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("tracking_prefix must contain letters only")
        return value.upper()

    @field_validator("max_document_bytes")
    @classmethod
    def _positive_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_document_bytes must be positive")
        return value

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",  # Load from .env file if it exists (local development)
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables not defined in the model
        validate_default=True,  # Validate default values
    )
