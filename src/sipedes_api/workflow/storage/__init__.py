"""
Blob storage backends for permohonan documents.
"""

from sipedes_api.workflow.storage.blob_storage import BlobStorage
from sipedes_api.workflow.storage.local_storage import LocalBlobStorage

__all__ = ["BlobStorage", "LocalBlobStorage"]
