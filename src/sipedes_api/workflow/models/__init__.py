"""
Workflow Models Module

All Pydantic models for the permohonan workflow:
- Aggregate and its parts (requester, service reference)
- Document and timeline records
- Events and query filters
"""

from sipedes_api.workflow.models.document import (
    DocumentPolicy,
    DocumentRecord,
    UploadedFile,
)
from sipedes_api.workflow.models.timeline import TimelineEntry
from sipedes_api.workflow.models.permohonan import (
    Permohonan,
    Requester,
    ServiceRef,
)
from sipedes_api.workflow.models.events import StatusChanged
from sipedes_api.workflow.models.filters import DateRange, PermohonanFilter

__all__ = [
    "DocumentPolicy",
    "DocumentRecord",
    "UploadedFile",
    "TimelineEntry",
    "Permohonan",
    "Requester",
    "ServiceRef",
    "StatusChanged",
    "DateRange",
    "PermohonanFilter",
]
