"""
Permohonan API Schemas

Request/response models for the permohonan endpoints (PascalCase fields per existing pattern).
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sipedes_api.workflow.catalog import LayananDefinition
from sipedes_api.workflow.engine import legal_next_states
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.models.timeline import TimelineEntry
from sipedes_api.workflow.queries import DashboardSummary


# ════════════════════════════════════════════════════════════════════════════
# Layanan Schemas
# ════════════════════════════════════════════════════════════════════════════


class RequirementResponse(BaseModel):
    """One requirement slot."""

    Label: str
    Optional: bool


class LayananResponse(BaseModel):
    """Catalog service."""

    Id: int
    Name: str
    Slug: str
    Description: str
    Category: str
    EstimatedDays: int
    Fee: str
    Requirements: List[RequirementResponse]

    @classmethod
    def from_definition(cls, layanan: LayananDefinition) -> "LayananResponse":
        return cls(
            Id=layanan.id,
            Name=layanan.name,
            Slug=layanan.slug,
            Description=layanan.description,
            Category=layanan.category,
            EstimatedDays=layanan.estimated_days,
            Fee=layanan.fee,
            Requirements=[RequirementResponse(Label=r.label, Optional=r.optional) for r in layanan.requirements],
        )


class LayananListResponse(BaseModel):
    """All catalog services."""

    Message: str
    Count: int
    Layanan: List[LayananResponse]


# ════════════════════════════════════════════════════════════════════════════
# Permohonan Schemas
# ════════════════════════════════════════════════════════════════════════════


class DocumentResponse(BaseModel):
    """Stored document metadata."""

    DocumentId: str
    Label: str
    Name: str
    MediaType: str
    SizeBytes: int
    UploadedAt: datetime
    Sha256: str
    Locator: str

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentResponse":
        return cls(
            DocumentId=str(record.document_id),
            Label=record.label,
            Name=record.name,
            MediaType=record.media_type.value,
            SizeBytes=record.size_bytes,
            UploadedAt=record.uploaded_at,
            Sha256=record.sha256,
            Locator=record.locator,
        )


class TimelineEntryResponse(BaseModel):
    """One timeline entry."""

    Status: str
    Timestamp: datetime
    Note: Optional[str] = None
    Actor: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: TimelineEntry) -> "TimelineEntryResponse":
        return cls(Status=entry.status.value, Timestamp=entry.timestamp, Note=entry.note, Actor=entry.actor)


class PermohonanResponse(BaseModel):
    """Full permohonan, for its owner and for officers."""

    PermohonanId: str
    TrackingNumber: str
    RequesterId: str
    RequesterName: str
    NationalId: Optional[str] = None
    ServiceId: int
    ServiceName: str
    Purpose: str
    Status: str
    RejectionReason: Optional[str] = None
    Documents: List[DocumentResponse]
    ResultDocument: Optional[DocumentResponse] = None
    Timeline: List[TimelineEntryResponse]
    NextStatuses: List[str]
    Version: int
    CreatedAt: datetime
    UpdatedAt: datetime

    @classmethod
    def from_permohonan(cls, permohonan: Permohonan) -> "PermohonanResponse":
        return cls(
            PermohonanId=str(permohonan.permohonan_id),
            TrackingNumber=permohonan.tracking_number,
            RequesterId=permohonan.requester.requester_id,
            RequesterName=permohonan.requester.name,
            NationalId=permohonan.requester.national_id,
            ServiceId=permohonan.service.service_id,
            ServiceName=permohonan.service.name,
            Purpose=permohonan.purpose,
            Status=permohonan.status.value,
            RejectionReason=permohonan.rejection_reason,
            Documents=[DocumentResponse.from_record(d) for d in permohonan.documents],
            ResultDocument=(
                DocumentResponse.from_record(permohonan.result_document) if permohonan.result_document else None
            ),
            Timeline=[TimelineEntryResponse.from_entry(e) for e in permohonan.timeline],
            NextStatuses=sorted(s.value for s in legal_next_states(permohonan.status)),
            Version=permohonan.version,
            CreatedAt=permohonan.created_at,
            UpdatedAt=permohonan.updated_at,
        )


class PermohonanCreatedResponse(BaseModel):
    """Response after a successful submission."""

    Message: str
    Permohonan: PermohonanResponse


class PublicTrackingResponse(BaseModel):
    """Status check by tracking number; carries no national id and no document locators."""

    TrackingNumber: str
    ServiceName: str
    RequesterName: str
    Status: str
    RejectionReason: Optional[str] = None
    HasResultDocument: bool
    Timeline: List[TimelineEntryResponse]
    CreatedAt: datetime
    UpdatedAt: datetime

    @classmethod
    def from_permohonan(cls, permohonan: Permohonan) -> "PublicTrackingResponse":
        return cls(
            TrackingNumber=permohonan.tracking_number,
            ServiceName=permohonan.service.name,
            RequesterName=permohonan.requester.name,
            Status=permohonan.status.value,
            RejectionReason=permohonan.rejection_reason,
            HasResultDocument=permohonan.result_document is not None,
            Timeline=[TimelineEntryResponse.from_entry(e) for e in permohonan.timeline],
            CreatedAt=permohonan.created_at,
            UpdatedAt=permohonan.updated_at,
        )


class PermohonanSummary(BaseModel):
    """List row."""

    PermohonanId: str
    TrackingNumber: str
    ServiceId: int
    ServiceName: str
    RequesterName: str
    Status: str
    CreatedAt: datetime
    UpdatedAt: datetime

    @classmethod
    def from_permohonan(cls, permohonan: Permohonan) -> "PermohonanSummary":
        return cls(
            PermohonanId=str(permohonan.permohonan_id),
            TrackingNumber=permohonan.tracking_number,
            ServiceId=permohonan.service.service_id,
            ServiceName=permohonan.service.name,
            RequesterName=permohonan.requester.name,
            Status=permohonan.status.value,
            CreatedAt=permohonan.created_at,
            UpdatedAt=permohonan.updated_at,
        )


class PermohonanListResponse(BaseModel):
    """A page of permohonan, most recently updated first."""

    Message: str
    Count: int
    Total: int
    Permohonan: List[PermohonanSummary]


# ════════════════════════════════════════════════════════════════════════════
# Officer Schemas
# ════════════════════════════════════════════════════════════════════════════


class TransitionRequest(BaseModel):
    """Optional note for verify/process."""

    Note: Optional[str] = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    """Rejection with its reason."""

    Reason: str = Field(default="", max_length=2000)


class ServiceCount(BaseModel):
    ServiceId: int
    ServiceName: str
    Count: int


class StatsResponse(BaseModel):
    """Dashboard counts."""

    Message: str
    Total: int
    SubmittedToday: int
    Active: int
    ByStatus: Dict[str, int]
    ByService: List[ServiceCount]

    @classmethod
    def build(cls, summary: DashboardSummary, by_service: List[ServiceCount]) -> "StatsResponse":
        return cls(
            Message="Permohonan statistics",
            Total=summary.total,
            SubmittedToday=summary.submitted_today,
            Active=summary.active,
            ByStatus={status.value: count for status, count in summary.by_status.items()},
            ByService=by_service,
        )
