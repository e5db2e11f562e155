"""
Permohonan Model

The request aggregate: requester, requested service, status, document set and
the append-only timeline. Instances are frozen; every change builds a new,
fully validated instance so a failed operation never leaves a half-applied one.
"""

import re
from datetime import datetime
from typing import Any
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from uuid import UUID
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.enums import RESULT_LABEL
from sipedes_api.workflow.enums import TERMINAL_STATUSES
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import InvalidState
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.document import DocumentPolicy
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.timeline import TimelineEntry

TRACKING_NUMBER_PATTERN = re.compile(r"^[A-Z]+-\d{8}-\d{4}$")
SUBMITTED_NOTE = "request submitted"


class Requester(BaseModel):
    """Citizen who filed the request."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    requester_id: str = Field(min_length=1)
    name: str = ""
    national_id: Optional[str] = None  # NIK, display only


class ServiceRef(BaseModel):
    """Catalog service reference with its display name cached at submission."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    service_id: int
    name: str


def check_requirement_labels(
    required_labels: Iterable[str],
    labels: Iterable[str],
    optional_labels: Iterable[str] = (),
) -> List[str]:
    """
    Compare submitted document labels against a service's requirement list.

    Args:
        required_labels: Requirement labels that must be present
        labels: Labels of the documents being submitted
        optional_labels: Requirement labels that may be present

    Returns:
        Human readable problems (empty list when the set is complete and clean)
    """
    required = list(required_labels)
    allowed = set(required) | set(optional_labels)
    problems = []
    seen = set()
    for label in labels:
        if label == RESULT_LABEL:
            problems.append(f"Label '{RESULT_LABEL}' is reserved for the issued document")
        elif label not in allowed:
            problems.append(f"Unknown document label '{label}'")
        if label in seen:
            problems.append(f"Duplicate document label '{label}'")
        seen.add(label)

    missing = [label for label in required if label not in seen]
    if missing:
        problems.append(f"Missing required documents: {', '.join(missing)}")
    return problems


class Permohonan(BaseModel):
    """Permohonan aggregate."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    permohonan_id: UUID
    tracking_number: str
    requester: Requester
    service: ServiceRef
    purpose: str = ""
    status: PermohonanStatus
    rejection_reason: Optional[str] = None
    documents: Tuple[DocumentRecord, ...] = ()
    result_document: Optional[DocumentRecord] = None
    timeline: Tuple[TimelineEntry, ...] = Field(min_length=1)
    version: int = Field(default=1, ge=1)

    @field_validator("tracking_number")
    @classmethod
    def _check_tracking_number(cls, value: str) -> str:
        value = value.strip().upper()
        if not TRACKING_NUMBER_PATTERN.match(value):
            raise ValueError(f"malformed tracking number '{value}'")
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> "Permohonan":
        if self.timeline[0].status != PermohonanStatus.SUBMITTED:
            raise ValueError("timeline must start with SUBMITTED")
        if self.timeline[-1].status != self.status:
            raise ValueError(
                f"latest timeline status {self.timeline[-1].status.value} does not match {self.status.value}"
            )
        for previous, current in zip(self.timeline, self.timeline[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError("timeline timestamps must be non-decreasing")

        if self.status == PermohonanStatus.REJECTED:
            if not (self.rejection_reason or "").strip():
                raise ValueError("REJECTED requires a rejection reason")
        elif self.rejection_reason is not None:
            raise ValueError("rejection reason is only allowed when REJECTED")

        if self.status == PermohonanStatus.COMPLETED and self.result_document is None:
            raise ValueError("COMPLETED requires a result document")
        if self.result_document is not None:
            if self.status not in (PermohonanStatus.PROCESSING, PermohonanStatus.COMPLETED):
                raise ValueError("result document is only allowed while PROCESSING or COMPLETED")
            if not self.result_document.is_result:
                raise ValueError(f"result document must carry label '{RESULT_LABEL}'")

        labels = [doc.label for doc in self.documents]
        if len(labels) != len(set(labels)):
            raise ValueError("requirement document labels must be unique")
        if RESULT_LABEL in labels:
            raise ValueError(f"label '{RESULT_LABEL}' is reserved for the result document")
        return self

    # ────────────────────────────────────────────────────────────────────────
    # Construction
    # ────────────────────────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        requester: Requester,
        service: ServiceRef,
        purpose: str,
        documents: Iterable[DocumentRecord],
        required_labels: Iterable[str],
        tracking_number: str,
        submitted_at: datetime,
        optional_labels: Iterable[str] = (),
        policy: Optional[DocumentPolicy] = None,
        permohonan_id: Optional[UUID] = None,
    ) -> "Permohonan":
        """
        Build a freshly submitted permohonan.

        Args:
            requester: Who files the request
            service: Requested catalog service
            purpose: Free-text purpose (keperluan)
            documents: Requirement documents, one per label
            required_labels: Labels every submission must carry
            tracking_number: Pre-generated tracking number
            submitted_at: Submission time, seeds the timeline
            optional_labels: Labels a submission may carry
            policy: Type/size rules each document must satisfy
            permohonan_id: Explicit id (generated when omitted)

        Returns:
            Permohonan in SUBMITTED with a single timeline entry

        Raises:
            ValidationFailed: missing, unknown, duplicate or invalid documents
        """
        policy = policy or DocumentPolicy()
        documents = tuple(documents)

        errors = check_requirement_labels(required_labels, [doc.label for doc in documents], optional_labels)
        for doc in documents:
            try:
                policy.check(doc.name, doc.media_type.value, doc.size_bytes)
            except (UnsupportedType, FileTooLarge) as e:
                errors.append(str(e))
        if errors:
            raise ValidationFailed(
                f"Permohonan for '{service.name}' is incomplete or invalid",
                errors=errors,
                service_id=service.service_id,
            )

        return cls(
            permohonan_id=permohonan_id or uuid4(),
            tracking_number=tracking_number,
            requester=requester,
            service=service,
            purpose=purpose.strip(),
            status=PermohonanStatus.SUBMITTED,
            documents=documents,
            timeline=(
                TimelineEntry(
                    status=PermohonanStatus.SUBMITTED,
                    timestamp=submitted_at,
                    note=SUBMITTED_NOTE,
                    actor=None,
                ),
            ),
        )

    def _evolve(self, **changes: Any) -> "Permohonan":
        """Copy with changes, re-running every validator."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self)(**data)

    # ────────────────────────────────────────────────────────────────────────
    # Read accessors
    # ────────────────────────────────────────────────────────────────────────

    @property
    def created_at(self) -> datetime:
        return self.timeline[0].timestamp

    @property
    def updated_at(self) -> datetime:
        """Timestamp of the latest timeline entry."""
        return self.timeline[-1].timestamp

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def latest_entry(self) -> TimelineEntry:
        return self.timeline[-1]

    def document_for(self, label: str) -> Optional[DocumentRecord]:
        """Requirement document for ``label``, or the result document for ``result``."""
        if label == RESULT_LABEL:
            return self.result_document
        for doc in self.documents:
            if doc.label == label:
                return doc
        return None

    # ────────────────────────────────────────────────────────────────────────
    # Changes
    # ────────────────────────────────────────────────────────────────────────

    def attach_result_document(self, document: DocumentRecord) -> "Permohonan":
        """
        Attach the issued document. Only meaningful as part of the transition
        to COMPLETED; the engine calls this before appending the timeline entry.

        Raises:
            InvalidState: status is not PROCESSING
            ValidationFailed: document does not carry the result label
        """
        if self.status != PermohonanStatus.PROCESSING:
            raise InvalidState(
                f"Result document can only be attached while PROCESSING (current: {self.status.value})",
                tracking_number=self.tracking_number,
                status=self.status.value,
            )
        if not document.is_result:
            raise ValidationFailed(f"Result document must carry label '{RESULT_LABEL}', got '{document.label}'")
        return self._evolve(result_document=document)

    def with_requirement_document(self, document: DocumentRecord) -> "Permohonan":
        """
        Replace the requirement document with the same label, or add it.

        Raises:
            InvalidState: status is not SUBMITTED
            ValidationFailed: document carries the reserved result label
        """
        if self.status != PermohonanStatus.SUBMITTED:
            raise InvalidState(
                f"Documents can only be changed while SUBMITTED (current: {self.status.value})",
                tracking_number=self.tracking_number,
                status=self.status.value,
            )
        if document.is_result:
            raise ValidationFailed(f"Label '{RESULT_LABEL}' is reserved for the issued document")

        replaced = False
        documents = []
        for existing in self.documents:
            if existing.label == document.label:
                documents.append(document)
                replaced = True
            else:
                documents.append(existing)
        if not replaced:
            documents.append(document)
        return self._evolve(documents=tuple(documents))

    def record_transition(
        self,
        entry: TimelineEntry,
        rejection_reason: Optional[str] = None,
    ) -> "Permohonan":
        """Append ``entry`` and move to its status. Legality is the engine's job."""
        return self._evolve(
            status=entry.status,
            timeline=self.timeline + (entry,),
            rejection_reason=rejection_reason,
        )

    def with_version(self, version: int) -> "Permohonan":
        return self._evolve(version=version)
