"""
Permohonan Service

Use cases that span the catalog, document registry, tracking numbers,
repository and engine: submission, requirement re-upload and completion
with an uploaded result file.
"""

from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from uuid import UUID
from uuid import uuid4

from loguru import logger

from sipedes_api.workflow.catalog import ServiceCatalog
from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.documents import DocumentRegistry
from sipedes_api.workflow.engine import WorkflowEngine
from sipedes_api.workflow.engine import legal_next_states
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import InvalidState
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.document import UploadedFile
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.models.permohonan import Requester
from sipedes_api.workflow.models.permohonan import check_requirement_labels
from sipedes_api.workflow.tracking import TrackingNumberGenerator
from sipedes_api.workflow.timeutils import Clock
from sipedes_api.workflow.timeutils import utc_now

LabelledFile = Tuple[str, UploadedFile]


class PermohonanService:
    """Citizen submission/upload flows and officer completion."""

    def __init__(
        self,
        repository: PermohonanRepository,
        catalog: ServiceCatalog,
        registry: DocumentRegistry,
        tracking: TrackingNumberGenerator,
        engine: WorkflowEngine,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.catalog = catalog
        self.registry = registry
        self.tracking = tracking
        self.engine = engine
        self.clock = clock

    async def submit(
        self,
        requester: Requester,
        service_id: int,
        purpose: str,
        files: Sequence[LabelledFile],
    ) -> Permohonan:
        """
        File a new permohonan.

        Every file is validated before any bytes are stored, so a rejected
        submission leaves nothing behind in blob storage.

        Args:
            requester: Submitting citizen
            service_id: Catalog service id
            purpose: Free-text purpose
            files: (requirement label, upload) pairs

        Returns:
            Persisted permohonan in SUBMITTED

        Raises:
            ValidationFailed: unknown service, or missing/unknown/duplicate/invalid documents
            TrackingNumberExhausted: daily sequence used up
        """
        try:
            layanan = self.catalog.get(service_id)
        except NotFound as e:
            raise ValidationFailed(f"Unknown service {service_id}", service_id=service_id) from e

        labelled: List[LabelledFile] = [(layanan.canonical_label(label) or label, file) for label, file in files]

        errors = check_requirement_labels(
            layanan.required_labels,
            [label for label, _ in labelled],
            layanan.optional_labels,
        )
        for _, file in labelled:
            try:
                self.registry.validate(file)
            except (ValidationFailed, UnsupportedType, FileTooLarge) as e:
                errors.append(str(e))
        if errors:
            logger.warning(
                "Permohonan submission refused",
                requester_id=requester.requester_id,
                service_id=service_id,
                errors=errors,
            )
            raise ValidationFailed(
                f"Permohonan for '{layanan.name}' is incomplete or invalid",
                errors=errors,
                service_id=service_id,
            )

        submitted_at = self.clock()
        permohonan_id = uuid4()
        tracking_number = await self.tracking.next(submitted_at)

        documents = []
        for label, file in labelled:
            documents.append(await self.registry.validate_and_store(file, label, permohonan_id))

        permohonan = Permohonan.create(
            requester=requester,
            service=layanan.to_ref(),
            purpose=purpose,
            documents=documents,
            required_labels=layanan.required_labels,
            optional_labels=layanan.optional_labels,
            tracking_number=tracking_number,
            submitted_at=submitted_at,
            policy=self.registry.policy,
            permohonan_id=permohonan_id,
        )
        stored = await self.repository.save(permohonan)

        logger.success(
            "Permohonan submitted",
            tracking_number=stored.tracking_number,
            requester_id=requester.requester_id,
            service_id=service_id,
            documents=len(stored.documents),
        )
        return stored

    async def _owned(self, permohonan_id: UUID, requester_id: str) -> Permohonan:
        permohonan = await self.repository.find_by_id(permohonan_id)
        if permohonan is None or permohonan.requester.requester_id != requester_id:
            raise NotFound(f"Permohonan {permohonan_id} not found", permohonan_id=str(permohonan_id))
        return permohonan

    async def upload_requirement_document(
        self,
        permohonan_id: UUID,
        requester_id: str,
        file: UploadedFile,
        label: str,
    ) -> Permohonan:
        """
        Replace (or add) the requirement document for ``label``.

        Bytes are stored before taking the aggregate lock; the lock only
        covers re-read, replace and save.

        Raises:
            NotFound: unknown id, or the permohonan belongs to someone else
            InvalidState: permohonan is no longer SUBMITTED
            ValidationFailed: label is not a requirement of the service
            UnsupportedType, FileTooLarge: invalid upload
        """
        current = await self._owned(permohonan_id, requester_id)
        if current.status != PermohonanStatus.SUBMITTED:
            raise InvalidState(
                f"Documents of {current.tracking_number} can no longer be changed ({current.status.value})",
                tracking_number=current.tracking_number,
                status=current.status.value,
            )

        layanan = self.catalog.get(current.service.service_id)
        canonical = layanan.canonical_label(label)
        if canonical is None:
            raise ValidationFailed(
                f"'{label}' is not a requirement of {layanan.name}",
                errors=[f"Unknown document label '{label}'"],
            )

        record = await self.registry.validate_and_store(file, canonical, permohonan_id)

        async with self.engine.locks.hold(permohonan_id):
            fresh = await self._owned(permohonan_id, requester_id)
            updated = self.registry.replace(fresh, record).with_version(fresh.version + 1)
            stored = await self.repository.save(updated)

        logger.info(
            "Requirement document replaced",
            tracking_number=stored.tracking_number,
            label=canonical,
            version=stored.version,
        )
        return stored

    async def complete_with_file(
        self,
        permohonan_id: UUID,
        actor: str,
        file: UploadedFile,
        note: Optional[str] = None,
    ) -> Permohonan:
        """
        Store the issued document and complete the permohonan in one call.

        A blob left behind by a transition that then fails is never referenced
        by the aggregate.

        Raises:
            NotFound: unknown id
            InvalidTransition: permohonan is not PROCESSING
            UnsupportedType, FileTooLarge, ValidationFailed: invalid upload
        """
        current = await self.repository.find_by_id(permohonan_id)
        if current is None:
            raise NotFound(f"Permohonan {permohonan_id} not found", permohonan_id=str(permohonan_id))
        if PermohonanStatus.COMPLETED not in legal_next_states(current.status):
            raise InvalidTransition(
                f"Cannot move {current.tracking_number} from {current.status.value} to COMPLETED",
                tracking_number=current.tracking_number,
                from_status=current.status.value,
                to_status=PermohonanStatus.COMPLETED.value,
            )

        record = await self.registry.store_result(file, permohonan_id)
        return await self.engine.transition(
            permohonan_id,
            PermohonanStatus.COMPLETED,
            actor,
            note=note,
            result_document=record,
        )
