"""
Permohonan API Routes

Citizen-facing endpoints: submit a permohonan, re-upload requirement
documents while it is still SUBMITTED, follow its status and download the
issued document.
"""

from typing import List
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter
from fastapi import Depends
from fastapi import File
from fastapi import Form
from fastapi import Query
from fastapi import UploadFile
from fastapi import status
from fastapi.responses import Response
from loguru import logger

from sipedes_api.dependencies import Actor
from sipedes_api.dependencies import get_actor
from sipedes_api.dependencies import get_permohonan_service
from sipedes_api.dependencies import get_queries
from sipedes_api.dependencies import require_citizen
from sipedes_api.schemas.schemas_permohonan import PermohonanCreatedResponse
from sipedes_api.schemas.schemas_permohonan import PermohonanListResponse
from sipedes_api.schemas.schemas_permohonan import PermohonanResponse
from sipedes_api.schemas.schemas_permohonan import PermohonanSummary
from sipedes_api.schemas.schemas_permohonan import PublicTrackingResponse
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.document import UploadedFile
from sipedes_api.workflow.models.permohonan import Requester
from sipedes_api.workflow.queries import PermohonanQueries
from sipedes_api.workflow.service import PermohonanService

ROUTER_PERMOHONAN = APIRouter(tags=["Permohonan"], prefix="/permohonan")


async def read_upload(file: UploadFile, max_bytes: int) -> UploadedFile:
    """
    Buffer a multipart upload into the workflow's upload type.

    Reads at most ``max_bytes + 1`` bytes, enough for the document policy to
    refuse an oversized file.
    """
    data = await file.read(max_bytes + 1)
    return UploadedFile(
        filename=file.filename or "",
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the RFC 6266 UTF-8 form."""
    fallback = "".join(c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename)
    quoted = quote(filename, safe="")
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"


def download_response(record: DocumentRecord, data: bytes) -> Response:
    return Response(
        content=data,
        media_type=record.media_type.value,
        headers={"Content-Disposition": content_disposition(record.name)},
    )


@ROUTER_PERMOHONAN.get(
    "/tracking/{tracking_number}",
    response_model=PublicTrackingResponse,
    summary="Check status by tracking number",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Unknown tracking number"}},
)
async def track_permohonan(
    tracking_number: str,
    queries: PermohonanQueries = Depends(get_queries),
) -> PublicTrackingResponse:
    """
    Public status lookup (case-insensitive).

    Only the status, timeline and service name are shown; identity numbers
    and document locations stay private.
    """
    permohonan = await queries.find_by_tracking_number(tracking_number)
    return PublicTrackingResponse.from_permohonan(permohonan)


@ROUTER_PERMOHONAN.post(
    "",
    response_model=PermohonanCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a new permohonan",
    responses={
        400: {"description": "Unknown service, or documents missing/unknown/duplicated/invalid"},
        401: {"description": "Missing identity headers"},
        503: {"description": "Tracking numbers for today are exhausted"},
    },
)
async def submit_permohonan(
    service_id: int = Form(..., description="Catalog service id"),
    purpose: str = Form("", description="Purpose of the request"),
    requester_name: Optional[str] = Form(None, description="Name as printed on the letter"),
    national_id: Optional[str] = Form(None, description="NIK of the requester"),
    labels: Optional[List[str]] = Form(None, description="Requirement label for each file, in order"),
    files: Optional[List[UploadFile]] = File(None, description="Requirement documents (JPEG, PNG or PDF)"),
    actor: Actor = Depends(require_citizen),
    service: PermohonanService = Depends(get_permohonan_service),
) -> PermohonanCreatedResponse:
    """
    Submit a permohonan with its requirement documents.

    ``labels`` and ``files`` are parallel lists: the n-th label names the
    requirement the n-th file satisfies.
    """
    labels = labels or []
    files = files or []
    if len(labels) != len(files):
        raise ValidationFailed(
            f"Got {len(files)} files but {len(labels)} labels",
            errors=["Every uploaded file needs exactly one requirement label"],
        )

    max_bytes = service.registry.policy.max_bytes
    uploads = [(label, await read_upload(file, max_bytes)) for label, file in zip(labels, files)]
    requester = Requester(
        requester_id=actor.user_id,
        name=(requester_name or actor.name or "").strip(),
        national_id=national_id.strip() if national_id and national_id.strip() else None,
    )

    logger.info(
        "Received permohonan submission",
        requester_id=actor.user_id,
        service_id=service_id,
        files=len(uploads),
    )
    permohonan = await service.submit(requester, service_id, purpose, uploads)
    return PermohonanCreatedResponse(
        Message=f"Permohonan submitted with tracking number {permohonan.tracking_number}",
        Permohonan=PermohonanResponse.from_permohonan(permohonan),
    )


@ROUTER_PERMOHONAN.get(
    "/mine",
    response_model=PermohonanListResponse,
    summary="List my permohonan",
)
async def list_my_permohonan(
    status_filter: Optional[PermohonanStatus] = Query(None, alias="status", description="Only this status"),
    search: Optional[str] = Query(None, description="Substring of the tracking number or service name"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(require_citizen),
    queries: PermohonanQueries = Depends(get_queries),
) -> PermohonanListResponse:
    """The caller's permohonan, most recently updated first."""
    results = queries.find_by_requester(actor.user_id, status=status_filter, search_text=search)
    page = await results.page(limit=limit, offset=offset)
    total = await results.count()
    return PermohonanListResponse(
        Message=f"Found {total} permohonan",
        Count=len(page),
        Total=total,
        Permohonan=[PermohonanSummary.from_permohonan(p) for p in page],
    )


@ROUTER_PERMOHONAN.get(
    "/{permohonan_id}",
    response_model=PermohonanResponse,
    summary="Get permohonan detail",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Unknown id, or not yours"}},
)
async def get_permohonan(
    permohonan_id: UUID,
    actor: Actor = Depends(get_actor),
    queries: PermohonanQueries = Depends(get_queries),
) -> PermohonanResponse:
    permohonan = await queries.find_for_actor(permohonan_id, actor.user_id, actor.is_officer)
    return PermohonanResponse.from_permohonan(permohonan)


@ROUTER_PERMOHONAN.put(
    "/{permohonan_id}/documents/{label:path}",
    response_model=PermohonanResponse,
    summary="Replace a requirement document",
    responses={
        400: {"description": "Label is not a requirement of the service"},
        404: {"description": "Unknown id, or not yours"},
        409: {"description": "Permohonan is past SUBMITTED"},
        413: {"description": "File too large"},
        415: {"description": "Unsupported media type"},
    },
)
async def replace_requirement_document(
    permohonan_id: UUID,
    label: str,
    file: UploadFile = File(..., description="Replacement document"),
    actor: Actor = Depends(require_citizen),
    service: PermohonanService = Depends(get_permohonan_service),
) -> PermohonanResponse:
    """Labels may contain slashes (``Surat Pengantar RT/RW``)."""
    upload = await read_upload(file, service.registry.policy.max_bytes)
    permohonan = await service.upload_requirement_document(permohonan_id, actor.user_id, upload, label)
    return PermohonanResponse.from_permohonan(permohonan)


@ROUTER_PERMOHONAN.get(
    "/{permohonan_id}/documents/{label:path}",
    summary="Download a requirement document",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Unknown id or label"}},
)
async def download_requirement_document(
    permohonan_id: UUID,
    label: str,
    actor: Actor = Depends(get_actor),
    queries: PermohonanQueries = Depends(get_queries),
    service: PermohonanService = Depends(get_permohonan_service),
) -> Response:
    permohonan = await queries.find_for_actor(permohonan_id, actor.user_id, actor.is_officer)
    layanan = service.catalog.get(permohonan.service.service_id)
    record = permohonan.document_for(layanan.canonical_label(label) or label)
    if record is None:
        raise NotFound(f"No '{label}' document on {permohonan.tracking_number}", label=label)
    return download_response(record, await service.registry.open(record))


@ROUTER_PERMOHONAN.get(
    "/{permohonan_id}/result",
    summary="Download the issued document",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Not completed yet, unknown id, or not yours"}},
)
async def download_result_document(
    permohonan_id: UUID,
    actor: Actor = Depends(get_actor),
    queries: PermohonanQueries = Depends(get_queries),
    service: PermohonanService = Depends(get_permohonan_service),
) -> Response:
    permohonan = await queries.find_for_actor(permohonan_id, actor.user_id, actor.is_officer)
    record = permohonan.result_document
    if record is None:
        raise NotFound(
            f"{permohonan.tracking_number} has no issued document yet",
            tracking_number=permohonan.tracking_number,
            status=permohonan.status.value,
        )
    logger.info("Result document downloaded", tracking_number=permohonan.tracking_number, user_id=actor.user_id)
    return download_response(record, await service.registry.open(record))
