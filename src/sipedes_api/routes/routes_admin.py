"""
Admin API Routes

Officer endpoints: the permohonan queue, dashboard statistics and the
lifecycle transitions (verify, process, reject, complete).
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter
from fastapi import Depends
from fastapi import File
from fastapi import Form
from fastapi import Query
from fastapi import Request
from fastapi import UploadFile

from sipedes_api.dependencies import Actor
from sipedes_api.dependencies import get_catalog
from sipedes_api.dependencies import get_engine
from sipedes_api.dependencies import get_permohonan_service
from sipedes_api.dependencies import get_queries
from sipedes_api.dependencies import require_officer
from sipedes_api.routes.routes_permohonan import read_upload
from sipedes_api.schemas.schemas_permohonan import PermohonanListResponse
from sipedes_api.schemas.schemas_permohonan import PermohonanResponse
from sipedes_api.schemas.schemas_permohonan import PermohonanSummary
from sipedes_api.schemas.schemas_permohonan import RejectRequest
from sipedes_api.schemas.schemas_permohonan import ServiceCount
from sipedes_api.schemas.schemas_permohonan import StatsResponse
from sipedes_api.schemas.schemas_permohonan import TransitionRequest
from sipedes_api.workflow.catalog import ServiceCatalog
from sipedes_api.workflow.engine import WorkflowEngine
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.filters import DateRange
from sipedes_api.workflow.models.filters import PermohonanFilter
from sipedes_api.workflow.queries import PermohonanQueries
from sipedes_api.workflow.service import PermohonanService
from sipedes_api.workflow.timeutils import day_bounds

ROUTER_ADMIN = APIRouter(tags=["Admin"], prefix="/admin/permohonan")

TRANSITION_RESPONSES = {
    400: {"description": "Missing reason or result document"},
    403: {"description": "Officer role required"},
    404: {"description": "Unknown permohonan"},
    409: {"description": "Transition not allowed from the current status, or concurrent update"},
}


def local_date_range(request: Request, date_from: Optional[date], date_to: Optional[date]) -> Optional[DateRange]:
    """Inclusive local calendar days to a UTC half-open range."""
    if date_from is None and date_to is None:
        return None
    tz = request.app.state.settings.village_timezone
    start = day_bounds(date_from, tz)[0] if date_from else None
    end = day_bounds(date_to, tz)[1] if date_to else None
    try:
        return DateRange(start=start, end=end)
    except ValueError as e:
        raise ValidationFailed("date_to must not be before date_from", errors=[str(e)]) from e


@ROUTER_ADMIN.get(
    "",
    response_model=PermohonanListResponse,
    summary="List permohonan (officer queue)",
)
async def list_permohonan(
    request: Request,
    status_filter: Optional[PermohonanStatus] = Query(None, alias="status"),
    service_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, description="First local submission day (inclusive)"),
    date_to: Optional[date] = Query(None, description="Last local submission day (inclusive)"),
    search: Optional[str] = Query(None, description="Matches tracking number, service or requester name"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: Actor = Depends(require_officer),
    queries: PermohonanQueries = Depends(get_queries),
) -> PermohonanListResponse:
    """Filters combine with AND; results are most recently updated first."""
    criteria = PermohonanFilter(
        status=status_filter,
        service_id=service_id,
        date_range=local_date_range(request, date_from, date_to),
        search_text=search,
    )
    results = queries.find_all(criteria)
    page = await results.page(limit=limit, offset=offset)
    total = await results.count()
    return PermohonanListResponse(
        Message=f"Found {total} permohonan",
        Count=len(page),
        Total=total,
        Permohonan=[PermohonanSummary.from_permohonan(p) for p in page],
    )


@ROUTER_ADMIN.get(
    "/stats",
    response_model=StatsResponse,
    summary="Dashboard statistics",
)
async def permohonan_stats(
    officer: Actor = Depends(require_officer),
    queries: PermohonanQueries = Depends(get_queries),
    catalog: ServiceCatalog = Depends(get_catalog),
) -> StatsResponse:
    summary = await queries.dashboard_summary()
    by_service = await queries.count_by_service()

    rows = []
    for service_id, count in sorted(by_service.items()):
        try:
            name = catalog.get(service_id).name
        except NotFound:
            name = f"Layanan {service_id}"
        rows.append(ServiceCount(ServiceId=service_id, ServiceName=name, Count=count))
    return StatsResponse.build(summary, rows)


@ROUTER_ADMIN.post(
    "/{permohonan_id}/verify",
    response_model=PermohonanResponse,
    summary="Verify the submitted documents",
    responses=TRANSITION_RESPONSES,
)
async def verify_permohonan(
    permohonan_id: UUID,
    body: Optional[TransitionRequest] = None,
    officer: Actor = Depends(require_officer),
    engine: WorkflowEngine = Depends(get_engine),
) -> PermohonanResponse:
    note = body.Note if body else None
    permohonan = await engine.transition(permohonan_id, PermohonanStatus.VERIFIED, officer.user_id, note=note)
    return PermohonanResponse.from_permohonan(permohonan)


@ROUTER_ADMIN.post(
    "/{permohonan_id}/process",
    response_model=PermohonanResponse,
    summary="Start processing",
    responses=TRANSITION_RESPONSES,
)
async def process_permohonan(
    permohonan_id: UUID,
    body: Optional[TransitionRequest] = None,
    officer: Actor = Depends(require_officer),
    engine: WorkflowEngine = Depends(get_engine),
) -> PermohonanResponse:
    note = body.Note if body else None
    permohonan = await engine.transition(permohonan_id, PermohonanStatus.PROCESSING, officer.user_id, note=note)
    return PermohonanResponse.from_permohonan(permohonan)


@ROUTER_ADMIN.post(
    "/{permohonan_id}/reject",
    response_model=PermohonanResponse,
    summary="Reject with a reason",
    responses=TRANSITION_RESPONSES,
)
async def reject_permohonan(
    permohonan_id: UUID,
    body: RejectRequest,
    officer: Actor = Depends(require_officer),
    engine: WorkflowEngine = Depends(get_engine),
) -> PermohonanResponse:
    """The reason is shown to the citizen; a blank reason is refused."""
    permohonan = await engine.transition(permohonan_id, PermohonanStatus.REJECTED, officer.user_id, note=body.Reason)
    return PermohonanResponse.from_permohonan(permohonan)


@ROUTER_ADMIN.post(
    "/{permohonan_id}/complete",
    response_model=PermohonanResponse,
    summary="Complete with the issued document",
    responses={
        **TRANSITION_RESPONSES,
        413: {"description": "File too large"},
        415: {"description": "Unsupported media type"},
    },
)
async def complete_permohonan(
    permohonan_id: UUID,
    file: UploadFile = File(..., description="Issued letter (PDF or image)"),
    note: Optional[str] = Form(None),
    officer: Actor = Depends(require_officer),
    service: PermohonanService = Depends(get_permohonan_service),
) -> PermohonanResponse:
    upload = await read_upload(file, service.registry.policy.max_bytes)
    permohonan = await service.complete_with_file(permohonan_id, officer.user_id, upload, note=note)
    return PermohonanResponse.from_permohonan(permohonan)
