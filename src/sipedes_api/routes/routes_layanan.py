"""
Layanan API Routes

Public catalog of village services and their document requirements.
"""

from fastapi import APIRouter
from fastapi import Depends
from fastapi import status

from sipedes_api.dependencies import get_catalog
from sipedes_api.schemas.schemas_permohonan import LayananListResponse
from sipedes_api.schemas.schemas_permohonan import LayananResponse
from sipedes_api.workflow.catalog import ServiceCatalog

ROUTER_LAYANAN = APIRouter(tags=["Layanan"], prefix="/layanan")


@ROUTER_LAYANAN.get(
    "",
    response_model=LayananListResponse,
    summary="List all village services",
)
async def list_layanan(catalog: ServiceCatalog = Depends(get_catalog)) -> LayananListResponse:
    """List every service a citizen can request, with its required documents."""
    layanan = [LayananResponse.from_definition(item) for item in catalog.list()]
    return LayananListResponse(
        Message=f"Found {len(layanan)} services",
        Count=len(layanan),
        Layanan=layanan,
    )


@ROUTER_LAYANAN.get(
    "/{service_id}",
    response_model=LayananResponse,
    summary="Get one village service",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Unknown service"}},
)
async def get_layanan(service_id: int, catalog: ServiceCatalog = Depends(get_catalog)) -> LayananResponse:
    return LayananResponse.from_definition(catalog.get(service_id))


@ROUTER_LAYANAN.get(
    "/slug/{slug}",
    response_model=LayananResponse,
    summary="Get one village service by slug",
    responses={status.HTTP_404_NOT_FOUND: {"description": "Unknown slug"}},
)
async def get_layanan_by_slug(slug: str, catalog: ServiceCatalog = Depends(get_catalog)) -> LayananResponse:
    return LayananResponse.from_definition(catalog.get_by_slug(slug))
