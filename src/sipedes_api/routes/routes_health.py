"""Health check endpoints for monitoring application status."""

from datetime import datetime
from datetime import timezone

from fastapi import APIRouter
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from loguru import logger

from sipedes_api.workflow import __version__

ROUTER_HEALTH = APIRouter(tags=["Health"])


@ROUTER_HEALTH.get(
    "/health",
    summary="Health check endpoint",
    description="Returns application status plus the state of the permohonan store and document storage",
    responses={
        status.HTTP_200_OK: {
            "description": "Application is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "timestamp": "2026-01-05T12:00:00.000000+00:00",
                        "service": "SIPEDES Legok",
                        "version": "1.0.0",
                        "checks": {"repository": "ok", "storage": "ok"},
                    }
                }
            },
        },
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "A backing store is unreachable"},
    },
)
async def health_check(request: Request):
    """
    Health check endpoint.

    Pings the repository and the document storage backend. Either failing
    turns the response into 503 with ``status: degraded``.

    Used by:
    - Azure Web App health monitoring
    - Load balancers
    """
    settings = request.app.state.settings

    checks = {
        "repository": "ok" if await request.app.state.repository.health_check() else "unavailable",
        "storage": "ok" if await request.app.state.storage.health_check() else "unavailable",
    }
    healthy = all(value == "ok" for value in checks.values())

    response_data = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "version": __version__,
        "checks": checks,
    }

    if healthy:
        logger.debug("Health check requested", status="healthy")
    else:
        logger.warning("Health check degraded", checks=checks)

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response_data,
    )
