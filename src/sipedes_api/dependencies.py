"""FastAPI dependencies for accessing app state and the caller's identity."""

from typing import Optional

from fastapi import Depends
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from loguru import logger
from pydantic import BaseModel

from sipedes_api.settings import Settings
from sipedes_api.workflow.catalog import ServiceCatalog
from sipedes_api.workflow.engine import WorkflowEngine
from sipedes_api.workflow.enums import Role
from sipedes_api.workflow.queries import PermohonanQueries
from sipedes_api.workflow.service import PermohonanService


class Actor(BaseModel):
    """Caller identity as asserted by the gateway."""

    user_id: str
    role: Role
    name: str = ""

    @property
    def is_officer(self) -> bool:
        return self.role == Role.OFFICER


def get_settings(request: Request) -> Settings:
    """
    Get application settings from request state.

    Parameters
    ----------
    request : Request
        FastAPI request object

    Returns
    -------
    Settings
        Application settings instance
    """
    return request.app.state.settings


def get_catalog(request: Request) -> ServiceCatalog:
    return request.app.state.catalog


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def get_permohonan_service(request: Request) -> PermohonanService:
    return request.app.state.permohonan_service


def get_queries(request: Request) -> PermohonanQueries:
    return request.app.state.queries


def get_actor(
    x_user_id: Optional[str] = Header(default=None, description="Authenticated user id"),
    x_user_role: Optional[str] = Header(default=None, description="citizen or officer"),
    x_user_name: Optional[str] = Header(default=None, description="Display name"),
) -> Actor:
    """
    Build the caller's identity from gateway headers.

    Raises
    ------
    HTTPException
        401 when the user id or role header is missing, 403 for an unknown role
    """
    if not x_user_id or not x_user_id.strip() or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers X-User-Id and X-User-Role",
        )
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        logger.warning("Unknown role in identity header", role=x_user_role, user_id=x_user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role '{x_user_role}'",
        )
    return Actor(user_id=x_user_id.strip(), role=role, name=(x_user_name or "").strip())


def require_officer(actor: Actor = Depends(get_actor)) -> Actor:
    """Only officers may list the queue or move a permohonan through its lifecycle."""
    if not actor.is_officer:
        logger.warning("Officer route refused", user_id=actor.user_id, role=actor.role.value)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Officer role required")
    return actor


def require_citizen(actor: Actor = Depends(get_actor)) -> Actor:
    """Only citizens file and edit their own permohonan."""
    if actor.role != Role.CITIZEN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Citizen role required")
    return actor
