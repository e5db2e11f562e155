"""
Event Models

Events emitted by the workflow engine after a transition has been persisted.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from sipedes_api.workflow.enums import PermohonanStatus


class StatusChanged(BaseModel):
    """A permohonan moved from one status to another."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    permohonan_id: UUID
    tracking_number: str
    requester_id: str
    old_status: PermohonanStatus
    new_status: PermohonanStatus
    actor: str
    note: Optional[str] = None
    occurred_at: datetime

    def to_message(self) -> str:
        """JSON body used for queue messages."""
        return self.model_dump_json()
