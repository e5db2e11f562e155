"""
Timeline Models

One entry per status the permohonan has been in (append-only ledger).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator

from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.timeutils import utc


class TimelineEntry(BaseModel):
    """Status transition recorded in the ledger."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    status: PermohonanStatus
    timestamp: datetime
    note: Optional[str] = None
    actor: Optional[str] = None  # officer id; None for the citizen's submission

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return utc(value)
