"""
Query Filter Models

Filters accepted by the lookup layer. ``matches`` is the reference semantics;
the PostgreSQL backend translates the same filter into SQL.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator
from pydantic import model_validator

from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.timeutils import utc
from sipedes_api.workflow.models.permohonan import Permohonan


class DateRange(BaseModel):
    """Half-open interval ``[start, end)`` over the submission time."""

    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("date range end must not be before its start")
        return self

    def contains(self, moment: datetime) -> bool:
        moment = utc(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


class PermohonanFilter(BaseModel):
    """Optional criteria combined with AND; an empty filter matches everything."""

    model_config = ConfigDict(frozen=True)

    status: Optional[PermohonanStatus] = None
    service_id: Optional[int] = None
    requester_id: Optional[str] = None
    date_range: Optional[DateRange] = None
    search_text: Optional[str] = None

    @field_validator("search_text")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    def matches(self, permohonan: Permohonan) -> bool:
        if self.status is not None and permohonan.status != self.status:
            return False
        if self.service_id is not None and permohonan.service.service_id != self.service_id:
            return False
        if self.requester_id is not None and permohonan.requester.requester_id != self.requester_id:
            return False
        if self.date_range is not None and not self.date_range.contains(permohonan.created_at):
            return False
        if self.search_text is not None:
            needle = self.search_text.casefold()
            haystacks = (
                permohonan.tracking_number,
                permohonan.service.name,
                permohonan.requester.name,
            )
            if not any(needle in value.casefold() for value in haystacks):
                return False
        return True
