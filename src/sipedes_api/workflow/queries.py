"""
Lookup/Query Layer

Read-only projections over the repository: single lookups, lazy result sets
for the citizen's list and the officer queue, and dashboard counts.
"""

from typing import AsyncIterator
from typing import Dict
from typing import List
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.enums import TERMINAL_STATUSES
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.models.filters import DateRange
from sipedes_api.workflow.models.filters import PermohonanFilter
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.timeutils import Clock
from sipedes_api.workflow.timeutils import DEFAULT_VILLAGE_TIMEZONE
from sipedes_api.workflow.timeutils import day_bounds
from sipedes_api.workflow.timeutils import local_day
from sipedes_api.workflow.timeutils import utc_now


class PermohonanResultSet:
    """
    Lazy, restartable sequence of permohonan ordered by ``updated_at`` descending.

    Nothing is fetched until iterated or counted; every ``async for`` runs a
    fresh query, so iterating twice between transitions yields the same items.
    """

    def __init__(self, repository: PermohonanRepository, criteria: PermohonanFilter):
        self.repository = repository
        self.criteria = criteria

    async def __aiter__(self) -> AsyncIterator[Permohonan]:
        for permohonan in await self.repository.search(self.criteria):
            yield permohonan

    async def all(self) -> List[Permohonan]:
        return await self.repository.search(self.criteria)

    async def page(self, limit: int, offset: int = 0) -> List[Permohonan]:
        return await self.repository.search(self.criteria, limit=limit, offset=offset)

    async def count(self) -> int:
        return await self.repository.count(self.criteria)


class DashboardSummary(BaseModel):
    """Officer dashboard figures."""

    total: int
    submitted_today: int
    active: int
    by_status: Dict[PermohonanStatus, int]


class PermohonanQueries:
    """Read side of the workflow."""

    def __init__(
        self,
        repository: PermohonanRepository,
        timezone: str = DEFAULT_VILLAGE_TIMEZONE,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.timezone = timezone
        self.clock = clock

    async def find_by_id(self, permohonan_id: UUID) -> Permohonan:
        permohonan = await self.repository.find_by_id(permohonan_id)
        if permohonan is None:
            raise NotFound(f"Permohonan {permohonan_id} not found", permohonan_id=str(permohonan_id))
        return permohonan

    async def find_by_tracking_number(self, tracking_number: str) -> Permohonan:
        """Case-insensitive exact match."""
        permohonan = await self.repository.find_by_tracking_number(tracking_number)
        if permohonan is None:
            raise NotFound(
                f"No permohonan with tracking number {tracking_number}",
                tracking_number=tracking_number,
            )
        return permohonan

    async def find_for_actor(self, permohonan_id: UUID, requester_id: str, is_officer: bool) -> Permohonan:
        """Officers see everything; citizens only their own (others look absent)."""
        permohonan = await self.find_by_id(permohonan_id)
        if not is_officer and permohonan.requester.requester_id != requester_id:
            raise NotFound(f"Permohonan {permohonan_id} not found", permohonan_id=str(permohonan_id))
        return permohonan

    def find_by_requester(
        self,
        requester_id: str,
        status: Optional[PermohonanStatus] = None,
        search_text: Optional[str] = None,
    ) -> PermohonanResultSet:
        """A citizen's own permohonan, optionally narrowed by status and search text."""
        criteria = PermohonanFilter(requester_id=requester_id, status=status, search_text=search_text)
        return PermohonanResultSet(self.repository, criteria)

    def find_all(self, criteria: Optional[PermohonanFilter] = None) -> PermohonanResultSet:
        return PermohonanResultSet(self.repository, criteria or PermohonanFilter())

    async def count_by_status(self) -> Dict[PermohonanStatus, int]:
        return await self.repository.count_by_status()

    async def count_by_service(self) -> Dict[int, int]:
        return await self.repository.count_by_service()

    async def dashboard_summary(self) -> DashboardSummary:
        by_status = await self.repository.count_by_status()
        start, end = day_bounds(local_day(self.clock(), self.timezone), self.timezone)
        submitted_today = await self.repository.count(PermohonanFilter(date_range=DateRange(start=start, end=end)))
        return DashboardSummary(
            total=sum(by_status.values()),
            submitted_today=submitted_today,
            active=sum(count for status, count in by_status.items() if status not in TERMINAL_STATUSES),
            by_status=by_status,
        )
