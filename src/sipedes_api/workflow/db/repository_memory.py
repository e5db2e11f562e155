"""
In-Memory Repository

Process-local backend used when no database connection string is configured
and throughout the tests. Aggregates are immutable, so readers always see a
consistent snapshot.
"""

from collections import Counter
from datetime import date
from typing import Dict
from typing import List
from typing import Optional
from uuid import UUID

from loguru import logger

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.db.repository_base import empty_status_counts
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import ConcurrentModification
from sipedes_api.workflow.models.filters import PermohonanFilter
from sipedes_api.workflow.models.permohonan import Permohonan


class InMemoryPermohonanRepository(PermohonanRepository):
    """Dict-backed repository. No awaits inside a write, so writes are atomic."""

    def __init__(self):
        self._by_id: Dict[UUID, Permohonan] = {}
        self._by_tracking_number: Dict[str, UUID] = {}
        self._sequences: Dict[date, int] = {}

    async def find_by_id(self, permohonan_id: UUID) -> Optional[Permohonan]:
        return self._by_id.get(permohonan_id)

    async def find_by_tracking_number(self, tracking_number: str) -> Optional[Permohonan]:
        permohonan_id = self._by_tracking_number.get(tracking_number.strip().upper())
        if permohonan_id is None:
            return None
        return self._by_id.get(permohonan_id)

    async def save(self, permohonan: Permohonan) -> Permohonan:
        stored = self._by_id.get(permohonan.permohonan_id)

        if permohonan.version == 1:
            if stored is not None:
                raise ConcurrentModification(
                    f"Permohonan {permohonan.tracking_number} already exists",
                    permohonan_id=str(permohonan.permohonan_id),
                )
            if permohonan.tracking_number in self._by_tracking_number:
                raise ConcurrentModification(
                    f"Tracking number {permohonan.tracking_number} is already taken",
                    tracking_number=permohonan.tracking_number,
                )
            self._by_tracking_number[permohonan.tracking_number] = permohonan.permohonan_id
        else:
            if stored is None or stored.version != permohonan.version - 1:
                raise ConcurrentModification(
                    f"Permohonan {permohonan.tracking_number} was modified concurrently",
                    permohonan_id=str(permohonan.permohonan_id),
                    expected_version=permohonan.version - 1,
                    stored_version=stored.version if stored else None,
                )
            if stored.tracking_number != permohonan.tracking_number:
                raise ConcurrentModification(
                    "Tracking number of an existing permohonan cannot change",
                    tracking_number=stored.tracking_number,
                )

        self._by_id[permohonan.permohonan_id] = permohonan
        logger.debug(
            "Permohonan saved",
            tracking_number=permohonan.tracking_number,
            version=permohonan.version,
            status=permohonan.status.value,
        )
        return permohonan

    def _matching(self, criteria: PermohonanFilter) -> List[Permohonan]:
        return [p for p in self._by_id.values() if criteria.matches(p)]

    async def search(
        self,
        criteria: PermohonanFilter,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Permohonan]:
        rows = sorted(
            self._matching(criteria),
            key=lambda p: (p.updated_at, p.tracking_number),
            reverse=True,
        )
        end = None if limit is None else offset + limit
        return rows[offset:end]

    async def count(self, criteria: PermohonanFilter) -> int:
        return len(self._matching(criteria))

    async def count_by_status(self, criteria: Optional[PermohonanFilter] = None) -> Dict[PermohonanStatus, int]:
        counts = empty_status_counts()
        for permohonan in self._matching(criteria or PermohonanFilter()):
            counts[permohonan.status] += 1
        return counts

    async def count_by_service(self) -> Dict[int, int]:
        return dict(Counter(p.service.service_id for p in self._by_id.values()))

    async def next_tracking_sequence(self, day: date) -> int:
        self._sequences[day] = self._sequences.get(day, 0) + 1
        return self._sequences[day]
