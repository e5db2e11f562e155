"""
Base Repository

Persistence interface for permohonan aggregates. The engine, service and
query layer depend only on this interface; the in-memory and PostgreSQL
backends implement it.
"""

from abc import ABC
from abc import abstractmethod
from datetime import date
from typing import Dict
from typing import List
from typing import Optional
from uuid import UUID

from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.models.filters import PermohonanFilter
from sipedes_api.workflow.models.permohonan import Permohonan


class PermohonanRepository(ABC):
    """
    Storage for permohonan aggregates.

    ``save`` is optimistic: a permohonan with ``version == 1`` is inserted, any
    other version replaces the stored one only if the stored version is exactly
    ``version - 1``. Otherwise ``ConcurrentModification`` is raised.
    """

    @abstractmethod
    async def find_by_id(self, permohonan_id: UUID) -> Optional[Permohonan]:
        """Return the aggregate or None."""

    @abstractmethod
    async def find_by_tracking_number(self, tracking_number: str) -> Optional[Permohonan]:
        """Case-insensitive exact match; None when absent."""

    @abstractmethod
    async def save(self, permohonan: Permohonan) -> Permohonan:
        """Insert or optimistically update; returns the stored aggregate."""

    @abstractmethod
    async def search(
        self,
        criteria: PermohonanFilter,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Permohonan]:
        """Aggregates matching ``criteria``, most recently updated first."""

    @abstractmethod
    async def count(self, criteria: PermohonanFilter) -> int:
        """Number of aggregates matching ``criteria``."""

    @abstractmethod
    async def count_by_status(self, criteria: Optional[PermohonanFilter] = None) -> Dict[PermohonanStatus, int]:
        """Counts per status; every status is present, zero when unused."""

    @abstractmethod
    async def count_by_service(self) -> Dict[int, int]:
        """Counts per service id (only services with at least one request)."""

    @abstractmethod
    async def next_tracking_sequence(self, day: date) -> int:
        """Atomically reserve the next daily sequence number (1-based) for ``day``."""

    async def health_check(self) -> bool:
        return True


def empty_status_counts() -> Dict[PermohonanStatus, int]:
    return {status: 0 for status in PermohonanStatus}
