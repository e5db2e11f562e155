"""
Tracking Numbers

``<PREFIX>-YYYYMMDD-NNNN``: the village calendar day of submission and a
four-digit, zero-padded daily sequence reserved through the repository.
"""

from datetime import datetime
from typing import Optional

from loguru import logger

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.exceptions import TrackingNumberExhausted
from sipedes_api.workflow.timeutils import Clock
from sipedes_api.workflow.timeutils import DEFAULT_VILLAGE_TIMEZONE
from sipedes_api.workflow.timeutils import local_day
from sipedes_api.workflow.timeutils import utc_now

MAX_DAILY_SEQUENCE = 9999


class TrackingNumberGenerator:
    """Hands out unique tracking numbers."""

    def __init__(
        self,
        repository: PermohonanRepository,
        prefix: str = "REG",
        timezone: str = DEFAULT_VILLAGE_TIMEZONE,
        clock: Clock = utc_now,
    ):
        if not prefix.isalpha():
            raise ValueError(f"Tracking number prefix must be letters only, got '{prefix}'")
        self.repository = repository
        self.prefix = prefix.upper()
        self.timezone = timezone
        self.clock = clock

    async def next(self, at: Optional[datetime] = None) -> str:
        """
        Reserve the next tracking number.

        Args:
            at: Submission moment (defaults to the clock)

        Returns:
            Tracking number such as ``REG-20240115-0007``

        Raises:
            TrackingNumberExhausted: more than 9999 requests on the same day
        """
        day = local_day(at or self.clock(), self.timezone)
        sequence = await self.repository.next_tracking_sequence(day)
        if sequence > MAX_DAILY_SEQUENCE:
            logger.error("Daily tracking sequence exhausted", day=day.isoformat(), sequence=sequence)
            raise TrackingNumberExhausted(
                f"No tracking numbers left for {day.isoformat()}",
                day=day.isoformat(),
            )
        return f"{self.prefix}-{day:%Y%m%d}-{sequence:04d}"
