"""
Time helpers.

Everything is stored in UTC; the village timezone only decides which calendar
day a moment belongs to (tracking numbers, "submitted today").
"""

from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from typing import Callable
from typing import Tuple
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

DEFAULT_VILLAGE_TIMEZONE = "Asia/Jakarta"


def utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_day(moment: datetime, tz_name: str = DEFAULT_VILLAGE_TIMEZONE) -> date:
    """Calendar day of ``moment`` in the village timezone."""
    return utc(moment).astimezone(ZoneInfo(tz_name)).date()


def day_bounds(day: date, tz_name: str = DEFAULT_VILLAGE_TIMEZONE) -> Tuple[datetime, datetime]:
    """UTC ``[start, end)`` of a village calendar day."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return utc(start), utc(end)
