"""
Local clock and business-day helpers.

All persisted timestamps are naive datetimes in the configured business
timezone. A business day starts at ``business_day_start_hour`` (05:00 by
default), so 02:00 belongs to the previous day.
"""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from jeepney_backend.app.core.config import settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.business_timezone)


def local_now() -> datetime:
    """Current wall-clock time in the business timezone (naive)."""
    return datetime.now(business_tz()).replace(tzinfo=None)


def to_local(dt: Optional[datetime]) -> datetime:
    """
    Normalize a datetime to naive local time.

    Aware values are converted to the business timezone; naive values are
    assumed to already be local. ``None`` means now.
    """
    if dt is None:
        return local_now()
    if dt.tzinfo is not None:
        return dt.astimezone(business_tz()).replace(tzinfo=None)
    return dt


def business_day(dt: Optional[datetime] = None) -> date:
    """Business date containing ``dt``: shift back by the start hour, then take the date."""
    return (to_local(dt) - timedelta(hours=settings.business_day_start_hour)).date()


def local_today() -> date:
    return local_now().date()
