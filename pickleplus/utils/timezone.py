"""Timezone and calendar-week utilities."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from pickleplus.core.settings import settings

LOCAL_TZ = ZoneInfo(settings.timezone)


def now_utc() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def combine_date_time_to_utc(date_obj: date, time_obj: time) -> datetime:
    """Combine facility-local date and time and convert to UTC."""
    local_dt = datetime.combine(date_obj, time_obj, tzinfo=LOCAL_TZ)
    return local_dt.astimezone(timezone.utc)


def week_start(anchor: date, first_weekday: Optional[int] = None) -> date:
    """Normalize a date to the first day of its week.

    Args:
        anchor: Any date inside the week
        first_weekday: 0=Monday, ..., 6=Sunday (defaults to settings)

    Returns:
        The date of the first day of the week containing ``anchor``
    """
    if first_weekday is None:
        first_weekday = settings.week_start_weekday
    if isinstance(anchor, datetime):
        anchor = anchor.date()
    days_back = (anchor.weekday() - first_weekday) % 7
    return anchor - timedelta(days=days_back)


def shift_week(anchor: date, weeks: int, first_weekday: Optional[int] = None) -> date:
    """Start of the week ``weeks`` away from the week containing ``anchor``."""
    return week_start(anchor, first_weekday) + timedelta(days=7 * weeks)


def week_days(start: date) -> list[date]:
    return [start + timedelta(days=i) for i in range(7)]
