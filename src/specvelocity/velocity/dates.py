"""Calendar helpers shared by every bucket lookup.

All bucket lookups go through ``week_start`` so both sides of a comparison
are normalized the same way. Timestamps are naive local time; aware values
are converted to local time first.
"""

from datetime import date, datetime, timedelta

from specvelocity.models.velocity import WEEKDAYS

SECONDS_PER_DAY = 24 * 60 * 60


def to_local(timestamp: datetime) -> datetime:
    """Convert a timestamp to naive local time."""
    if timestamp.tzinfo is not None:
        return timestamp.astimezone().replace(tzinfo=None)
    return timestamp


def week_start(timestamp: datetime) -> datetime:
    """Return Monday 00:00 of the week containing ``timestamp``."""
    local = to_local(timestamp)
    monday = local - timedelta(days=local.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def week_end(timestamp: datetime) -> datetime:
    """Return Sunday 00:00 of the week containing ``timestamp``."""
    return week_start(timestamp) + timedelta(days=6)


def previous_week_start(timestamp: datetime) -> datetime:
    return week_start(timestamp) - timedelta(days=7)


def same_week(a: datetime, b: datetime) -> bool:
    return week_start(a) == week_start(b)


def calendar_day(timestamp: datetime) -> date:
    return to_local(timestamp).date()


def weekday_name(timestamp: datetime) -> str:
    """Return the lowercase weekday name used by the day-of-week histogram."""
    return WEEKDAYS[to_local(timestamp).weekday()]


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, rounded to the nearest day."""
    delta = to_local(end) - to_local(start)
    return round(delta.total_seconds() / SECONDS_PER_DAY)
