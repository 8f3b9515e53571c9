"""Wall clock used for queue timestamps and day scoping."""

from datetime import datetime, timedelta
from typing import Optional


def now() -> datetime:
    """Current local time, naive, millisecond precision (what BSON keeps)."""
    moment = datetime.now()
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


def start_of_day(moment: Optional[datetime] = None) -> datetime:
    """Local midnight of the given moment (defaults to today)."""
    moment = moment or now()
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_between(start: Optional[datetime], end: datetime) -> int:
    """Whole minutes between two moments, rounded; 0 when start is unknown."""
    if start is None:
        return 0
    seconds = (end - start).total_seconds()
    return max(0, int(seconds / 60 + 0.5))


def range_start(date_range: str, moment: Optional[datetime] = None) -> datetime:
    """Start of a named reporting range: today, week or month."""
    moment = moment or now()
    if date_range == "week":
        return moment - timedelta(days=7)
    if date_range == "month":
        return moment - timedelta(days=30)
    return start_of_day(moment)
