"""UTC date helpers used by the snapshot, backfill and view code."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterator

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def date_key(value: datetime | date) -> str:
    """YYYY-MM-DD key for a UTC calendar day."""
    if isinstance(value, datetime):
        value = as_utc(value).date()
    return value.isoformat()


def parse_day(value: str | date | datetime) -> date:
    """Accept YYYY-MM-DD or a full ISO timestamp and return the UTC day."""
    if isinstance(value, datetime):
        return as_utc(value).date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive day range."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
