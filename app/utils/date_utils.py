from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def day_start(value: date) -> datetime:
    """First instant of ``value`` in UTC"""
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_after(value: date) -> datetime:
    """First instant of the day following ``value`` in UTC (exclusive upper bound)"""
    return day_start(value + timedelta(days=1))


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime for comparison; SQLite hands back naive values, Postgres aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
