"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 in UTC, passing None through"""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def start_of_day_utc(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day_utc(day: date) -> datetime:
    """Last representable instant of a UTC calendar day"""
    return start_of_day_utc(day) + timedelta(days=1) - timedelta(microseconds=1)
