"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from collections_engine.domain.exceptions import InvalidDomainValueError

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: Any, field: str) -> datetime:
    """
    Normalize a date/datetime to an aware UTC datetime.

    Bare dates map to midnight UTC and naive datetimes are read as UTC.
    Anything else raises InvalidDomainValueError.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise InvalidDomainValueError(field, value, f"{field} must be a date or datetime, got {type(value).__name__}")


def ensure_optional_utc(value: Any, field: str) -> datetime | None:
    return None if value is None else ensure_utc(value, field)


def add_days(moment: datetime, days: int) -> datetime:
    """Shift a datetime by whole days"""
    return moment + timedelta(days=days)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Floor of elapsed days from start to end (negative when end precedes start)"""
    return int((end - start).total_seconds() // SECONDS_PER_DAY)
