"""UTC time helpers shared by both store backends.

Every instant the store writes or returns is timezone-aware UTC. SQLite hands
back naive datetimes, so anything read from the database goes through
``as_utc`` before it leaves the store.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional

import pytz


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def to_iso(value: Optional[datetime]) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``; empty string for None."""
    if value is None:
        return ""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_day(value: datetime) -> date:
    """Calendar day (UTC) an instant falls on."""
    return as_utc(value).date()


def day_start(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return pytz.utc.localize(datetime.combine(day, time.min))


def day_window(date_from: date, date_to: date) -> tuple[datetime, datetime]:
    """Half-open instant window ``[from 00:00, to+1 00:00)`` covering both days."""
    return day_start(date_from), day_start(date_to + timedelta(days=1))


def iter_days(date_from: date, date_to: date) -> Iterator[date]:
    """Yield every calendar day from ``date_from`` to ``date_to`` inclusive."""
    cursor = date_from
    while cursor <= date_to:
        yield cursor
        cursor += timedelta(days=1)
