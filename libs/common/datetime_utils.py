"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def months_between(start: date, end: date) -> int:
    """Whole calendar months elapsed from ``start`` to ``end`` (never negative)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


def years_between(start: date, end: date) -> int:
    """Whole years elapsed from ``start`` to ``end`` (never negative)."""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return max(years, 0)


def same_day_of_year(anchor: date, today: date) -> bool:
    """True when ``today`` falls on the anniversary of ``anchor``.

    Feb 29 anchors are celebrated on Feb 28 in non-leap years.
    """
    if (anchor.month, anchor.day) == (today.month, today.day):
        return True
    if anchor.month == 2 and anchor.day == 29 and today.month == 2 and today.day == 28:
        try:
            date(today.year, 2, 29)
        except ValueError:
            return True
    return False


def local_today(tz_name: str) -> date:
    """Today's date in the platform timezone (celebrations follow local days)."""
    return datetime.now(ZoneInfo(tz_name)).date()
