"""Timezone helpers shared by continuity accounting and reminder targeting.

All instants are handled as aware UTC datetimes; calendar dates are derived
by converting into either the fixed reference zone (continuity) or the user's
own zone (reminders).
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dailyline.core.config import settings


@lru_cache(maxsize=512)
def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def is_valid_timezone(name: str) -> bool:
    if not name:
        return False
    try:
        get_zone(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def ensure_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; naive values (e.g. read back from SQLite) are taken as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def minute_floor(moment: datetime) -> datetime:
    return ensure_utc(moment).replace(second=0, microsecond=0)


def local_datetime(moment: datetime, tz_name: str) -> datetime:
    return ensure_utc(moment).astimezone(get_zone(tz_name))


def local_date(moment: datetime, tz_name: str) -> date:
    return local_datetime(moment, tz_name).date()


def local_day_bounds(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the given zone (DST-safe)."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


# Reference-zone calendar for continuity accounting --------------------------
def reference_timezone() -> str:
    return settings.CONTINUITY_TIMEZONE


def reference_date(moment: datetime) -> date:
    return local_date(moment, reference_timezone())


def reference_today(now: Optional[datetime] = None) -> date:
    return reference_date(now or utc_now())


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())
