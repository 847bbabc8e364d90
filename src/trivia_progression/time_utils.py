from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


DEFAULT_TZ = "UTC"
DAY_KEY_FORMAT = "%Y-%m-%d"


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    # Naive stamps from storage are read as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def day_key_for(dt: datetime, tz_name: str = DEFAULT_TZ) -> str:
    # Naive datetimes are taken to already be in the reference timezone.
    if dt.tzinfo is None:
        local = dt
    else:
        local = dt.astimezone(ZoneInfo(tz_name))
    return local.strftime(DAY_KEY_FORMAT)


def parse_day_key(day_key: str) -> date:
    return datetime.strptime(day_key, DAY_KEY_FORMAT).date()


def days_between(earlier: str, later: str) -> int:
    return (parse_day_key(later) - parse_day_key(earlier)).days


def shift_day_key(day_key: str, days: int) -> str:
    return (parse_day_key(day_key) + timedelta(days=days)).isoformat()


@dataclass(frozen=True)
class DayRange:
    start: datetime
    end: datetime


def day_range_for(day_key: str, tz_name: str = DEFAULT_TZ) -> DayRange:
    day = parse_day_key(day_key)
    start = datetime(day.year, day.month, day.day, tzinfo=ZoneInfo(tz_name))
    return DayRange(start=start, end=start + timedelta(days=1))
