from __future__ import annotations

from datetime import date, datetime, time, timedelta

import pytz

from ..core.constants import DEFAULT_SERVICE_TIMEZONE


def now_local(tz_name: str = DEFAULT_SERVICE_TIMEZONE) -> datetime:
    """Current wall-clock time in the service timezone, as a naive datetime.

    Note: Stored timestamps are naive local times; wrapped so services can
    take ``now=`` from tests instead.
    """
    return datetime.now(pytz.timezone(tz_name)).replace(tzinfo=None)


def start_of_day(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def week_start(value: datetime | date) -> datetime:
    """Monday 00:00 of the week containing ``value``."""
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def month_start(value: datetime | date) -> datetime:
    return start_of_day(value).replace(day=1)


def next_month_start(value: datetime | date) -> datetime:
    first = month_start(value)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def hours_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / 3600.0)


def format_duration(hours: float) -> str:
    """Render hours as ``"{h}h {m}m"``."""
    total_minutes = int(max(0.0, hours) * 60)
    return f"{total_minutes // 60}h {total_minutes % 60}m"
