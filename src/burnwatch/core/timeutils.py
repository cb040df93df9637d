"""Time helpers shared by the SLO and cost components."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Callable

from burnwatch.core.errors import ConfigurationError

# Every component takes a clock so tests can move time forward without sleeping.
Clock = Callable[[], datetime]

_UNITS = {
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with the clock."""
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def parse_duration(duration: str) -> timedelta:
    """Convert a duration string (e.g. "30d", "24h", "15m") to a timedelta."""
    if not isinstance(duration, str) or len(duration) < 2:
        raise ConfigurationError(f"Invalid duration: {duration!r}")

    unit = duration[-1]
    if unit not in _UNITS:
        raise ConfigurationError(f"Unsupported duration unit: {unit}", {"duration": duration})

    try:
        value = int(duration[:-1])
    except ValueError as exc:
        raise ConfigurationError(f"Invalid duration: {duration!r}") from exc

    if value <= 0:
        raise ConfigurationError(f"Duration must be positive: {duration!r}")

    return timedelta(**{_UNITS[unit]: value})


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def days_remaining_in_month(now: datetime) -> int:
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    return days_in_month - now.day
