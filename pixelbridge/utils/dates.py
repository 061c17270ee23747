"""Datetime helpers."""

from __future__ import annotations

from datetime import date, datetime

import pendulum

RANGE_DURATIONS = {
    "24h": {"hours": 24},
    "7d": {"days": 7},
    "30d": {"days": 30},
    "90d": {"days": 90},
}


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in the events table."""
    return pendulum.now("UTC").naive()


def unix_time(value: datetime | None = None) -> int:
    moment = pendulum.instance(value, tz="UTC") if value else pendulum.now("UTC")
    return int(moment.timestamp())


def range_start(value: str | None, *, now: datetime | None = None, default: str = "30d") -> datetime:
    """Start of a dashboard range such as ``7d``; unknown values use ``default``."""
    duration = RANGE_DURATIONS.get(value or default, RANGE_DURATIONS[default])
    current = pendulum.instance(now, tz="UTC") if now else pendulum.now("UTC")
    return current.subtract(**duration).naive()


def as_date_string(value: date | datetime | str) -> str:
    if isinstance(value, str):
        return value[:10]
    return value.strftime("%Y-%m-%d")
