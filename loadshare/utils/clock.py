"""Injectable time source and calendar-day arithmetic."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Protocol


SECONDS_PER_DAY = 24 * 60 * 60


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FixedClock:
    """Always returns the same instant; used to make runs reproducible."""

    instant: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "instant", ensure_utc(self.instant))

    def now(self) -> datetime:
        return self.instant

    def advanced(self, *, days: float = 0.0, hours: float = 0.0) -> "FixedClock":
        return FixedClock(self.instant + timedelta(days=days, hours=hours))


def ensure_utc(value: datetime | date) -> datetime:
    """Return a timezone-aware UTC datetime; naive values are read as UTC."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(later: datetime, earlier: datetime) -> int:
    """Floor of the elapsed days from ``earlier`` to ``later`` (negative if reversed)."""
    elapsed = (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
    return math.floor(elapsed / SECONDS_PER_DAY)


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
