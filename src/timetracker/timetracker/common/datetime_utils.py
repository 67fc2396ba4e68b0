from __future__ import annotations

import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock:
    """Local wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


def today_of(clock: Clock) -> date:
    """Caller's local calendar day."""
    return clock.now().date()


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def whole_seconds_between(start: datetime, end: datetime) -> int:
    """Floor of the seconds from start to end."""
    return math.floor((end - start).total_seconds())


def millis_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() * 1000)


def round2(value: float) -> float:
    """Round half-up to 2 decimal places (7.745 -> 7.75)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_hms(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
