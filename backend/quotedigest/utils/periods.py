"""
ISO week / calendar month period keys in the business timezone.

A period key is the identity of a reporting interval: "2025-W03" for ISO week 3
of ISO year 2025, "2025-01" for January 2025. Keys compare as plain strings, so
the client cache can check them without knowing the calendar rule.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from quotedigest.core.config import settings

PERIOD_WEEK = "week"
PERIOD_MONTH = "month"
PERIOD_TYPES = (PERIOD_WEEK, PERIOD_MONTH)

_WEEK_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True, order=True)
class Period:
    kind: str
    year: int
    number: int

    def __post_init__(self):
        if self.kind not in PERIOD_TYPES:
            raise ValueError(f"Unknown period type: {self.kind}")
        # Dec 28 always falls in the last ISO week of its year
        upper = date(self.year, 12, 28).isocalendar()[1] if self.kind == PERIOD_WEEK else 12
        if not 1 <= self.number <= upper:
            raise ValueError(f"Invalid {self.kind} number: {self.number}")

    @property
    def key(self) -> str:
        if self.kind == PERIOD_WEEK:
            return f"{self.year}-W{self.number:02d}"
        return f"{self.year}-{self.number:02d}"

    def previous(self) -> "Period":
        """The adjacent prior period, crossing year boundaries."""
        if self.kind == PERIOD_WEEK:
            monday = date.fromisocalendar(self.year, self.number, 1)
            iso = (monday - timedelta(days=7)).isocalendar()
            return Period(PERIOD_WEEK, iso[0], iso[1])
        if self.number == 1:
            return Period(PERIOD_MONTH, self.year - 1, 12)
        return Period(PERIOD_MONTH, self.year, self.number - 1)

    @classmethod
    def parse(cls, key: str) -> "Period":
        """Parse "YYYY-Www" or "YYYY-MM"; raises ValueError for anything else."""
        key = (key or "").strip()
        match = _WEEK_KEY_RE.match(key)
        if match:
            return cls(PERIOD_WEEK, int(match.group(1)), int(match.group(2)))
        match = _MONTH_KEY_RE.match(key)
        if match:
            return cls(PERIOD_MONTH, int(match.group(1)), int(match.group(2)))
        raise ValueError(f"Invalid period key: {key!r}")

    def __str__(self) -> str:
        return self.key


def to_business_time(dt: datetime, offset_min: Optional[int] = None) -> datetime:
    """Shift a naive-UTC (or aware) datetime into naive business local time."""
    if offset_min is None:
        offset_min = settings.BUSINESS_TZ_OFFSET_MIN
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt + timedelta(minutes=offset_min)


def business_now(offset_min: Optional[int] = None) -> datetime:
    return to_business_time(utcnow(), offset_min)


def week_period(dt: Optional[datetime] = None, offset_min: Optional[int] = None) -> Period:
    """ISO week containing dt (UTC), evaluated in business time."""
    local = to_business_time(dt, offset_min) if dt is not None else business_now(offset_min)
    iso = local.isocalendar()
    return Period(PERIOD_WEEK, iso[0], iso[1])


def month_period(dt: Optional[datetime] = None, offset_min: Optional[int] = None) -> Period:
    local = to_business_time(dt, offset_min) if dt is not None else business_now(offset_min)
    return Period(PERIOD_MONTH, local.year, local.month)


def period_for(kind: str, dt: Optional[datetime] = None, offset_min: Optional[int] = None) -> Period:
    if kind == PERIOD_WEEK:
        return week_period(dt, offset_min)
    if kind == PERIOD_MONTH:
        return month_period(dt, offset_min)
    raise ValueError(f"Unknown period type: {kind}")


def current_period_key(kind: str = PERIOD_WEEK) -> str:
    return period_for(kind).key


def previous_complete_period(kind: str = PERIOD_WEEK, now: Optional[datetime] = None) -> Period:
    """The last fully elapsed week or month, which is what the report jobs generate for."""
    return period_for(kind, now).previous()


def business_day(dt: datetime, offset_min: Optional[int] = None) -> date:
    """Calendar day of a UTC timestamp in business time (used for active-day counting)."""
    return to_business_time(dt, offset_min).date()
