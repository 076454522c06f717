"""Pay-period calendar.

A pay period runs from the 25th (payday) of one month through the 24th of the
next, both days inclusive. Periods are never stored; every helper here is a
pure function of its arguments.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings

PAYDAY = 25
PERIOD_END_DAY = PAYDAY - 1

MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class PayPeriod:
    start: date
    end: date

    @property
    def label(self) -> str:
        return format_period_label(self.start)


@dataclass(frozen=True)
class PeriodNavigation:
    period: PayPeriod
    has_previous: bool
    has_next: bool


def local_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_now() -> datetime:
    return datetime.now(local_timezone())


def local_today() -> date:
    return local_now().date()


def local_day(value: DateLike, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar day of ``value``; aware datetimes are moved into the local zone first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(tz or local_timezone()).date()
        return value.date()
    return value


def _shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    total_months = month - 1 + months
    return year + total_months // 12, total_months % 12 + 1


def _anchored(value: date, months: int, day: int) -> date:
    year, month = _shift_month(value.year, value.month, months)
    return date(year, month, day)


def period_start(value: DateLike) -> date:
    day = local_day(value)
    if day.day >= PAYDAY:
        return _anchored(day, 0, PAYDAY)
    return _anchored(day, -1, PAYDAY)


def period_end(start: DateLike) -> date:
    return _anchored(local_day(start), 1, PERIOD_END_DAY)


def period_contains(value: DateLike, start: DateLike) -> bool:
    start_day = local_day(start)
    return start_day <= local_day(value) <= period_end(start_day)


def previous_period(start: DateLike) -> date:
    return _anchored(local_day(start), -1, PAYDAY)


def next_period(start: DateLike) -> date:
    return _anchored(local_day(start), 1, PAYDAY)


def pay_period(value: DateLike) -> PayPeriod:
    start = period_start(value)
    return PayPeriod(start=start, end=period_end(start))


def format_period_label(start: DateLike) -> str:
    start_day = local_day(start)
    end_day = period_end(start_day)
    start_month = MONTH_NAMES[start_day.month - 1]
    end_month = MONTH_NAMES[end_day.month - 1]
    if start_day.month == end_day.month:
        return f"{start_month} {PAYDAY}-{PERIOD_END_DAY}, {end_day.year}"
    return f"{start_month} {PAYDAY} - {end_month} {PERIOD_END_DAY}, {end_day.year}"


def resolve_period(value: Optional[str], *, today: Optional[date] = None) -> date:
    """Map a query value (``current`` or an ISO date) to the start of its pay period."""
    today = today or local_today()
    if not value or value == "current":
        return period_start(today)
    try:
        requested = date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid period date: {value}") from exc
    return period_start(requested)


def period_navigation(
    start: DateLike, *, today: date, earliest: Optional[date]
) -> PeriodNavigation:
    start_day = period_start(start)
    if earliest is None:
        has_previous = False
    else:
        has_previous = previous_period(start_day) >= period_start(earliest)
    has_next = next_period(start_day) <= today
    return PeriodNavigation(
        period=PayPeriod(start=start_day, end=period_end(start_day)),
        has_previous=has_previous,
        has_next=has_next,
    )


def next_payday(now: DateLike) -> date:
    day = local_day(now)
    if day.day <= PAYDAY:
        return _anchored(day, 0, PAYDAY)
    return _anchored(day, 1, PAYDAY)


def days_until_payday(now: Optional[datetime] = None) -> int:
    tz = local_timezone()
    now = now or datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    else:
        now = now.astimezone(tz)
    target = datetime.combine(next_payday(now), time(0, 0), tzinfo=now.tzinfo)
    seconds = (target - now).total_seconds()
    return int(math.ceil(seconds / 86400))


def countdown_level(days: int) -> str:
    if days <= 3:
        return "urgent"
    if days <= 7:
        return "soon"
    return "normal"
