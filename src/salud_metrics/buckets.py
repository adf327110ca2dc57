"""Planificación de intervalos (día / semana / mes) para series de gráficos."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from salud_metrics.config import DEFAULT_CONFIG, EngineConfig
from salud_metrics.errors import InvalidRange
from salud_metrics.model import BucketPlan, DateRange, Granularity, TimeBucket

_MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

PERIOD_DAYS: dict[str, int] = {
    "week": 7,
    "month": 30,
    "quarter": 90,
    "halfYear": 180,
    "year": 365,
}

_ONE_DAY = timedelta(days=1)


def as_date(value: date | datetime) -> date:
    """Reduce a datetime to its date; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _check_range(start: date | datetime, end: date | datetime) -> tuple[date, date]:
    start_day, end_day = as_date(start), as_date(end)
    if end_day < start_day:
        raise InvalidRange(f"End date {end_day} is before start date {start_day}")
    return start_day, end_day


def choose_granularity(
    start: date | datetime,
    end: date | datetime,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Granularity:
    """Pick bucket width from the span length in days."""
    start_day, end_day = _check_range(start, end)
    span = (end_day - start_day).days
    if span <= config.daily_max_span_days:
        return Granularity.DAY
    if span <= config.weekly_max_span_days:
        return Granularity.WEEK
    return Granularity.MONTH


def bucket_label(first: date, last: date, granularity: Granularity) -> str:
    """Human-readable label for a bucket covering ``first..last`` inclusive."""
    if granularity is Granularity.DAY:
        return first.strftime("%d.%m.%Y")
    if granularity is Granularity.WEEK:
        return f"{first:%d.%m}–{last:%d.%m.%Y}"
    return f"{_MONTH_NAMES[first.month - 1]} {first.year}"


def _next_boundary(day: date, granularity: Granularity) -> date:
    if granularity is Granularity.DAY:
        return day + _ONE_DAY
    if granularity is Granularity.WEEK:
        return day - timedelta(days=day.weekday()) + timedelta(days=7)
    return day.replace(day=1) + relativedelta(months=1)


def plan_buckets(
    start: date | datetime,
    end: date | datetime,
    granularity: Granularity | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BucketPlan:
    """Build contiguous half-open buckets covering ``[start, end]`` inclusive.

    Weekly buckets end on ISO week boundaries (Monday start) and monthly
    buckets on calendar month boundaries; the first and last bucket are
    clipped to the requested range.

    Raises:
        InvalidRange: If ``end`` is before ``start``.
    """
    start_day, end_day = _check_range(start, end)
    chosen = granularity or choose_granularity(start_day, end_day, config)
    stop = end_day + _ONE_DAY

    buckets: list[TimeBucket] = []
    current = start_day
    while current < stop:
        nxt = min(_next_boundary(current, chosen), stop)
        buckets.append(
            TimeBucket(
                range_start=current,
                range_end=nxt,
                label=bucket_label(current, nxt - _ONE_DAY, chosen),
            )
        )
        current = nxt
    return BucketPlan(granularity=chosen, buckets=tuple(buckets))


def preset_range(period: str, end: date | datetime) -> DateRange:
    """Date range ending at ``end`` for a named period (week, month, ...).

    Raises:
        InvalidRange: If the period name is unknown.
    """
    days = PERIOD_DAYS.get(period)
    if days is None:
        raise InvalidRange(
            f"Unknown period {period!r}; expected one of {', '.join(PERIOD_DAYS)}"
        )
    end_day = as_date(end)
    return DateRange(start=end_day - timedelta(days=days), end=end_day)
