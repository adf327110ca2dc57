"""Agregación de mediciones en series por intervalos (con interpolación)."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date, datetime, tzinfo

import pandas as pd
import structlog
from dateutil import tz

from salud_metrics.buckets import as_date, plan_buckets
from salud_metrics.classify import MetricClassifier
from salud_metrics.config import DEFAULT_CONFIG, EngineConfig
from salud_metrics.errors import UnsupportedMetricType
from salud_metrics.model import (
    BucketAggregate,
    ClassifiedReading,
    MetricType,
    Reading,
    Series,
    Status,
    TimeBucket,
    coerce_metric_type,
    primary_component,
)
from salud_metrics.profiles import profile_for
from salud_metrics.units import CANONICAL_UNITS, normalize_reading

logger = structlog.get_logger(__name__)

_STATUS_BY_SEVERITY: dict[int, Status] = {s.severity: s for s in Status}


class SeriesAggregator:
    """Turn raw readings into a bucketed, classified series."""

    def __init__(
        self,
        classifier: MetricClassifier | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        """Create an aggregator.

        Args:
            classifier: Classifier used on every raw reading.
            config: Engine configuration (timezone, granularity spans).

        Raises:
            ValueError: If the configured timezone is unknown.
        """
        self._classifier = classifier or MetricClassifier()
        self._config = config
        local_tz = tz.gettz(config.timezone)
        if local_tz is None:
            raise ValueError(f"Unknown timezone: {config.timezone}")
        self._tz = local_tz

    @property
    def classifier(self) -> MetricClassifier:
        return self._classifier

    def build_series(
        self,
        readings: Iterable[Reading],
        metric_type: MetricType | str,
        start: date | datetime,
        end: date | datetime,
        interpolate: bool | None = None,
    ) -> Series:
        """Group readings of one metric into buckets over ``[start, end]``.

        Args:
            readings: Readings in any order; other metric types are ignored.
            metric_type: Metric to aggregate.
            start: First day of the range (inclusive).
            end: Last day of the range (inclusive).
            interpolate: Fill gaps between measured buckets. Defaults to the
                metric's policy (on for weight only).

        Returns:
            Series with one bucket per interval. Unknown metric types yield
            a series of empty buckets unless strict mode is configured.

        Raises:
            InvalidRange: If ``end`` is before ``start``.
            InvalidInput: If a matching reading has a missing/non-finite value
                or an unknown unit.
            UnsupportedMetricType: Unknown metric type in strict mode.
        """
        plan = plan_buckets(start, end, config=self._config)
        start_day, end_day = as_date(start), as_date(end)
        try:
            mt = coerce_metric_type(metric_type)
        except UnsupportedMetricType:
            if self._config.strict_metric_types:
                raise
            logger.warning("unsupported_metric_type", metric=str(metric_type))
            return Series(
                metric_type=str(metric_type),
                granularity=plan.granularity,
                start=start_day,
                end=end_day,
                unit="",
                buckets=plan.buckets,
            )

        use_interpolation = (
            profile_for(mt).interpolate if interpolate is None else interpolate
        )
        primary = primary_component(mt)
        skeleton = tuple(replace(b, primary=primary) for b in plan.buckets)
        starts = [b.range_start for b in skeleton]

        classified: list[ClassifiedReading] = []
        rows: list[dict[str, object]] = []
        for local_day, reading in self._prepare(readings, mt, start_day, end_day):
            status = self._classifier.classify_reading(reading)
            classified.append(ClassifiedReading(reading=reading, status=status))
            index = bisect_right(starts, local_day) - 1
            for name, value in reading.require_components().items():
                rows.append(
                    {
                        "bucket": index,
                        "component": name,
                        "value": float(value),
                        "severity": status.severity,
                    }
                )

        buckets = _fill_buckets(skeleton, rows, self._config.decimals)
        if use_interpolation:
            buckets = interpolate_gaps(buckets, self._config.decimals)

        logger.debug(
            "series_built",
            metric=mt.value,
            granularity=plan.granularity.value,
            buckets=len(buckets),
            readings=len(classified),
        )
        return Series(
            metric_type=mt,
            granularity=plan.granularity,
            start=start_day,
            end=end_day,
            unit=CANONICAL_UNITS[mt],
            buckets=buckets,
            readings=tuple(classified),
            interpolation=use_interpolation,
        )

    def local_day(self, taken_at: datetime) -> date:
        return self._local(taken_at).date()

    def _local(self, taken_at: datetime) -> datetime:
        # Naive timestamps are already local wall-clock time.
        if taken_at.tzinfo is None:
            return taken_at
        return taken_at.astimezone(self._tz).replace(tzinfo=None)

    def _prepare(
        self,
        readings: Iterable[Reading],
        metric_type: MetricType,
        start_day: date,
        end_day: date,
    ) -> list[tuple[date, Reading]]:
        keyed: list[tuple[datetime, str, Reading]] = []
        for reading in readings:
            if reading.metric_type != metric_type:
                continue
            local = self._local(reading.taken_at)
            if not start_day <= local.date() <= end_day:
                continue
            keyed.append((local, reading.source_id, normalize_reading(reading)))
        keyed.sort(key=lambda item: (item[0], item[1]))
        return [(local.date(), reading) for local, _, reading in keyed]


def _fill_buckets(
    skeleton: Sequence[TimeBucket],
    rows: list[dict[str, object]],
    decimals: int,
) -> tuple[TimeBucket, ...]:
    if not rows:
        return tuple(skeleton)

    frame = pd.DataFrame(rows)
    stats = frame.groupby(["bucket", "component"], as_index=False).agg(
        avg=("value", "mean"),
        low=("value", "min"),
        high=("value", "max"),
        n=("value", "count"),
    )
    severities = frame.groupby("bucket")["severity"].max()

    aggregates: dict[int, dict[str, BucketAggregate]] = {}
    for row in stats.itertuples(index=False):
        aggregates.setdefault(int(row.bucket), {})[str(row.component)] = (
            BucketAggregate(
                mean=round(float(row.avg), decimals),
                min=float(row.low),
                max=float(row.high),
                count=int(row.n),
            )
        )

    out: list[TimeBucket] = []
    for index, bucket in enumerate(skeleton):
        if index not in aggregates:
            out.append(bucket)
            continue
        out.append(
            replace(
                bucket,
                aggregates=aggregates[index],
                status=_STATUS_BY_SEVERITY[int(severities.loc[index])],
            )
        )
    return tuple(out)


def interpolate_gaps(
    buckets: Sequence[TimeBucket], decimals: int = 2
) -> tuple[TimeBucket, ...]:
    """Fill empty buckets from measured neighbours.

    Gaps between two measured buckets get a mean proportional to bucket
    position; trailing gaps carry the last measured mean forward; leading
    gaps stay empty. Filled buckets are marked ``interpolated`` with
    ``count == 0`` and no status.
    """
    measured = [i for i, b in enumerate(buckets) if b.aggregates is not None]
    if not measured:
        return tuple(buckets)

    out = list(buckets)
    for index, bucket in enumerate(buckets):
        if bucket.aggregates is not None:
            continue
        pos = bisect_left(measured, index)
        if pos == 0:
            continue
        before = buckets[measured[pos - 1]].aggregates or {}
        if pos == len(measured):
            means = {name: agg.mean for name, agg in before.items()}
        else:
            after = buckets[measured[pos]].aggregates or {}
            ratio = (index - measured[pos - 1]) / (measured[pos] - measured[pos - 1])
            means = {
                name: round(agg.mean + (after[name].mean - agg.mean) * ratio, decimals)
                for name, agg in before.items()
                if name in after
            }
        out[index] = replace(
            bucket,
            aggregates={
                name: BucketAggregate(mean=m, min=m, max=m, count=0)
                for name, m in means.items()
            },
            interpolated=True,
        )
    return tuple(out)


def status_distribution(series: Series) -> dict[str, int]:
    """Count classified readings per status tier."""
    counts = {status.value: 0 for status in Status}
    for item in series.readings:
        counts[item.status.value] += 1
    return counts


def sub_type_distribution(series: Series) -> dict[str, int]:
    """Count readings per sub-type (``unspecified`` when absent)."""
    counts: dict[str, int] = {}
    for item in series.readings:
        key = item.reading.sub_type or "unspecified"
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items()))


def hourly_profile(
    series: Series,
    component: str | None = None,
    decimals: int = 1,
    local_tz: tzinfo | None = None,
) -> list[float | None]:
    """Mean value per hour of day (24 entries, None where no readings).

    Aware timestamps are converted to ``local_tz`` first when given.
    """
    name = component or primary_component(series.metric_type)
    rows = [
        {
            "hour": _local_hour(item.reading.taken_at, local_tz),
            "value": item.reading.components()[name],
        }
        for item in series.readings
        if item.reading.components().get(name) is not None
    ]
    profile: list[float | None] = [None] * 24
    if not rows:
        return profile
    means = pd.DataFrame(rows).groupby("hour")["value"].mean()
    for hour, value in means.items():
        profile[int(hour)] = round(float(value), decimals)
    return profile


def _local_hour(taken_at: datetime, local_tz: tzinfo | None) -> int:
    if taken_at.tzinfo is None or local_tz is None:
        return taken_at.hour
    return taken_at.astimezone(local_tz).hour
