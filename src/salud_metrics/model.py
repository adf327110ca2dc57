"""Modelos tipados para mediciones, series por intervalos y reportes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from salud_metrics.errors import InvalidInput, UnsupportedMetricType


class MetricType(str, Enum):
    """Kinds of health measurements tracked per family member."""

    GLUCOSE = "glucose"
    BLOOD_PRESSURE = "bloodPressure"
    HEART_RATE = "heartRate"
    WEIGHT = "weight"
    TEMPERATURE = "temperature"
    OXYGEN_SATURATION = "oxygenSaturation"
    STRESS_LEVEL = "stressLevel"
    OTHER = "other"


class Status(str, Enum):
    """Clinical tier of a reading or bucket."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY: dict[Status, int] = {
    Status.NORMAL: 0,
    Status.WARNING: 1,
    Status.CRITICAL: 2,
}


def worst_status(statuses: Iterable[Status]) -> Status | None:
    """Return the most severe status, or None for an empty iterable."""
    worst: Status | None = None
    for status in statuses:
        if worst is None or status.severity > worst.severity:
            worst = status
    return worst


class Granularity(str, Enum):
    """Bucket width."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class FlagSeverity(str, Enum):
    """Severity of a report flag."""

    WARNING = "warning"
    CRITICAL = "critical"
    IMPROVEMENT = "improvement"


# Campos numéricos de cada variante; el primero es el componente principal.
COMPONENTS: dict[MetricType, tuple[str, ...]] = {
    MetricType.GLUCOSE: ("value",),
    MetricType.BLOOD_PRESSURE: ("systolic", "diastolic"),
    MetricType.HEART_RATE: ("value",),
    MetricType.WEIGHT: ("value",),
    MetricType.TEMPERATURE: ("value",),
    MetricType.OXYGEN_SATURATION: ("value",),
    MetricType.STRESS_LEVEL: ("value",),
    MetricType.OTHER: ("value",),
}


def coerce_metric_type(value: MetricType | str) -> MetricType:
    """Convert a metric type name into MetricType.

    Raises:
        UnsupportedMetricType: If the name is not a known variant.
    """
    if isinstance(value, MetricType):
        return value
    try:
        return MetricType(value)
    except ValueError as exc:
        raise UnsupportedMetricType(f"Unsupported metric type: {value!r}") from exc


def primary_component(metric_type: MetricType | str) -> str:
    if isinstance(metric_type, MetricType):
        return COMPONENTS[metric_type][0]
    return "value"


@dataclass(frozen=True)
class Reading:
    """One timestamped measurement.

    Scalar metrics use ``value``; blood pressure uses ``systolic`` and
    ``diastolic``.
    """

    metric_type: MetricType
    taken_at: datetime
    value: float | None = None
    systolic: float | None = None
    diastolic: float | None = None
    sub_type: str | None = None
    unit: str | None = None
    source_id: str = ""
    subject_id: str = ""

    def components(self) -> dict[str, float | None]:
        """Return the named numeric fields of this reading's variant."""
        return {name: getattr(self, name) for name in COMPONENTS[self.metric_type]}

    def require_components(self) -> dict[str, float]:
        """Like ``components`` but rejects missing sub-fields.

        Raises:
            InvalidInput: If any required field is None.
        """
        values = self.components()
        missing = [name for name, v in values.items() if v is None]
        if missing:
            raise InvalidInput(
                f"{self.metric_type.value} reading at {self.taken_at} "
                f"is missing {', '.join(missing)}"
            )
        return {name: v for name, v in values.items() if v is not None}


@dataclass(frozen=True)
class ClassifiedReading:
    """Reading plus the status the classifier assigned to it."""

    reading: Reading
    status: Status


@dataclass(frozen=True)
class BucketAggregate:
    """Summary of the values that fell into one bucket."""

    mean: float
    min: float
    max: float
    count: int


@dataclass(frozen=True)
class TimeBucket:
    """Half-open interval ``[range_start, range_end)`` of whole days."""

    range_start: date
    range_end: date
    label: str
    primary: str = "value"
    aggregates: dict[str, BucketAggregate] | None = None
    status: Status | None = None
    interpolated: bool = False

    @property
    def aggregate(self) -> BucketAggregate | None:
        """Aggregate of the primary component (None when empty)."""
        if self.aggregates is None:
            return None
        return self.aggregates.get(self.primary)

    @property
    def is_empty(self) -> bool:
        return self.aggregates is None

    def contains(self, day: date) -> bool:
        return self.range_start <= day < self.range_end


@dataclass(frozen=True)
class BucketPlan:
    """Granularity plus ordered empty buckets covering a date range."""

    granularity: Granularity
    buckets: tuple[TimeBucket, ...]


@dataclass(frozen=True)
class Series:
    """Bucketed series of one metric over one date range.

    ``metric_type`` keeps the raw name when the metric was not recognised
    (the series then has only empty buckets).
    """

    metric_type: MetricType | str
    granularity: Granularity
    start: date
    end: date
    unit: str
    buckets: tuple[TimeBucket, ...]
    readings: tuple[ClassifiedReading, ...] = ()
    interpolation: bool = False

    @property
    def has_data(self) -> bool:
        return bool(self.readings)

    def means(self, component: str | None = None) -> list[float | None]:
        """Chart-ready list of bucket means (None for empty buckets)."""
        name = component or primary_component(self.metric_type)
        out: list[float | None] = []
        for bucket in self.buckets:
            agg = bucket.aggregates.get(name) if bucket.aggregates else None
            out.append(agg.mean if agg else None)
        return out

    def labels(self) -> list[str]:
        return [b.label for b in self.buckets]


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class Flag:
    """Machine-generated alert raised while building a report."""

    severity: FlagSeverity
    message: str
    detail: str
    metric_type: MetricType | None = None


@dataclass(frozen=True)
class AdherenceSummary:
    """Medication adherence for one regimen."""

    name: str
    adherence_rate: float
    taken_doses: int = 0
    missed_doses: int = 0
    total_doses: int = 0
    active: bool = True

    @classmethod
    def from_doses(
        cls,
        name: str,
        *,
        taken: int,
        total: int,
        missed: int | None = None,
        active: bool = True,
    ) -> AdherenceSummary:
        """Build a summary from dose counts (rate is 0 with no doses)."""
        if taken < 0 or total < 0 or taken > total:
            raise InvalidInput(f"Invalid dose counts for {name}: {taken}/{total}")
        rate = round(taken / total * 100, 1) if total > 0 else 0.0
        return cls(
            name=name,
            adherence_rate=rate,
            taken_doses=taken,
            missed_doses=total - taken if missed is None else missed,
            total_doses=total,
            active=active,
        )


@dataclass(frozen=True)
class ReportSection:
    """One titled block of a report."""

    title: str
    narrative: str
    data: dict[str, Any] = field(default_factory=dict)
    chart_series: Series | None = None
    metric_type: MetricType | None = None


@dataclass(frozen=True)
class ReportSummary:
    """Rolled-up findings of a report."""

    key_findings: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    flags: tuple[Flag, ...] = ()


@dataclass(frozen=True)
class ReportDocument:
    """Structured report handed to renderers and notifiers."""

    title: str
    date_range: DateRange
    sections: tuple[ReportSection, ...]
    summary: ReportSummary
    metrics: dict[str, Any] = field(default_factory=dict)

    def section(self, title: str) -> ReportSection | None:
        for section in self.sections:
            if section.title == title:
                return section
        return None
