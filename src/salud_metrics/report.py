"""Síntesis de reportes: estadísticas, hallazgos, recomendaciones y flags."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

import pandas as pd
import structlog
from dateutil import tz

from salud_metrics.aggregate import (
    SeriesAggregator,
    hourly_profile,
    status_distribution,
    sub_type_distribution,
)
from salud_metrics.buckets import as_date, choose_granularity
from salud_metrics.classify import MetricClassifier
from salud_metrics.config import DEFAULT_CONFIG, EngineConfig
from salud_metrics.errors import InvalidInput, UnsupportedMetricType
from salud_metrics.model import (
    COMPONENTS,
    AdherenceSummary,
    ClassifiedReading,
    DateRange,
    Flag,
    FlagSeverity,
    MetricType,
    Reading,
    ReportDocument,
    ReportSection,
    ReportSummary,
    Series,
    Status,
    coerce_metric_type,
)
from salud_metrics.profiles import MetricProfile, profile_for
from salud_metrics.reference import ReferenceRange

logger = structlog.get_logger(__name__)

OVERVIEW_TITLE = "General Health Overview"
ADHERENCE_TITLE = "Medication Adherence"
GENERAL_RECOMMENDATION = "Continue regular health check-ups and measurements."
ADHERENCE_RECOMMENDATION = "Use medication reminders to improve adherence."

_METRIC_ORDER: dict[MetricType, int] = {mt: i for i, mt in enumerate(MetricType)}


@dataclass(frozen=True)
class ReportInputs:
    """Everything a report is computed from."""

    series_by_metric: Mapping[MetricType, Series]
    date_range: DateRange
    adherence: Sequence[AdherenceSummary] = ()


@dataclass(frozen=True)
class TrendSummary:
    """Comparison of the chronological halves of a metric's readings."""

    component: str
    first_half_mean: float
    second_half_mean: float
    first_status: Status
    second_status: Status
    direction: str

    @property
    def change(self) -> float:
        return self.second_half_mean - self.first_half_mean


@dataclass
class _Findings:
    key_findings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    flags: list[Flag] = field(default_factory=list)

    def recommend(self, text: str) -> None:
        if text not in self.recommendations:
            self.recommendations.append(text)

    def freeze(self) -> ReportSummary:
        return ReportSummary(
            key_findings=tuple(self.key_findings),
            recommendations=tuple(self.recommendations),
            flags=tuple(self.flags),
        )


class ReportSynthesizer:
    """Assemble a ReportDocument from per-metric series and adherence data."""

    def __init__(
        self,
        classifier: MetricClassifier | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self._classifier = classifier or MetricClassifier()
        self._config = config
        self._tz = tz.gettz(config.timezone)

    def synthesize(self, inputs: ReportInputs) -> ReportDocument:
        """Build the report document.

        Metric sections follow MetricType order so the output does not
        depend on mapping order. An empty ``series_by_metric`` produces a
        document with only the overview section.
        """
        date_range = inputs.date_range
        metric_series = self._ordered_series(inputs.series_by_metric)
        findings = _Findings()
        metrics: dict[str, Any] = {
            "averages": {},
            "status_counts": {},
            "trends": {},
            "adherence": {},
        }

        sections = [self._overview(date_range, metric_series, inputs.adherence)]
        for metric_type, series in metric_series:
            sections.append(self._metric_section(metric_type, series, findings, metrics))

        if inputs.adherence:
            sections.append(self._adherence_section(inputs.adherence, findings, metrics))

        findings.recommend(GENERAL_RECOMMENDATION)

        document = ReportDocument(
            title=(
                f"Health Summary Report ({date_range.start:%d.%m.%Y} - "
                f"{date_range.end:%d.%m.%Y})"
            ),
            date_range=date_range,
            sections=tuple(sections),
            summary=findings.freeze(),
            metrics=metrics,
        )
        logger.debug(
            "report_synthesized",
            metrics=[mt.value for mt, _ in metric_series],
            sections=len(document.sections),
            flags=len(document.summary.flags),
        )
        return document

    def _ordered_series(
        self, series_by_metric: Mapping[MetricType, Series]
    ) -> list[tuple[MetricType, Series]]:
        out: list[tuple[MetricType, Series]] = []
        for key, series in series_by_metric.items():
            try:
                metric_type = coerce_metric_type(key)
            except UnsupportedMetricType:
                logger.warning("report_metric_ignored", metric=str(key))
                continue
            out.append((metric_type, series))
        out.sort(key=lambda item: _METRIC_ORDER[item[0]])
        return out

    def _overview(
        self,
        date_range: DateRange,
        metric_series: list[tuple[MetricType, Series]],
        adherence: Sequence[AdherenceSummary],
    ) -> ReportSection:
        counts = {mt.value: len(series.readings) for mt, series in metric_series}
        granularity = choose_granularity(date_range.start, date_range.end, self._config)
        return ReportSection(
            title=OVERVIEW_TITLE,
            narrative=(
                "This report summarises the health data recorded between "
                f"{date_range.start:%d.%m.%Y} and {date_range.end:%d.%m.%Y}."
            ),
            data={
                "total_measurements": sum(counts.values()),
                "measurement_counts": counts,
                "medication_count": len(adherence),
                "days": date_range.days,
                "granularity": granularity.value,
            },
        )

    def _metric_section(
        self,
        metric_type: MetricType,
        series: Series,
        findings: _Findings,
        metrics: dict[str, Any],
    ) -> ReportSection:
        profile = profile_for(metric_type)
        if not series.has_data:
            return ReportSection(
                title=profile.section_title,
                narrative=(
                    f"No {profile.name.lower()} measurements were recorded "
                    "in this period."
                ),
                data={
                    "count": 0,
                    "unit": series.unit,
                    "reference_ranges": self._reference_bounds(metric_type, [None]),
                },
                chart_series=series,
                metric_type=metric_type,
            )

        decimals = self._config.decimals
        readings = series.readings
        stats = _component_stats(readings, metric_type, decimals)
        counts = status_distribution(series)
        total = len(readings)
        groups = self._sub_type_groups(metric_type, readings)
        mixed = len(groups) > 1
        primary = COMPONENTS[metric_type][0]
        sub_type_stats = {
            sub: {
                "count": len(group),
                **_component_stats(group, metric_type, decimals)[primary],
            }
            for sub, group in groups.items()
        }

        data: dict[str, Any] = {
            "count": total,
            "unit": series.unit,
            "components": stats,
            "average": stats[COMPONENTS[metric_type][0]]["average"],
            "min": stats[COMPONENTS[metric_type][0]]["min"],
            "max": stats[COMPONENTS[metric_type][0]]["max"],
            "normal_count": counts[Status.NORMAL.value],
            "warning_count": counts[Status.WARNING.value],
            "critical_count": counts[Status.CRITICAL.value],
            "normal_pct": _pct(counts[Status.NORMAL.value], total),
            "warning_pct": _pct(counts[Status.WARNING.value], total),
            "critical_pct": _pct(counts[Status.CRITICAL.value], total),
            "sub_type_counts": sub_type_distribution(series),
            "sub_type_stats": sub_type_stats,
            "reference_ranges": self._reference_bounds(metric_type, list(groups)),
            "hourly_profile": hourly_profile(series, local_tz=self._tz),
            "granularity": series.granularity.value,
            "interpolated_buckets": sum(1 for b in series.buckets if b.interpolated),
        }

        for component, values in stats.items():
            key = metric_type.value if len(stats) == 1 else component
            metrics["averages"][key] = values["average"]
        if len(self._classifier.table.sub_types(metric_type)) > 1:
            for sub, values in sub_type_stats.items():
                metrics["averages"][f"{metric_type.value}_{sub}"] = values["average"]
        metrics["status_counts"][metric_type.value] = counts

        # Mixed sub-types are judged against their own ranges.
        for sub, group in groups.items():
            group_stats = _component_stats(group, metric_type, decimals) if mixed else stats
            self._mean_rule(
                metric_type,
                profile,
                group_stats,
                sub,
                series.unit,
                findings,
                qualifier=sub if mixed else None,
            )
        self._critical_rule(metric_type, profile, readings, series.unit, findings)
        self._warning_share_rule(metric_type, profile, counts, total, findings)
        trends: dict[str, TrendSummary] = {}
        for sub, group in groups.items():
            for trend in self._trend_rule(
                metric_type,
                profile,
                group,
                sub,
                series.unit,
                findings,
                qualifier=sub if mixed else None,
            ):
                key = f"{sub}/{trend.component}" if mixed else trend.component
                trends[key] = trend
        if trends:
            metrics["trends"][metric_type.value] = {
                key: {
                    "first_half_mean": t.first_half_mean,
                    "second_half_mean": t.second_half_mean,
                    "change": round(t.change, decimals),
                    "direction": t.direction,
                }
                for key, t in trends.items()
            }

        return ReportSection(
            title=profile.section_title,
            narrative=(
                f"{total} {profile.name.lower()} measurements were recorded in this "
                f"period. The average was {_format_average(stats)} {series.unit}."
            ),
            data=data,
            chart_series=series,
            metric_type=metric_type,
        )

    def _range_for(
        self, metric_type: MetricType, sub_type: str | None, component: str
    ) -> ReferenceRange:
        return self._classifier.reference_range(metric_type, sub_type, component)

    def _reference_bounds(
        self, metric_type: MetricType, sub_types: Sequence[str | None]
    ) -> dict[str, dict[str, dict[str, Any]]]:
        """Threshold bounds per sub-type and component, for chart reference lines."""
        table = self._classifier.table
        return {
            table.resolve_sub_type(metric_type, sub): {
                component: asdict(self._range_for(metric_type, sub, component))
                for component in COMPONENTS[metric_type]
            }
            for sub in sub_types
        }

    def _sub_type_groups(
        self, metric_type: MetricType, readings: Sequence[ClassifiedReading]
    ) -> dict[str, list[ClassifiedReading]]:
        """Readings keyed by the sub-type whose ranges apply, in table order."""
        table = self._classifier.table
        groups: dict[str, list[ClassifiedReading]] = {
            sub: [] for sub in table.sub_types(metric_type)
        }
        for item in readings:
            groups[table.resolve_sub_type(metric_type, item.reading.sub_type)].append(item)
        return {sub: group for sub, group in groups.items() if group}

    def _mean_rule(
        self,
        metric_type: MetricType,
        profile: MetricProfile,
        stats: dict[str, dict[str, float]],
        sub_type: str | None,
        unit: str,
        findings: _Findings,
        qualifier: str | None = None,
    ) -> None:
        breached = False
        for component, values in stats.items():
            mean = values["average"]
            rng = self._range_for(metric_type, sub_type, component)
            status = rng.classify(mean)
            if status is Status.NORMAL:
                continue
            breached = True
            label = _label(profile, component, len(stats), qualifier)
            high = rng.is_high(mean)
            bound = rng.breached_bound(mean)
            findings.key_findings.append(
                f"Average {label.lower()} ({mean:.1f} {unit}) is "
                f"{'above' if high else 'below'} the target range."
            )
            findings.flags.append(
                Flag(
                    severity=(
                        FlagSeverity.CRITICAL
                        if status is Status.CRITICAL
                        else FlagSeverity.WARNING
                    ),
                    message=f"{label} average is {'high' if high else 'low'}",
                    detail=f"Average {mean:.1f} {unit}; threshold {bound:g} {unit}",
                    metric_type=metric_type,
                )
            )
        if breached:
            findings.recommend(profile.recommendation)

    def _critical_rule(
        self,
        metric_type: MetricType,
        profile: MetricProfile,
        readings: Sequence[ClassifiedReading],
        unit: str,
        findings: _Findings,
    ) -> None:
        critical = [item.reading for item in readings if item.status is Status.CRITICAL]
        if not critical:
            return
        latest = critical[-1]
        findings.key_findings.append(
            f"{len(critical)} critical {profile.name.lower()} readings were detected."
        )
        findings.flags.append(
            Flag(
                severity=FlagSeverity.CRITICAL,
                message=f"Critical {profile.name.lower()} readings detected",
                detail=(
                    f"{len(critical)} critical readings; most recent "
                    f"{_format_reading(latest)} {unit} on "
                    f"{latest.taken_at:%d.%m.%Y %H:%M}"
                ),
                metric_type=metric_type,
            )
        )

    def _warning_share_rule(
        self,
        metric_type: MetricType,
        profile: MetricProfile,
        counts: dict[str, int],
        total: int,
        findings: _Findings,
    ) -> None:
        warnings = counts[Status.WARNING.value]
        if warnings == 0 or warnings / total < self._config.warning_share_floor:
            return
        pct = _pct(warnings, total)
        findings.key_findings.append(
            f"{pct:.1f}% of {profile.name.lower()} readings were in the warning range."
        )
        findings.flags.append(
            Flag(
                severity=FlagSeverity.WARNING,
                message=f"{profile.name} readings often outside the normal range",
                detail=f"{warnings} of {total} readings ({pct:.1f}%) in the warning range",
                metric_type=metric_type,
            )
        )

    def _trend_rule(
        self,
        metric_type: MetricType,
        profile: MetricProfile,
        readings: Sequence[ClassifiedReading],
        sub_type: str | None,
        unit: str,
        findings: _Findings,
        qualifier: str | None = None,
    ) -> list[TrendSummary]:
        if len(readings) < 2:
            return []
        half = len(readings) // 2
        first = _component_stats(readings[:half], metric_type, self._config.decimals)
        second = _component_stats(readings[half:], metric_type, self._config.decimals)

        trends: list[TrendSummary] = []
        for component in COMPONENTS[metric_type]:
            rng = self._range_for(metric_type, sub_type, component)
            before = first[component]["average"]
            after = second[component]["average"]
            before_status, after_status = rng.classify(before), rng.classify(after)
            label = _label(profile, component, len(COMPONENTS[metric_type]), qualifier)
            detail = f"Average went from {before:.1f} {unit} to {after:.1f} {unit}"

            if (
                after_status.severity < before_status.severity
                and abs(after - before) > profile.improvement_threshold
            ):
                direction = "improving"
                findings.key_findings.append(f"{label} values show improvement.")
                findings.flags.append(
                    Flag(
                        severity=FlagSeverity.IMPROVEMENT,
                        message=f"{label} values are improving",
                        detail=detail,
                        metric_type=metric_type,
                    )
                )
            elif after_status.severity > before_status.severity:
                direction = "worsening"
                findings.key_findings.append(f"{label} values are getting worse.")
                findings.flags.append(
                    Flag(
                        severity=FlagSeverity.WARNING,
                        message=f"{label} values are worsening",
                        detail=detail,
                        metric_type=metric_type,
                    )
                )
            else:
                direction = "stable"
            trends.append(
                TrendSummary(
                    component=component,
                    first_half_mean=before,
                    second_half_mean=after,
                    first_status=before_status,
                    second_status=after_status,
                    direction=direction,
                )
            )
        return trends

    def _adherence_section(
        self,
        adherence: Sequence[AdherenceSummary],
        findings: _Findings,
        metrics: dict[str, Any],
    ) -> ReportSection:
        active = [a for a in adherence if a.active]
        regimens = [
            {
                "name": a.name,
                "adherence_rate": a.adherence_rate,
                "taken_doses": a.taken_doses,
                "missed_doses": a.missed_doses,
                "total_doses": a.total_doses,
            }
            for a in active
        ]
        if not active:
            return ReportSection(
                title=ADHERENCE_TITLE,
                narrative="No active medications were tracked in this period.",
                data={
                    "active_medication_count": 0,
                    "total_medication_count": len(adherence),
                    "regimens": regimens,
                },
            )

        average = round(sum(a.adherence_rate for a in active) / len(active), 1)
        metrics["adherence"]["medication"] = average
        overall_floor = self._config.overall_adherence_floor
        regimen_floor = self._config.regimen_adherence_floor

        if average < overall_floor:
            findings.key_findings.append(
                f"Medication adherence ({average:.1f}%) is below the target."
            )
            findings.recommend(ADHERENCE_RECOMMENDATION)
            findings.flags.append(
                Flag(
                    severity=FlagSeverity.WARNING,
                    message="Medication adherence is low",
                    detail=f"Average adherence {average:.1f}% (target {overall_floor:g}%)",
                )
            )
        else:
            findings.key_findings.append(
                f"Medication adherence ({average:.1f}%) is good."
            )

        for regimen in active:
            if regimen.adherence_rate >= regimen_floor:
                continue
            findings.key_findings.append(
                f"Adherence for {regimen.name} is low ({regimen.adherence_rate:.1f}%)."
            )
            findings.flags.append(
                Flag(
                    severity=FlagSeverity.WARNING,
                    message=f"Low adherence for {regimen.name}",
                    detail=(
                        f"{regimen.name} adherence {regimen.adherence_rate:.1f}% "
                        f"is below {regimen_floor:g}%"
                    ),
                )
            )

        return ReportSection(
            title=ADHERENCE_TITLE,
            narrative=(
                f"{len(active)} medications were tracked in this period. "
                f"Average adherence was {average:.1f}%."
            ),
            data={
                "active_medication_count": len(active),
                "total_medication_count": len(adherence),
                "average_adherence": average,
                "regimens": regimens,
            },
        )


def build_report(
    readings: Iterable[Reading],
    start: date | datetime,
    end: date | datetime,
    adherence: Sequence[AdherenceSummary] = (),
    *,
    classifier: MetricClassifier | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
    metric_types: Sequence[MetricType] | None = None,
) -> ReportDocument:
    """Aggregate every metric present in ``readings`` and synthesize a report.

    A metric whose readings are invalid is logged and left out so the rest
    of the report is still produced.

    Raises:
        InvalidRange: If ``end`` is before ``start``.
    """
    choose_granularity(start, end, config)
    items = list(readings)
    aggregator = SeriesAggregator(classifier, config)
    if metric_types is None:
        present: set[MetricType] = set()
        for reading in items:
            try:
                present.add(coerce_metric_type(reading.metric_type))
            except UnsupportedMetricType:
                logger.warning("reading_metric_ignored", metric=str(reading.metric_type))
        metric_types = sorted(present, key=lambda mt: _METRIC_ORDER[mt])

    series_by_metric: dict[MetricType, Series] = {}
    for metric_type in metric_types:
        try:
            series_by_metric[metric_type] = aggregator.build_series(
                items, metric_type, start, end
            )
        except (InvalidInput, UnsupportedMetricType) as exc:
            logger.warning("metric_skipped", metric=str(metric_type), error=str(exc))

    synthesizer = ReportSynthesizer(aggregator.classifier, config)
    return synthesizer.synthesize(
        ReportInputs(
            series_by_metric=series_by_metric,
            date_range=DateRange(start=as_date(start), end=as_date(end)),
            adherence=tuple(adherence),
        )
    )


def _component_stats(
    readings: Sequence[ClassifiedReading],
    metric_type: MetricType,
    decimals: int,
) -> dict[str, dict[str, float]]:
    rows = [
        {"component": name, "value": float(value)}
        for item in readings
        for name, value in item.reading.components().items()
        if value is not None
    ]
    frame = pd.DataFrame(rows)
    grouped = frame.groupby("component")["value"].agg(["mean", "min", "max"])
    return {
        name: {
            "average": round(float(grouped.loc[name, "mean"]), decimals),
            "min": float(grouped.loc[name, "min"]),
            "max": float(grouped.loc[name, "max"]),
        }
        for name in COMPONENTS[metric_type]
        if name in grouped.index
    }


def _label(
    profile: MetricProfile,
    component: str,
    components: int,
    qualifier: str | None = None,
) -> str:
    parts = [p for p in (component if components > 1 else None, qualifier) if p]
    if not parts:
        return profile.name
    return f"{profile.name} ({', '.join(parts)})"


def _pct(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 1)


def _format_average(stats: dict[str, dict[str, float]]) -> str:
    if len(stats) == 1:
        return f"{next(iter(stats.values()))['average']:.1f}"
    return "/".join(f"{values['average']:.0f}" for values in stats.values())


def _format_reading(reading: Reading) -> str:
    values = [v for v in reading.components().values() if v is not None]
    return "/".join(f"{v:g}" for v in values)
