"""Tests for the metric classifier."""

from __future__ import annotations

import math
from datetime import datetime

import pytest

from salud_metrics.classify import MetricClassifier
from salud_metrics.errors import InvalidInput, UnsupportedMetricType
from salud_metrics.model import COMPONENTS, MetricType, Reading, Status


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (70.0, Status.WARNING),
        (71.0, Status.NORMAL),
        (99.0, Status.NORMAL),
        (100.0, Status.WARNING),
        (125.9, Status.WARNING),
        (126.0, Status.CRITICAL),
        (0.0, Status.CRITICAL),
    ],
)
def test_fasting_glucose_boundaries_go_to_stricter_tier(
    value: float, expected: Status
) -> None:
    assert MetricClassifier().classify(MetricType.GLUCOSE, "fasting", value) is expected


def test_glucose_default_sub_type_is_random() -> None:
    clf = MetricClassifier()
    assert clf.classify("glucose", None, 120.0) is Status.NORMAL
    assert clf.classify("glucose", None, 145.0) is Status.WARNING
    assert clf.classify("glucose", None, 200.0) is Status.CRITICAL


def test_unknown_sub_type_falls_back_to_default() -> None:
    clf = MetricClassifier()
    assert clf.classify(MetricType.GLUCOSE, "bedtime", 120.0) is Status.NORMAL


def test_blood_pressure_takes_worst_component() -> None:
    clf = MetricClassifier()
    assert clf.classify(MetricType.BLOOD_PRESSURE, None, (110, 70)) is Status.NORMAL
    assert clf.classify(MetricType.BLOOD_PRESSURE, None, (110, 95)) is Status.CRITICAL
    assert clf.classify(MetricType.BLOOD_PRESSURE, None, (125, 70)) is Status.WARNING
    assert (
        clf.classify(MetricType.BLOOD_PRESSURE, None, {"systolic": 145, "diastolic": 70})
        is Status.CRITICAL
    )


@pytest.mark.parametrize(
    ("metric", "value", "expected"),
    [
        (MetricType.HEART_RATE, 75, Status.NORMAL),
        (MetricType.HEART_RATE, 105, Status.WARNING),
        (MetricType.HEART_RATE, 120, Status.CRITICAL),
        (MetricType.TEMPERATURE, 36.6, Status.NORMAL),
        (MetricType.TEMPERATURE, 38.0, Status.WARNING),
        (MetricType.TEMPERATURE, 35.0, Status.CRITICAL),
        (MetricType.OXYGEN_SATURATION, 98, Status.NORMAL),
        (MetricType.OXYGEN_SATURATION, 94, Status.WARNING),
        (MetricType.OXYGEN_SATURATION, 90, Status.CRITICAL),
        (MetricType.STRESS_LEVEL, 3, Status.NORMAL),
        (MetricType.STRESS_LEVEL, 7, Status.WARNING),
        (MetricType.STRESS_LEVEL, 9, Status.CRITICAL),
        (MetricType.WEIGHT, 250.0, Status.NORMAL),
        (MetricType.OTHER, -1e9, Status.NORMAL),
    ],
)
def test_default_table_per_metric(
    metric: MetricType, value: float, expected: Status
) -> None:
    assert MetricClassifier().classify(metric, None, value) is expected


def test_classification_is_total_over_finite_values() -> None:
    clf = MetricClassifier()
    for metric in MetricType:
        for value in (-1e6, -1.0, 0.0, 50.0, 99.5, 140.0, 1e6):
            payload = (value, value) if metric is MetricType.BLOOD_PRESSURE else value
            assert clf.classify(metric, None, payload) in set(Status)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf, None, "120", True])
def test_invalid_values_raise(bad: object) -> None:
    with pytest.raises(InvalidInput):
        MetricClassifier().classify(MetricType.GLUCOSE, None, bad)  # type: ignore[arg-type]


def test_blood_pressure_shape_errors() -> None:
    clf = MetricClassifier()
    with pytest.raises(InvalidInput):
        clf.classify(MetricType.BLOOD_PRESSURE, None, 120.0)
    with pytest.raises(InvalidInput):
        clf.classify(MetricType.BLOOD_PRESSURE, None, (120.0,))
    with pytest.raises(InvalidInput):
        clf.classify(MetricType.HEART_RATE, None, (70.0, 80.0))


def test_unknown_metric_type_raises() -> None:
    with pytest.raises(UnsupportedMetricType):
        MetricClassifier().classify("cholesterol", None, 180.0)


def test_classify_reading_requires_components() -> None:
    clf = MetricClassifier()
    ok = Reading(
        metric_type=MetricType.BLOOD_PRESSURE,
        taken_at=datetime(2024, 1, 1, 8, 0),
        systolic=118,
        diastolic=76,
    )
    assert clf.classify_reading(ok) is Status.NORMAL
    missing = Reading(
        metric_type=MetricType.BLOOD_PRESSURE,
        taken_at=datetime(2024, 1, 1, 8, 0),
        systolic=118,
    )
    with pytest.raises(InvalidInput):
        clf.classify_reading(missing)


def test_metric_without_components_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    classifier = MetricClassifier()
    monkeypatch.setitem(COMPONENTS, MetricType.OTHER, ())
    with pytest.raises(InvalidInput, match="No components"):
        classifier.classify_components(MetricType.OTHER, None, {})
