"""Conversión de unidades a la unidad canónica de cada métrica."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from salud_metrics.errors import InvalidInput
from salud_metrics.model import MetricType, Reading

CANONICAL_UNITS: dict[MetricType, str] = {
    MetricType.GLUCOSE: "mg/dL",
    MetricType.BLOOD_PRESSURE: "mmHg",
    MetricType.HEART_RATE: "bpm",
    MetricType.WEIGHT: "kg",
    MetricType.TEMPERATURE: "C",
    MetricType.OXYGEN_SATURATION: "%",
    MetricType.STRESS_LEVEL: "score",
    MetricType.OTHER: "",
}

LB_TO_KG = 0.453592
MMOL_TO_MG_DL = 18.0

_CONVERSIONS: dict[tuple[MetricType, str], Callable[[float], float]] = {
    (MetricType.WEIGHT, "lb"): lambda v: v * LB_TO_KG,
    (MetricType.GLUCOSE, "mmol/l"): lambda v: v * MMOL_TO_MG_DL,
    (MetricType.TEMPERATURE, "f"): lambda v: (v - 32.0) * 5.0 / 9.0,
}


def normalize_reading(reading: Reading) -> Reading:
    """Return the reading expressed in its metric's canonical unit.

    Readings without a unit, in the canonical unit, or of metric ``other``
    are returned as-is.

    Raises:
        InvalidInput: If the unit is unknown for the metric.
    """
    unit = (reading.unit or "").strip()
    canonical = CANONICAL_UNITS[reading.metric_type]
    if not unit or reading.metric_type is MetricType.OTHER:
        return reading
    key = unit.lower().lstrip("°")
    if key == canonical.lower():
        return reading
    convert = _CONVERSIONS.get((reading.metric_type, key))
    if convert is None:
        raise InvalidInput(
            f"Unknown unit {unit!r} for {reading.metric_type.value} "
            f"(expected {canonical!r})"
        )
    converted: dict[str, float | None] = {}
    for name, v in reading.components().items():
        if v is None:
            converted[name] = None
            continue
        try:
            converted[name] = convert(float(v))
        except (TypeError, ValueError) as exc:
            raise InvalidInput(
                f"{reading.metric_type.value}.{name} must be a number, got {v!r}"
            ) from exc
    return replace(reading, unit=canonical, **converted)
