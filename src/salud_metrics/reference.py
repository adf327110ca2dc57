"""Rangos de referencia clínicos por métrica, subtipo y componente."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from salud_metrics.errors import InvalidInput
from salud_metrics.model import COMPONENTS, MetricType, Status, coerce_metric_type

logger = structlog.get_logger(__name__)

INF = math.inf

DEFAULT_SUB_TYPE = "default"

_JSON_KEYS: dict[str, str] = {
    "normalMin": "normal_min",
    "normalMax": "normal_max",
    "warningLow": "warning_low",
    "warningHigh": "warning_high",
    "criticalLow": "critical_low",
    "criticalHigh": "critical_high",
    "unit": "unit",
}


@dataclass(frozen=True)
class ReferenceRange:
    """Nested thresholds partitioning a metric's value space.

    Classification runs from the outside in and boundary values belong to
    the more severe tier: ``value == warning_high`` is already a warning and
    ``value == critical_high`` already critical. The normal band is only
    informative; anything not caught by a warning or critical bound is normal.
    """

    normal_min: float = -INF
    normal_max: float = INF
    warning_low: float = -INF
    warning_high: float = INF
    critical_low: float = -INF
    critical_high: float = INF
    unit: str = ""

    def __post_init__(self) -> None:
        bounds = (
            self.critical_low,
            self.warning_low,
            self.normal_min,
            self.normal_max,
            self.warning_high,
            self.critical_high,
        )
        if any(math.isnan(b) for b in bounds):
            raise InvalidInput("Reference range bounds must not be NaN")
        if any(a > b for a, b in zip(bounds, bounds[1:])):
            raise InvalidInput(
                "Reference range must satisfy critical_low <= warning_low <= "
                f"normal_min <= normal_max <= warning_high <= critical_high: {bounds}"
            )

    def classify(self, value: float) -> Status:
        if value <= self.critical_low or value >= self.critical_high:
            return Status.CRITICAL
        if value <= self.warning_low or value >= self.warning_high:
            return Status.WARNING
        return Status.NORMAL

    def breached_bound(self, value: float) -> float | None:
        """Return the threshold a value crossed, or None when normal."""
        if value >= self.critical_high:
            return self.critical_high
        if value <= self.critical_low:
            return self.critical_low
        if value >= self.warning_high:
            return self.warning_high
        if value <= self.warning_low:
            return self.warning_low
        return None

    def is_high(self, value: float) -> bool:
        """True when the value sits on the upper side of the normal band."""
        return value >= self.normal_max


def _range(
    normal: tuple[float, float],
    *,
    warning: tuple[float, float] | None = None,
    critical: tuple[float, float] = (-INF, INF),
    unit: str,
) -> ReferenceRange:
    warning_low, warning_high = warning if warning is not None else normal
    return ReferenceRange(
        normal_min=normal[0],
        normal_max=normal[1],
        warning_low=warning_low,
        warning_high=warning_high,
        critical_low=critical[0],
        critical_high=critical[1],
        unit=unit,
    )


_GLUCOSE_POSTPRANDIAL = _range((70, 140), critical=(0, 200), unit="mg/dL")

_DEFAULT_RANGES: dict[MetricType, dict[str, dict[str, ReferenceRange]]] = {
    MetricType.GLUCOSE: {
        "fasting": {"value": _range((70, 100), critical=(0, 126), unit="mg/dL")},
        "postprandial": {"value": _GLUCOSE_POSTPRANDIAL},
        "random": {"value": _GLUCOSE_POSTPRANDIAL},
    },
    MetricType.BLOOD_PRESSURE: {
        DEFAULT_SUB_TYPE: {
            "systolic": _range((90, 120), critical=(0, 140), unit="mmHg"),
            "diastolic": _range((60, 80), critical=(0, 90), unit="mmHg"),
        },
    },
    MetricType.HEART_RATE: {
        DEFAULT_SUB_TYPE: {"value": _range((60, 100), critical=(0, 120), unit="bpm")},
    },
    MetricType.WEIGHT: {
        DEFAULT_SUB_TYPE: {"value": _range((0, INF), warning=(-INF, INF), unit="kg")},
    },
    MetricType.TEMPERATURE: {
        DEFAULT_SUB_TYPE: {
            "value": _range(
                (36.0, 37.5), warning=(35.5, 38.0), critical=(35.0, 39.5), unit="C"
            ),
        },
    },
    MetricType.OXYGEN_SATURATION: {
        DEFAULT_SUB_TYPE: {
            "value": _range(
                (95, 100), warning=(94, INF), critical=(90, INF), unit="%"
            ),
        },
    },
    MetricType.STRESS_LEVEL: {
        DEFAULT_SUB_TYPE: {
            "value": _range((0, 6), warning=(-INF, 7), critical=(-INF, 9), unit="score"),
        },
    },
    MetricType.OTHER: {
        DEFAULT_SUB_TYPE: {"value": ReferenceRange()},
    },
}

_DEFAULT_SUB_TYPES: dict[MetricType, str] = {
    MetricType.GLUCOSE: "random",
    MetricType.BLOOD_PRESSURE: DEFAULT_SUB_TYPE,
    MetricType.HEART_RATE: DEFAULT_SUB_TYPE,
    MetricType.WEIGHT: DEFAULT_SUB_TYPE,
    MetricType.TEMPERATURE: DEFAULT_SUB_TYPE,
    MetricType.OXYGEN_SATURATION: DEFAULT_SUB_TYPE,
    MetricType.STRESS_LEVEL: DEFAULT_SUB_TYPE,
    MetricType.OTHER: DEFAULT_SUB_TYPE,
}


@dataclass(frozen=True)
class ReferenceTable:
    """Read-only lookup ``metric -> sub-type -> component -> range``."""

    ranges: Mapping[MetricType, Mapping[str, Mapping[str, ReferenceRange]]]
    default_sub_types: Mapping[MetricType, str] = field(
        default_factory=lambda: dict(_DEFAULT_SUB_TYPES)
    )

    def __post_init__(self) -> None:
        for metric_type in MetricType:
            by_sub_type = self.ranges.get(metric_type)
            if not by_sub_type:
                raise InvalidInput(f"No reference ranges for {metric_type.value}")
            default = self.default_sub_types.get(metric_type)
            if default not in by_sub_type:
                raise InvalidInput(
                    f"Default sub-type {default!r} of {metric_type.value} has no ranges"
                )
            for sub_type, components in by_sub_type.items():
                missing = set(COMPONENTS[metric_type]) - set(components)
                if missing:
                    raise InvalidInput(
                        f"{metric_type.value}/{sub_type} lacks ranges for "
                        f"{', '.join(sorted(missing))}"
                    )

    def resolve_sub_type(self, metric_type: MetricType, sub_type: str | None) -> str:
        """Return the sub-type whose ranges apply (default when absent/unknown)."""
        by_sub_type = self.ranges[metric_type]
        if sub_type and sub_type in by_sub_type:
            return sub_type
        if sub_type:
            logger.debug(
                "unknown_sub_type",
                metric=metric_type.value,
                sub_type=sub_type,
            )
        return self.default_sub_types[metric_type]

    def lookup(
        self,
        metric_type: MetricType,
        sub_type: str | None = None,
        component: str | None = None,
    ) -> ReferenceRange:
        resolved = self.resolve_sub_type(metric_type, sub_type)
        name = component or COMPONENTS[metric_type][0]
        return self.ranges[metric_type][resolved][name]

    def sub_types(self, metric_type: MetricType) -> tuple[str, ...]:
        return tuple(self.ranges[metric_type])


def default_reference_table() -> ReferenceTable:
    """Reference table with the application's built-in thresholds."""
    return ReferenceTable(ranges=_DEFAULT_RANGES, default_sub_types=_DEFAULT_SUB_TYPES)


def range_from_dict(raw: Mapping[str, Any]) -> ReferenceRange:
    """Build a range from camelCase JSON keys.

    Absent warning bounds default to the normal band edges; other absent or
    null bounds are infinite.
    """
    if not isinstance(raw, Mapping):
        raise InvalidInput(f"Reference range must be an object, got {raw!r}")
    kwargs: dict[str, Any] = {}
    for json_key, attr in _JSON_KEYS.items():
        value = raw.get(json_key)
        if value is None:
            continue
        if attr == "unit":
            kwargs[attr] = str(value)
            continue
        try:
            kwargs[attr] = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Invalid {json_key}: {value!r}") from exc
    kwargs.setdefault("warning_low", kwargs.get("normal_min", -INF))
    kwargs.setdefault("warning_high", kwargs.get("normal_max", INF))
    return ReferenceRange(**kwargs)


def table_from_dict(
    raw: Mapping[str, Any], base: ReferenceTable | None = None
) -> ReferenceTable:
    """Overlay a JSON-shaped mapping onto ``base`` (the defaults if None).

    Shape::

        {"glucose": {"default": "fasting",
                     "subTypes": {"fasting": {"value": {"normalMin": 70, ...}}}}}

    A sub-type may map directly to a range (component ``value``).
    """
    base = base or default_reference_table()
    ranges = {
        metric: {sub: dict(components) for sub, components in by_sub.items()}
        for metric, by_sub in base.ranges.items()
    }
    defaults = dict(base.default_sub_types)
    for metric_name, entry in raw.items():
        metric_type = coerce_metric_type(metric_name)
        if not isinstance(entry, Mapping):
            raise InvalidInput(f"Reference entry for {metric_name} must be an object")
        for sub_type, components in (entry.get("subTypes") or {}).items():
            if not isinstance(components, Mapping):
                raise InvalidInput(f"Invalid ranges for {metric_name}/{sub_type}")
            if "normalMin" in components or "normalMax" in components:
                components = {"value": components}
            merged = ranges[metric_type].setdefault(str(sub_type), {})
            for component, range_raw in components.items():
                merged[str(component)] = range_from_dict(range_raw)
        if entry.get("default"):
            defaults[metric_type] = str(entry["default"])
    return ReferenceTable(ranges=ranges, default_sub_types=defaults)


def load_reference_table(
    path: Path, base: ReferenceTable | None = None
) -> ReferenceTable:
    """Read a reference table JSON file; call again to reload.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidInput: If the content is not a valid table.
    """
    if not path.exists():
        raise FileNotFoundError(str(path))
    try:
        parsed: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidInput(f"Reference file {path} is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise InvalidInput(f"Reference file {path} must contain an object")
    table = table_from_dict(parsed, base=base)
    logger.info("reference_table_loaded", path=str(path), metrics=len(parsed))
    return table
