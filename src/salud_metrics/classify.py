"""Clasificación de mediciones en normal / warning / critical."""

from __future__ import annotations

import math
import numbers
from collections.abc import Mapping, Sequence

from salud_metrics.errors import InvalidInput
from salud_metrics.model import (
    COMPONENTS,
    MetricType,
    Reading,
    Status,
    coerce_metric_type,
    worst_status,
)
from salud_metrics.reference import ReferenceRange, ReferenceTable, default_reference_table

ClassifiableValue = float | int | Sequence[float] | Mapping[str, float]


def _finite(value: object, label: str) -> float:
    if value is None:
        raise InvalidInput(f"Missing {label}")
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidInput(f"{label} must be a number, got {value!r}")
    out = float(value)
    if not math.isfinite(out):
        raise InvalidInput(f"{label} must be finite, got {value!r}")
    return out


class MetricClassifier:
    """Map metric values to a Status using an injected reference table."""

    def __init__(self, table: ReferenceTable | None = None) -> None:
        self._table = table or default_reference_table()

    @property
    def table(self) -> ReferenceTable:
        return self._table

    def reference_range(
        self,
        metric_type: MetricType | str,
        sub_type: str | None = None,
        component: str | None = None,
    ) -> ReferenceRange:
        return self._table.lookup(coerce_metric_type(metric_type), sub_type, component)

    def classify(
        self,
        metric_type: MetricType | str,
        sub_type: str | None,
        value: ClassifiableValue | None,
    ) -> Status:
        """Classify one value.

        Composite metrics (blood pressure) take a ``(systolic, diastolic)``
        pair or a mapping with those keys; each part is classified on its own
        and the most severe tier wins.

        Raises:
            InvalidInput: If a value is missing, non-numeric or non-finite.
            UnsupportedMetricType: If ``metric_type`` is unknown.
        """
        mt = coerce_metric_type(metric_type)
        components = self._split(mt, value)
        return self.classify_components(mt, sub_type, components)

    def classify_components(
        self,
        metric_type: MetricType,
        sub_type: str | None,
        components: Mapping[str, float],
    ) -> Status:
        statuses = [
            self._table.lookup(metric_type, sub_type, name).classify(
                _finite(components.get(name), f"{metric_type.value}.{name}")
            )
            for name in COMPONENTS[metric_type]
        ]
        status = worst_status(statuses)
        if status is None:
            raise InvalidInput(f"No components to classify for {metric_type.value}")
        return status

    def classify_reading(self, reading: Reading) -> Status:
        return self.classify_components(
            reading.metric_type, reading.sub_type, reading.require_components()
        )

    def _split(
        self, metric_type: MetricType, value: ClassifiableValue | None
    ) -> dict[str, float]:
        names = COMPONENTS[metric_type]
        if value is None:
            raise InvalidInput(f"Missing value for {metric_type.value}")
        if isinstance(value, Mapping):
            return {name: _finite(value.get(name), name) for name in names}
        if len(names) == 1:
            if isinstance(value, Sequence) and not isinstance(value, str):
                raise InvalidInput(f"{metric_type.value} takes a single value")
            return {names[0]: _finite(value, metric_type.value)}
        if isinstance(value, str) or not isinstance(value, Sequence):
            raise InvalidInput(
                f"{metric_type.value} takes {len(names)} values: {', '.join(names)}"
            )
        if len(value) != len(names):
            raise InvalidInput(
                f"{metric_type.value} takes {len(names)} values, got {len(value)}"
            )
        return {name: _finite(v, name) for name, v in zip(names, value)}
