"""Serialización de reportes a estructuras JSON."""

from __future__ import annotations

import json
import math
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from salud_metrics.model import Flag, FlagSeverity, ReportDocument


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def document_to_dict(doc: ReportDocument) -> dict[str, Any]:
    """Convert a report into JSON-compatible primitives.

    Chart series are reduced to their labels, buckets and the reference
    bounds of the section so renderers do not need the raw readings.
    Infinite bounds become None.
    """
    out = _plain(doc)
    for section, raw in zip(doc.sections, out["sections"]):
        series = section.chart_series
        if series is None:
            continue
        raw["chart_series"] = {
            "metric_type": _plain(series.metric_type),
            "granularity": series.granularity.value,
            "unit": series.unit,
            "labels": series.labels(),
            "reference_ranges": raw["data"].get("reference_ranges"),
            "buckets": [_plain(b) for b in series.buckets],
        }
    return out


def dumps(doc: ReportDocument, indent: int | None = 2) -> str:
    return json.dumps(document_to_dict(doc), indent=indent, ensure_ascii=False)


def critical_flags(doc: ReportDocument) -> list[Flag]:
    """Flags with critical severity, in report order."""
    return [f for f in doc.summary.flags if f.severity is FlagSeverity.CRITICAL]
