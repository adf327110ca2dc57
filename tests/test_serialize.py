from __future__ import annotations

import json
from datetime import date, datetime, timedelta

from salud_metrics.model import MetricType, Reading, ReportDocument
from salud_metrics.report import build_report
from salud_metrics.serialize import critical_flags, document_to_dict, dumps


def _doc() -> ReportDocument:
    readings = [
        Reading(
            metric_type=MetricType.GLUCOSE,
            taken_at=datetime(2024, 3, 1, 9) + timedelta(days=i),
            value=v,
        )
        for i, v in enumerate([100.0, 220.0, 110.0])
    ]
    return build_report(readings, date(2024, 3, 1), date(2024, 3, 3))


def test_document_to_dict_uses_plain_values() -> None:
    raw = document_to_dict(_doc())
    assert raw["date_range"] == {"start": "2024-03-01", "end": "2024-03-03"}
    glucose = raw["sections"][1]
    assert glucose["metric_type"] == "glucose"
    chart = glucose["chart_series"]
    assert chart["labels"] == ["01.03.2024", "02.03.2024", "03.03.2024"]
    assert chart["granularity"] == "day"
    assert chart["buckets"][1]["status"] == "critical"
    assert chart["buckets"][1]["range_start"] == "2024-03-02"
    assert "readings" not in chart
    assert raw["summary"]["flags"][0]["severity"] in {"warning", "critical", "improvement"}


def test_dumps_is_valid_json() -> None:
    parsed = json.loads(dumps(_doc()))
    assert parsed["title"] == "Health Summary Report (01.03.2024 - 03.03.2024)"


def test_critical_flags() -> None:
    flags = critical_flags(_doc())
    assert len(flags) == 1
    assert flags[0].metric_type is MetricType.GLUCOSE


def test_chart_series_carries_reference_bounds() -> None:
    raw = document_to_dict(_doc())
    ranges = raw["sections"][1]["chart_series"]["reference_ranges"]
    random = ranges["random"]["value"]
    assert random["normal_max"] == 140
    assert random["critical_high"] == 200
    assert random["critical_low"] == 0
    json.dumps(raw, allow_nan=False)
