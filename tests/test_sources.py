from __future__ import annotations

import json
import os
from datetime import date, datetime
from pathlib import Path

import pytest
from dateutil import tz

from salud_metrics.model import MetricType, Reading
from salud_metrics.sources.json_export import (
    JsonExportPaths,
    JsonExportSource,
    _extract_json_list,
    _parse_timestamp,
)
from salud_metrics.sources.memory import InMemoryReadingSource


def _write(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_readings_parses_each_metric_shape(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "readings_2024-03-10.json",
        [
            {
                "type": "bloodPressure",
                "timestamp": "2024/03/02 08:30",
                "systolic": 128,
                "diastolic": 84,
                "unit": "mmHg",
                "subject": "ana",
                "id": "r-2",
            },
            {
                "type": "glucose",
                "timestamp": "2024-03-01T07:45:00",
                "value": 5.4,
                "unit": "mmol/L",
                "subType": "fasting",
                "id": "r-1",
            },
        ],
    )
    readings = JsonExportSource(JsonExportPaths(root=tmp_path)).load_readings(p)

    assert [r.metric_type for r in readings] == [
        MetricType.GLUCOSE,
        MetricType.BLOOD_PRESSURE,
    ]
    glucose, bp = readings
    assert glucose.value == 5.4
    assert glucose.unit == "mmol/L"
    assert glucose.sub_type == "fasting"
    assert glucose.taken_at.tzinfo is not None
    assert glucose.subject_id == ""
    assert bp.systolic == 128.0
    assert bp.diastolic == 84.0
    assert bp.subject_id == "ana"
    assert bp.source_id == "r-2"


def test_load_readings_accepts_glucose_meter_items(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "readings_meter.json",
        [{"epoch": 1709280000, "mg/dL": 118, "mmol/L": 6.55, "tag": "fasting"}],
    )
    readings = JsonExportSource(JsonExportPaths(root=tmp_path)).load_readings(p)
    assert len(readings) == 1
    assert readings[0].metric_type is MetricType.GLUCOSE
    assert readings[0].value == 118.0
    assert readings[0].sub_type == "fasting"


def test_load_readings_skips_invalid_items(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "readings_mixed.json",
        [
            {"type": "heartRate", "timestamp": "2024/03/01 08:00", "value": 72},
            {"type": "heartRate", "timestamp": "2024/03/01 09:00"},
            {"type": "bloodPressure", "timestamp": "2024/03/01 09:00", "systolic": 120},
            {"type": "cholesterol", "timestamp": "2024/03/01 09:00", "value": 180},
            {"type": "heartRate", "value": 70},
            {"type": "heartRate", "timestamp": "yesterday", "value": 70},
            "string",
            None,
        ],
    )
    readings = JsonExportSource(JsonExportPaths(root=tmp_path)).load_readings(p)
    assert len(readings) == 1
    assert readings[0].value == 72.0


def test_load_readings_not_list_raises(tmp_path: Path) -> None:
    p = _write(tmp_path / "obj.json", {"a": 1})
    with pytest.raises(ValueError, match="must be a list"):
        JsonExportSource(JsonExportPaths(root=tmp_path)).load_readings(p)


def test_extract_json_list_tolerates_leading_text() -> None:
    assert _extract_json_list('INFO exported\n[{"a": 1}]') == [{"a": 1}]


def test_parse_timestamp_variants() -> None:
    local = tz.gettz("Europe/Istanbul")
    ts = _parse_timestamp("2024/03/01 11:57", None, local)
    assert ts.strftime("%Y/%m/%d %H:%M") == "2024/03/01 11:57"
    assert ts.tzinfo is local
    aware = _parse_timestamp("2024-03-01T08:00:00+00:00", None, local)
    assert aware.utcoffset() is not None and aware.utcoffset().total_seconds() == 0
    assert _parse_timestamp("", 1709280000, local).tzinfo is not None
    with pytest.raises(ValueError, match="Missing timestamp"):
        _parse_timestamp(None, None, local)


def test_validate_and_newest_json(tmp_path: Path) -> None:
    missing = tmp_path / "noexiste"
    with pytest.raises(FileNotFoundError, match=str(missing)):
        JsonExportSource(JsonExportPaths(root=missing)).validate()

    src = JsonExportSource(JsonExportPaths(root=tmp_path))
    with pytest.raises(FileNotFoundError, match="No readings_"):
        src.newest_json()

    old_f = _write(tmp_path / "readings_old.json", [])
    new_f = _write(tmp_path / "readings_new.json", [])
    os.utime(old_f, (1_000_000, 1_000_000))
    os.utime(new_f, (2_000_000, 2_000_000))
    assert src.newest_json() == new_f


def test_fetch_readings_filters_subject_metric_and_dates(tmp_path: Path) -> None:
    _write(
        tmp_path / "readings_2024.json",
        [
            {"type": "heartRate", "timestamp": "2024/03/01 08:00", "value": 70, "subject": "ana"},
            {"type": "heartRate", "timestamp": "2024/03/02 08:00", "value": 71, "subject": "luis"},
            {"type": "heartRate", "timestamp": "2024/03/03 08:00", "value": 72},
            {"type": "heartRate", "timestamp": "2024/04/01 08:00", "value": 73, "subject": "ana"},
            {"type": "weight", "timestamp": "2024/03/01 08:00", "value": 80, "subject": "ana"},
        ],
    )
    src = JsonExportSource(JsonExportPaths(root=tmp_path))
    got = src.fetch_readings("ana", MetricType.HEART_RATE, date(2024, 3, 1), date(2024, 3, 31))
    assert [r.value for r in got] == [70.0, 72.0]


def test_in_memory_source() -> None:
    readings = [
        Reading(MetricType.WEIGHT, datetime(2024, 3, 1, 7), value=80.0, subject_id="ana"),
        Reading(MetricType.WEIGHT, datetime(2024, 3, 5, 7), value=79.5, subject_id="ana"),
        Reading(MetricType.WEIGHT, datetime(2024, 3, 5, 7), value=90.0, subject_id="luis"),
        Reading(MetricType.GLUCOSE, datetime(2024, 3, 5, 7), value=100.0, subject_id="ana"),
    ]
    src = InMemoryReadingSource(readings)
    src.add(Reading(MetricType.WEIGHT, datetime(2024, 4, 1, 7), value=79.0, subject_id="ana"))
    got = src.fetch_readings("ana", MetricType.WEIGHT, date(2024, 3, 1), date(2024, 3, 31))
    assert [r.value for r in got] == [80.0, 79.5]


def test_in_memory_source_filters_aware_timestamps_on_local_date() -> None:
    utc = tz.UTC
    late_march = Reading(MetricType.WEIGHT, datetime(2024, 3, 31, 22, 30, tzinfo=utc), value=80.0)
    late_feb = Reading(MetricType.WEIGHT, datetime(2024, 2, 29, 22, 30, tzinfo=utc), value=81.0)

    istanbul = InMemoryReadingSource([late_march, late_feb])
    got = istanbul.fetch_readings("", MetricType.WEIGHT, date(2024, 3, 1), date(2024, 3, 31))
    assert [r.value for r in got] == [81.0]

    in_utc = InMemoryReadingSource([late_march, late_feb], timezone="UTC")
    got = in_utc.fetch_readings("", MetricType.WEIGHT, date(2024, 3, 1), date(2024, 3, 31))
    assert [r.value for r in got] == [80.0]


def test_in_memory_source_rejects_unknown_timezone() -> None:
    with pytest.raises(ValueError, match="Unknown timezone"):
        InMemoryReadingSource(timezone="Nowhere/Special")
