"""Lectura de exportaciones JSON de mediciones (readings_*.json)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any

import structlog
from dateutil import tz

from salud_metrics.buckets import as_date
from salud_metrics.config import DEFAULT_CONFIG
from salud_metrics.errors import UnsupportedMetricType
from salud_metrics.model import COMPONENTS, MetricType, Reading, coerce_metric_type
from salud_metrics.sources.base import FileReadingSource, SourcePaths

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class JsonExportPaths(SourcePaths):
    """Paths for JSON reading exports."""

    # root: folder containing readings_*.json


class JsonExportSource(FileReadingSource):
    """JSON export reading source.

    Each item is an object such as::

        {"type": "bloodPressure", "timestamp": "2024/01/05 08:30",
         "systolic": 128, "diastolic": 84, "unit": "mmHg",
         "subType": "default", "subject": "ana", "id": "r-17"}

    Glucose-meter items with only ``mg/dL`` and an optional ``tag`` are
    accepted as glucose readings.
    """

    def __init__(self, paths: SourcePaths, timezone: str = DEFAULT_CONFIG.timezone) -> None:
        super().__init__(paths)
        local_tz = tz.gettz(timezone)
        if local_tz is None:
            raise ValueError(f"Unknown timezone: {timezone}")
        self._tz = local_tz

    def validate(self) -> None:
        """Validate that the export directory exists."""
        if not self._paths.root.exists():
            raise FileNotFoundError(str(self._paths.root))

    def newest_json(self) -> Path:
        """Return newest readings_*.json by mtime."""
        files = sorted(
            self._paths.root.glob("readings_*.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if not files:
            raise FileNotFoundError(f"No readings_*.json in {self._paths.root}")
        return files[0]

    def load_readings(self, path: Path) -> list[Reading]:
        """Parse a JSON export into typed readings.

        Items that cannot be parsed are skipped.

        Args:
            path: Path to JSON file.

        Returns:
            Readings sorted by timestamp.

        Raises:
            ValueError: If JSON shape is invalid.
        """
        text = path.read_text(encoding="utf-8")
        raw = _extract_json_list(text)
        if not isinstance(raw, list):
            raise ValueError("Readings JSON must be a list")

        out: list[Reading] = []
        skipped = 0
        for item in raw:
            reading = _item_to_reading(item, self._tz)
            if reading is None:
                skipped += 1
                continue
            out.append(reading)
        if skipped:
            logger.warning("export_items_skipped", path=str(path), skipped=skipped)
        out.sort(key=lambda r: r.taken_at)
        return out

    def fetch_readings(
        self,
        subject_id: str,
        metric_type: MetricType,
        start: date | datetime,
        end: date | datetime,
    ) -> list[Reading]:
        """Readings of the newest export for one subject and metric.

        Items without a subject belong to every subject.
        """
        self.validate()
        start_day, end_day = as_date(start), as_date(end)
        return [
            r
            for r in self.load_readings(self.newest_json())
            if r.metric_type == metric_type
            and r.subject_id in ("", subject_id)
            and start_day <= r.taken_at.astimezone(self._tz).date() <= end_day
        ]


def _extract_json_list(text: str) -> Any:
    """Extract JSON array from text, tolerating leading non-JSON (e.g. log lines)."""
    start = text.find("[")
    if start >= 0:
        return json.loads(text[start:])
    return json.loads(text)


def _text(item: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = item.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _item_to_reading(item: Any, local_tz: tzinfo) -> Reading | None:
    """Convierte un ítem dict en Reading; None si no es válido."""
    if not isinstance(item, dict):
        return None
    try:
        if "type" not in item and "mg/dL" in item:
            metric_type = MetricType.GLUCOSE
            values: dict[str, Any] = {"value": float(item["mg/dL"])}
            unit: str | None = "mg/dL"
            sub_type = _text(item, "subType", "tag")
        else:
            metric_type = coerce_metric_type(str(item.get("type")))
            values = {name: item.get(name) for name in COMPONENTS[metric_type]}
            if any(v is None for v in values.values()):
                return None
            values = {name: float(v) for name, v in values.items()}
            unit = _text(item, "unit")
            sub_type = _text(item, "subType")
        taken_at = _parse_timestamp(item.get("timestamp"), item.get("epoch"), local_tz)
    except (TypeError, ValueError, UnsupportedMetricType, OverflowError):
        return None
    return Reading(
        metric_type=metric_type,
        taken_at=taken_at,
        sub_type=sub_type,
        unit=unit,
        source_id=_text(item, "id") or "",
        subject_id=_text(item, "subject") or "",
        **values,
    )


def _parse_timestamp(ts_str: Any, epoch: Any, local_tz: tzinfo) -> datetime:
    """Parses the timestamps to get the date and time."""
    if isinstance(ts_str, str) and ts_str.strip():
        value = ts_str.strip()
        try:
            dt = datetime.strptime(value, "%Y/%m/%d %H:%M")
        except ValueError:
            dt = datetime.fromisoformat(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=local_tz)
        return dt

    if epoch is not None:
        return datetime.fromtimestamp(int(epoch), tz=local_tz)

    raise ValueError("Missing timestamp and epoch")
