"""Fuente de mediciones en memoria."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from dateutil import tz

from salud_metrics.buckets import as_date
from salud_metrics.config import DEFAULT_CONFIG
from salud_metrics.model import MetricType, Reading
from salud_metrics.sources.base import ReadingSource


class InMemoryReadingSource(ReadingSource):
    """List-backed source, filtered by subject, metric and local date."""

    def __init__(
        self,
        readings: Iterable[Reading] = (),
        timezone: str = DEFAULT_CONFIG.timezone,
    ) -> None:
        local_tz = tz.gettz(timezone)
        if local_tz is None:
            raise ValueError(f"Unknown timezone: {timezone}")
        self._tz = local_tz
        self._readings = list(readings)

    def add(self, reading: Reading) -> None:
        self._readings.append(reading)

    def _local_day(self, taken_at: datetime) -> date:
        # Naive timestamps are already local wall-clock time.
        if taken_at.tzinfo is None:
            return taken_at.date()
        return taken_at.astimezone(self._tz).date()

    def fetch_readings(
        self,
        subject_id: str,
        metric_type: MetricType,
        start: date | datetime,
        end: date | datetime,
    ) -> list[Reading]:
        start_day, end_day = as_date(start), as_date(end)
        return [
            r
            for r in self._readings
            if r.subject_id == subject_id
            and r.metric_type == metric_type
            and start_day <= self._local_day(r.taken_at) <= end_day
        ]
