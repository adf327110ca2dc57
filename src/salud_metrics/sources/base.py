"""Clases base para fuentes de mediciones."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from salud_metrics.model import MetricType, Reading


@dataclass(frozen=True)
class SourcePaths:
    """Container for source directories."""

    root: Path


class ReadingSource(ABC):
    """Upstream provider of readings for one family member."""

    @abstractmethod
    def fetch_readings(
        self,
        subject_id: str,
        metric_type: MetricType,
        start: date | datetime,
        end: date | datetime,
    ) -> list[Reading]:
        """Return readings of ``metric_type`` for ``subject_id``.

        Implementations may return readings outside ``[start, end]``; the
        aggregator filters them.
        """


class FileReadingSource(ReadingSource):
    """Reading source backed by files under a root directory."""

    def __init__(self, paths: SourcePaths) -> None:
        """Create a file-backed source.

        Args:
            paths: Source paths configuration.
        """
        self._paths = paths

    @abstractmethod
    def validate(self) -> None:
        """Validate that required folders/files exist.

        Raises:
            FileNotFoundError: If required files are missing.
        """
