"""Excepciones del motor de métricas."""

from __future__ import annotations


class HealthMetricsError(Exception):
    """Base class for engine errors."""


class InvalidInput(HealthMetricsError, ValueError):
    """A value is missing, non-numeric or non-finite."""


class InvalidRange(HealthMetricsError, ValueError):
    """A date range ends before it starts (or is otherwise unusable)."""


class UnsupportedMetricType(HealthMetricsError, ValueError):
    """The metric type is not one of the known variants."""
