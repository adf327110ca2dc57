"""Textos y parámetros de reporte por tipo de métrica."""

from __future__ import annotations

from dataclasses import dataclass

from salud_metrics.model import MetricType


@dataclass(frozen=True)
class MetricProfile:
    """Per-metric presentation and rule parameters."""

    name: str
    section_title: str
    interpolate: bool
    improvement_threshold: float
    recommendation: str


PROFILES: dict[MetricType, MetricProfile] = {
    MetricType.GLUCOSE: MetricProfile(
        name="Blood glucose",
        section_title="Blood Glucose Analysis",
        interpolate=False,
        improvement_threshold=5.0,
        recommendation=(
            "Pay attention to diet and keep measuring blood glucose regularly."
        ),
    ),
    MetricType.BLOOD_PRESSURE: MetricProfile(
        name="Blood pressure",
        section_title="Blood Pressure Analysis",
        interpolate=False,
        improvement_threshold=3.0,
        recommendation="Reduce salt intake and exercise regularly.",
    ),
    MetricType.HEART_RATE: MetricProfile(
        name="Heart rate",
        section_title="Heart Rate Analysis",
        interpolate=False,
        improvement_threshold=3.0,
        recommendation="Discuss resting heart rate values with a physician.",
    ),
    MetricType.WEIGHT: MetricProfile(
        name="Weight",
        section_title="Weight Tracking",
        interpolate=True,
        improvement_threshold=0.5,
        recommendation="Keep a balanced diet and regular physical activity.",
    ),
    MetricType.TEMPERATURE: MetricProfile(
        name="Body temperature",
        section_title="Body Temperature Analysis",
        interpolate=False,
        improvement_threshold=0.2,
        recommendation="Monitor body temperature and consult a physician if it persists.",
    ),
    MetricType.OXYGEN_SATURATION: MetricProfile(
        name="Oxygen saturation",
        section_title="Oxygen Saturation Analysis",
        interpolate=False,
        improvement_threshold=1.0,
        recommendation="Low oxygen saturation should be evaluated by a physician.",
    ),
    MetricType.STRESS_LEVEL: MetricProfile(
        name="Stress level",
        section_title="Stress Level Analysis",
        interpolate=False,
        improvement_threshold=0.5,
        recommendation="Consider relaxation techniques and sufficient sleep.",
    ),
    MetricType.OTHER: MetricProfile(
        name="Other measurements",
        section_title="Other Measurements",
        interpolate=False,
        improvement_threshold=0.0,
        recommendation="Review other measurements with a physician.",
    ),
}


def profile_for(metric_type: MetricType) -> MetricProfile:
    return PROFILES[metric_type]
