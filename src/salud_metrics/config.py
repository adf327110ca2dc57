"""Configuración del motor (umbrales de reporte, zona horaria, granularidad)."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import structlog

from salud_metrics.errors import InvalidInput

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Tunable parameters for bucketing and report rules."""

    timezone: str = "Europe/Istanbul"
    daily_max_span_days: int = 31
    weekly_max_span_days: int = 120
    warning_share_floor: float = 0.25
    regimen_adherence_floor: float = 70.0
    overall_adherence_floor: float = 80.0
    strict_metric_types: bool = False
    decimals: int = 2


DEFAULT_CONFIG = EngineConfig()


def load_config(path: Path | None) -> EngineConfig:
    """Load config from a JSON object file, merged over the defaults.

    Missing or malformed files yield the defaults. Unknown keys are ignored.
    """
    if path is None or not path.exists():
        return DEFAULT_CONFIG
    try:
        parsed: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("config_unreadable", path=str(path))
        return DEFAULT_CONFIG
    if not isinstance(parsed, dict):
        logger.warning("config_not_object", path=str(path))
        return DEFAULT_CONFIG
    return config_from_dict(parsed)


def _coerce(name: str, value: Any, kind: str) -> Any:
    if kind == "bool":
        if isinstance(value, bool):
            return value
    elif kind == "str":
        if isinstance(value, str):
            return value
    elif not isinstance(value, bool):
        try:
            return int(value) if kind == "int" else float(value)
        except (TypeError, ValueError):
            pass
    raise InvalidInput(f"Config value {name} must be {kind}, got {value!r}")


def config_from_dict(values: dict[str, Any]) -> EngineConfig:
    """Merge a mapping over the default config.

    Values are converted to the field's declared type (``"40"`` becomes 40
    for an int field).

    Raises:
        InvalidInput: If a value cannot be converted.
        ValueError: If the daily span exceeds the weekly span.
    """
    kinds = {f.name: str(f.type) for f in fields(EngineConfig)}
    known = set(kinds)
    unknown = sorted(set(values) - known)
    if unknown:
        logger.warning("config_unknown_keys", keys=unknown)
    defaults = asdict(DEFAULT_CONFIG)
    merged = {
        **defaults,
        **{k: _coerce(k, v, kinds[k]) for k, v in values.items() if k in known},
    }
    if merged["daily_max_span_days"] > merged["weekly_max_span_days"]:
        raise ValueError("daily_max_span_days must not exceed weekly_max_span_days")
    return EngineConfig(**merged)
