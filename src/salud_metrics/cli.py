"""CLI para generar el reporte de salud (JSON) a partir de exportaciones."""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path

import structlog
from dateutil import tz

from salud_metrics.buckets import PERIOD_DAYS, preset_range
from salud_metrics.classify import MetricClassifier
from salud_metrics.config import EngineConfig, load_config
from salud_metrics.errors import HealthMetricsError, InvalidInput, InvalidRange
from salud_metrics.log import configure_logging
from salud_metrics.model import AdherenceSummary, DateRange, Reading
from salud_metrics.reference import load_reference_table
from salud_metrics.report import build_report
from salud_metrics.serialize import dumps
from salud_metrics.sources.json_export import JsonExportPaths, JsonExportSource

logger = structlog.get_logger(__name__)

EXIT_INPUT_ERROR = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Reporte de salud: clasificación, series y hallazgos."
    )
    parser.add_argument(
        "--readings",
        required=True,
        help="Exportación JSON o directorio con readings_*.json (usa el más reciente).",
    )
    parser.add_argument("--start", type=date.fromisoformat, help="Fecha inicial (YYYY-MM-DD).")
    parser.add_argument("--end", type=date.fromisoformat, help="Fecha final (YYYY-MM-DD).")
    parser.add_argument(
        "--period",
        choices=sorted(PERIOD_DAYS),
        help="Período predefinido que termina en --end (default: hoy).",
    )
    parser.add_argument("--subject", help="Filtrar por miembro de la familia.")
    parser.add_argument("--adherence", help="JSON con dosis por medicación.")
    parser.add_argument("--config", help="Archivo JSON de configuración.")
    parser.add_argument("--reference", help="Archivo JSON con rangos de referencia.")
    parser.add_argument("--out", help="Archivo de salida (default: stdout).")
    parser.add_argument("--log-level", default="WARNING", help="Nivel de logging.")
    parser.add_argument(
        "--json-logs", action="store_true", help="Logs en formato JSON."
    )
    return parser.parse_args(argv)


def resolve_range(ns: argparse.Namespace, config: EngineConfig) -> DateRange:
    """Date range from --period/--end or --start/--end.

    Raises:
        InvalidRange: If neither a period nor both dates are given.
    """
    if ns.period:
        end = ns.end or datetime.now(tz=tz.gettz(config.timezone)).date()
        return preset_range(ns.period, end)
    if ns.start is None or ns.end is None:
        raise InvalidRange("Either --period or both --start and --end are required")
    return DateRange(start=ns.start, end=ns.end)


def load_adherence(path: Path) -> list[AdherenceSummary]:
    """Parse ``[{"name": ..., "taken": n, "total": n, "active": bool}, ...]``.

    Raises:
        InvalidInput: If the file is not a list of regimen objects or a dose
            count is not an integer.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise InvalidInput("Adherence JSON must be a list")
    out: list[AdherenceSummary] = []
    for item in raw:
        if not isinstance(item, dict) or "name" not in item:
            raise InvalidInput(f"Invalid adherence item: {item!r}")
        try:
            taken = int(item.get("taken", 0))
            total = int(item.get("total", 0))
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Invalid dose counts in adherence item: {item!r}") from exc
        out.append(
            AdherenceSummary.from_doses(
                str(item["name"]),
                taken=taken,
                total=total,
                active=bool(item.get("active", True)),
            )
        )
    return out


def _load_readings(path: Path, config: EngineConfig) -> list[Reading]:
    source = JsonExportSource(JsonExportPaths(root=path), timezone=config.timezone)
    if path.is_file():
        return source.load_readings(path)
    source.validate()
    return source.load_readings(source.newest_json())


def main(argv: Sequence[str] | None = None) -> int:
    """Run the report CLI.

    Returns:
        Exit code (0 on success, 2 on input errors).
    """
    ns = parse_args(argv)
    configure_logging(ns.log_level, json=ns.json_logs)

    try:
        config = load_config(Path(ns.config).expanduser() if ns.config else None)
        classifier = (
            MetricClassifier(load_reference_table(Path(ns.reference).expanduser()))
            if ns.reference
            else MetricClassifier()
        )
        date_range = resolve_range(ns, config)
        readings = _load_readings(Path(ns.readings).expanduser().resolve(), config)
        if ns.subject:
            readings = [r for r in readings if r.subject_id in ("", ns.subject)]
        adherence = load_adherence(Path(ns.adherence)) if ns.adherence else []
        document = build_report(
            readings,
            date_range.start,
            date_range.end,
            adherence,
            classifier=classifier,
            config=config,
        )
    except (HealthMetricsError, FileNotFoundError, ValueError) as exc:
        logger.error("report_failed", error=str(exc))
        return EXIT_INPUT_ERROR

    text = dumps(document)
    if ns.out:
        out_path = Path(ns.out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        print(f"OK: Readings: {len(readings)}")
        print(f"OK: Output: {out_path}")
    else:
        print(text)
    return 0
