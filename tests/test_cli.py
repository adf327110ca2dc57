"""Tests for CLI entrypoints."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from salud_metrics import cli
from salud_metrics.config import DEFAULT_CONFIG
from salud_metrics.errors import InvalidRange


def _export(tmp_path: Path) -> Path:
    data = [
        {"type": "glucose", "timestamp": f"2024/03/{day:02d} 08:00", "value": value}
        for day, value in zip(range(1, 11), [95, 145] * 5)
    ]
    data.append(
        {"type": "glucose", "timestamp": "2024/03/05 20:00", "value": 130, "subject": "luis"}
    )
    path = tmp_path / "readings_2024-03-10.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_parse_args_custom_values() -> None:
    ns = cli.parse_args(
        ["--readings", "/tmp/r.json", "--period", "month", "--end", "2024-03-31"]
    )
    assert ns.readings == "/tmp/r.json"
    assert ns.period == "month"
    assert ns.end == date(2024, 3, 31)
    assert ns.start is None


def test_resolve_range() -> None:
    ns = cli.parse_args(["--readings", "x", "--period", "week", "--end", "2024-03-31"])
    rng = cli.resolve_range(ns, DEFAULT_CONFIG)
    assert rng.start == date(2024, 3, 24)
    ns = cli.parse_args(["--readings", "x", "--start", "2024-03-01"])
    with pytest.raises(InvalidRange):
        cli.resolve_range(ns, DEFAULT_CONFIG)


def test_main_writes_report(tmp_path: Path) -> None:
    _export(tmp_path)
    adherence = tmp_path / "adherence.json"
    adherence.write_text(
        json.dumps([{"name": "Metformin", "taken": 25, "total": 30}]), encoding="utf-8"
    )
    out = tmp_path / "out" / "report.json"

    code = cli.main(
        [
            "--readings",
            str(tmp_path),
            "--start",
            "2024-03-01",
            "--end",
            "2024-03-10",
            "--subject",
            "ana",
            "--adherence",
            str(adherence),
            "--out",
            str(out),
        ]
    )

    assert code == 0
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["title"] == "Health Summary Report (01.03.2024 - 10.03.2024)"
    titles = [s["title"] for s in report["sections"]]
    assert titles == ["General Health Overview", "Blood Glucose Analysis", "Medication Adherence"]
    assert report["sections"][1]["data"]["count"] == 10


def test_main_prints_to_stdout(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _export(tmp_path)
    code = cli.main(["--readings", str(path), "--start", "2024-03-01", "--end", "2024-03-10"])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["sections"][1]["data"]["count"] == 11


@pytest.mark.parametrize(
    "args",
    [
        ["--start", "2024-03-10", "--end", "2024-03-01"],
        ["--start", "2024-03-01"],
    ],
)
def test_main_input_errors_exit_2(tmp_path: Path, args: list[str]) -> None:
    path = _export(tmp_path)
    assert cli.main(["--readings", str(path), *args]) == cli.EXIT_INPUT_ERROR


def test_main_missing_readings_exit_2(tmp_path: Path) -> None:
    code = cli.main(
        ["--readings", str(tmp_path / "missing"), "--start", "2024-03-01", "--end", "2024-03-02"]
    )
    assert code == cli.EXIT_INPUT_ERROR


@pytest.mark.parametrize(
    "item",
    [
        {"name": "metformin", "taken": None, "total": 10},
        {"name": "metformin", "taken": 8, "total": "ten"},
    ],
)
def test_main_bad_dose_counts_exit_2(tmp_path: Path, item: dict[str, object]) -> None:
    path = _export(tmp_path)
    adherence = tmp_path / "adherence.json"
    adherence.write_text(json.dumps([item]), encoding="utf-8")
    code = cli.main(
        ["--readings", str(path), "--period", "week", "--end", "2024-03-10",
         "--adherence", str(adherence)]
    )
    assert code == cli.EXIT_INPUT_ERROR


def test_main_bad_config_value_exit_2(tmp_path: Path) -> None:
    path = _export(tmp_path)
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"daily_max_span_days": "many"}), encoding="utf-8")
    code = cli.main(
        ["--readings", str(path), "--period", "week", "--end", "2024-03-10",
         "--config", str(config)]
    )
    assert code == cli.EXIT_INPUT_ERROR


def test_load_adherence_accepts_numeric_strings(tmp_path: Path) -> None:
    adherence = tmp_path / "adherence.json"
    adherence.write_text(
        json.dumps([{"name": "metformin", "taken": "8", "total": 10}]), encoding="utf-8"
    )
    (regimen,) = cli.load_adherence(adherence)
    assert regimen.adherence_rate == pytest.approx(80.0)
