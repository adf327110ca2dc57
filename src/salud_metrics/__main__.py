"""Punto de entrada: python -m salud_metrics."""

from __future__ import annotations

from salud_metrics.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
