"""Rounding and formatting helpers for KPI reporting.

This module provides utilities for:
- Computing percentages with decimal half-up rounding.
- Formatting counts and percentages for ``formatted_value`` fields.
- Building a human-readable listing of KPI records per project.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence

from .models import KPIRecord

_HUNDRED = Decimal(100)


def round_half_up(value: float, places: int = 2) -> float:
    """Round ``value`` half-up (``2.5 -> 3``) to ``places`` decimals.

    Unlike :func:`round`, ties are never rounded to even.
    """
    quantum = Decimal(1).scaleb(-max(0, places))
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_percent(part: int, total: int, places: int = 2) -> float:
    """Calculate ``part / total * 100`` rounded half-up to ``places`` decimals.

    Returns ``0.0`` when ``total <= 0`` or ``part <= 0``.
    """
    if total <= 0 or part <= 0:
        return 0.0

    quantum = Decimal(1).scaleb(-max(0, places))
    ratio = Decimal(part) * _HUNDRED / Decimal(total)
    return float(ratio.quantize(quantum, rounding=ROUND_HALF_UP))


def format_percent(value: float, places: int = 0) -> str:
    """Format a percentage value, e.g. ``75%`` or ``41.67%``."""
    quantum = Decimal(1).scaleb(-max(0, places))
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return f"{rounded}%"


def format_count(value: float) -> str:
    """Format an absolute count without decimals."""
    return str(int(round_half_up(value, 0)))


def generate_report(project: str, records: Sequence[KPIRecord]) -> str:
    """Generate a plain-text KPI listing for one project.

    Records are listed in the order given; an empty list produces a single
    "No KPIs" line so that projects without releases stay visible.
    """
    lines: List[str] = [f"Project: {project}"]

    if not records:
        lines.append("   No KPIs computed (no recognizable release)")
        return "\n".join(lines)

    current_release = None
    for record in records:
        if record.release != current_release:
            current_release = record.release
            lines.append(f"   Release: {current_release}")
        lines.append(f"      {record.name} [{record.key}]: {record.formatted_value} {record.trend_symbol}")

    return "\n".join(lines)
