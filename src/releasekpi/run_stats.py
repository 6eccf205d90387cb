"""Normalization of raw test-run counters into :class:`RunStatistics`.

Upstream counters are not trusted: every field is clamped to ``>= 0`` and
``executed_cases`` is reconciled from two derivations (the status sum and
``total - untested``), preferring the smaller non-zero one.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Iterable, Mapping, Optional

from .models import RunStatistics

logger = logging.getLogger(__name__)


def safe_count(counters: Mapping[str, Any], field_name: str) -> int:
    """Read a non-negative integer counter; missing or unparsable values become ``0``."""
    raw = counters.get(field_name)
    if raw is None or isinstance(raw, bool):
        return 0

    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        logger.debug("Ignoring unparsable counter", extra={"field": field_name, "raw_value": raw})
        return 0

    return max(0, value)


def reconcile_executed(total: int, untested: int, status_sum: int) -> int:
    """Reconcile executed cases from the status sum and ``total - untested``."""
    if total <= 0:
        return max(0, status_sum)

    executed_by_diff = max(0, total - max(0, untested))
    if status_sum == 0 and executed_by_diff > 0:
        return executed_by_diff
    if status_sum > executed_by_diff > 0:
        return executed_by_diff
    return max(0, status_sum)


def normalize_run_stats(run: Optional[Mapping[str, Any]]) -> RunStatistics:
    """Build normalized statistics for one run document.

    ``run`` may be a full run document carrying a nested ``stats`` mapping or the
    counters mapping itself.
    """
    if run is None:
        logger.warning("Run document is missing; using empty statistics")
        return RunStatistics()

    counters = run.get("stats") if "stats" in run else run
    if not isinstance(counters, Mapping):
        logger.warning(
            "Run document has no usable 'stats' block; using empty statistics",
            extra={"title": run.get("title")},
        )
        return RunStatistics()

    total = safe_count(counters, "total")
    untested = safe_count(counters, "untested")
    passed = safe_count(counters, "passed")
    failed = safe_count(counters, "failed")
    blocked = safe_count(counters, "blocked")
    skipped = safe_count(counters, "skipped")
    retest = safe_count(counters, "retest")

    status_sum = passed + failed + blocked + skipped + retest

    return RunStatistics(
        total_cases=total,
        executed_cases=reconcile_executed(total, untested, status_sum),
        untested_cases=untested,
        passed=passed,
        failed=failed,
        blocked=blocked,
        skipped=skipped,
        retest=retest,
        invalid=safe_count(counters, "invalid"),
        in_progress=safe_count(counters, "in_progress"),
    )


def aggregate_run_stats(runs: Optional[Iterable[Optional[Mapping[str, Any]]]]) -> RunStatistics:
    """Sum the normalized statistics of every run of a release.

    Reconciliation happens per run; the release-level ``executed_cases`` is the
    sum of the reconciled per-run values.
    """
    totals = {field.name: 0 for field in fields(RunStatistics)}

    for run in runs or ():
        stats = normalize_run_stats(run)
        for field_name in totals:
            totals[field_name] += getattr(stats, field_name)

    return RunStatistics(**totals)
