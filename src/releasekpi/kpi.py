"""KPI calculators for a single project release.

Each calculator is a pure function of a :class:`ReleaseContext` returning one
or more :class:`KPIRecord` values:

- planned scope: sum of ``cases_count`` over the release's test plans
- release coverage: executed cases over planned scope
- release results: status distribution over executed cases
- execution rates: status distribution over all counted cases, plus the
  absolute number of executed cases

Rounding is decimal half-up and fixed per KPI key (see the ``*_PLACES``
constants). Zero denominators are data anomalies: they are logged and the
affected values default to ``0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import InvalidUsageError
from .models import Artifact, KPIRecord, ReleaseSummary, RunStatistics
from .run_stats import aggregate_run_stats, safe_count
from .stats import calculate_percent, format_count, format_percent

logger = logging.getLogger(__name__)

KPI_KEY_PLANNED_SCOPE = "plannedScope"
KPI_KEY_RELEASE_COVERAGE = "releaseCoverage"
KPI_KEY_TOTAL_EXECUTED = "totalExecuted"
RELEASE_RESULTS_PREFIX = "releaseResults"

COVERAGE_PLACES = 2
RESULTS_PLACES = 0
RATES_PLACES = 2

RELEASE_RESULT_STATUSES: Tuple[str, ...] = ("passed", "failed", "blocked", "skipped", "retest")

RELEASE_RESULT_KEYS: Tuple[str, ...] = tuple(
    f"{RELEASE_RESULTS_PREFIX}.{status}Pct" for status in RELEASE_RESULT_STATUSES
)

EXECUTION_RATE_KEYS: Tuple[Tuple[str, str], ...] = (
    ("passedRate", "Pass rate"),
    ("failedRate", "Failure rate"),
    ("blockedRate", "Blocked rate"),
    ("skippedRate", "Skipped rate"),
    ("unexecutedRate", "Not executed rate"),
)


@dataclass(frozen=True)
class ReleaseContext:
    """Everything a calculator needs to know about one release of a project."""

    project: str
    official_id: str
    plans: Tuple[Artifact, ...] = ()
    runs: Tuple[Artifact, ...] = ()
    stats: RunStatistics = field(default_factory=RunStatistics)

    @classmethod
    def build(
        cls,
        project: str,
        official_id: str,
        plans: Optional[Iterable[Optional[Artifact]]] = None,
        runs: Optional[Iterable[Optional[Artifact]]] = None,
    ) -> "ReleaseContext":
        """Create a context, treating missing collections as empty and aggregating run stats."""
        plan_items = tuple(plan for plan in plans or () if plan is not None)
        run_items = tuple(run for run in runs or () if run is not None)
        return cls(
            project=project,
            official_id=official_id,
            plans=plan_items,
            runs=run_items,
            stats=aggregate_run_stats(run_items),
        )


KPICalculator = Callable[[ReleaseContext], List[KPIRecord]]


def _require_context(context: Optional[ReleaseContext], calculator: str) -> ReleaseContext:
    if context is None:
        raise InvalidUsageError(f"{calculator} requires a release context; got None.")
    return context


def planned_scope(plans: Optional[Iterable[Optional[Mapping]]]) -> int:
    """Sum ``cases_count`` over ``plans``; missing or invalid counts add nothing."""
    total = 0
    for plan in plans or ():
        if plan is None:
            continue
        total += safe_count(plan, "cases_count")
    return max(0, total)


def calculate_planned_scope(context: ReleaseContext) -> List[KPIRecord]:
    """Planned scope: total test cases planned for the release.

    Every test plan carries at least one case upstream, so a scope of ``0``
    points at misidentified releases or badly formatted titles. It is logged
    as an error but never filters the release out.
    """
    ctx = _require_context(context, "calculate_planned_scope")
    scope = planned_scope(ctx.plans)

    if scope <= 0:
        logger.error(
            "Planned scope is 0; check plan titles and the release identifier format",
            extra={"project": ctx.project, "release": ctx.official_id, "plans": len(ctx.plans)},
        )
    else:
        logger.info(
            "Computed planned scope",
            extra={
                "project": ctx.project,
                "release": ctx.official_id,
                "plans": len(ctx.plans),
                "planned_scope": scope,
            },
        )

    return [
        KPIRecord(
            key=KPI_KEY_PLANNED_SCOPE,
            name="Planned scope",
            value=scope,
            formatted_value=format_count(scope),
            description=f"Total test cases planned for release {ctx.official_id}",
            percent=False,
            project=ctx.project,
            release=ctx.official_id,
        )
    ]


def calculate_release_coverage(context: ReleaseContext) -> List[KPIRecord]:
    """Release coverage: ``executed_cases / planned_scope * 100`` with two decimals."""
    ctx = _require_context(context, "calculate_release_coverage")
    scope = planned_scope(ctx.plans)
    executed = ctx.stats.executed_cases

    if scope <= 0:
        logger.warning(
            "Release coverage defaults to 0 because planned scope is 0",
            extra={"project": ctx.project, "release": ctx.official_id},
        )

    coverage = calculate_percent(executed, scope, COVERAGE_PLACES)
    if coverage > 100:
        logger.warning(
            "Release coverage above 100%: more cases executed than planned",
            extra={
                "project": ctx.project,
                "release": ctx.official_id,
                "executed_cases": executed,
                "planned_scope": scope,
            },
        )

    return [
        KPIRecord(
            key=KPI_KEY_RELEASE_COVERAGE,
            name="Release coverage (%)",
            value=coverage,
            formatted_value=format_percent(coverage, COVERAGE_PLACES),
            description=f"Share of planned cases executed in release {ctx.official_id}",
            percent=True,
            project=ctx.project,
            release=ctx.official_id,
        )
    ]


def calculate_release_results(context: ReleaseContext) -> List[KPIRecord]:
    """Release results: per-status share of executed cases, as whole percentages."""
    ctx = _require_context(context, "calculate_release_results")
    executed = ctx.stats.executed_cases

    if executed <= 0:
        logger.warning(
            "No executed cases; every release result defaults to 0%",
            extra={"project": ctx.project, "release": ctx.official_id},
        )

    records: List[KPIRecord] = []
    for status, key in zip(RELEASE_RESULT_STATUSES, RELEASE_RESULT_KEYS):
        count = getattr(ctx.stats, status)
        pct = calculate_percent(count, executed, RESULTS_PLACES) if executed > 0 else 0.0
        records.append(
            KPIRecord(
                key=key,
                name=f"Release - {status.capitalize()} (%)",
                value=pct,
                formatted_value=format_percent(pct, RESULTS_PLACES),
                description=f"Share of executed cases {status.upper()} in release {ctx.official_id}",
                percent=True,
                project=ctx.project,
                release=ctx.official_id,
            )
        )

    return records


def calculate_execution_rates(context: ReleaseContext) -> List[KPIRecord]:
    """Execution rates over ``passed + failed + blocked + skipped + untested`` and ``totalExecuted``.

    The denominator is floored to ``1`` so an empty release yields ``0%`` rates.
    """
    ctx = _require_context(context, "calculate_execution_rates")
    stats = ctx.stats
    counts: Sequence[int] = (
        stats.passed,
        stats.failed,
        stats.blocked,
        stats.skipped,
        stats.untested_cases,
    )
    denominator = sum(counts) or 1

    records: List[KPIRecord] = []
    for (key, name), count in zip(EXECUTION_RATE_KEYS, counts):
        rate = calculate_percent(count, denominator, RATES_PLACES)
        records.append(
            KPIRecord(
                key=key,
                name=name,
                value=rate,
                formatted_value=format_percent(rate, 0),
                description=name,
                percent=True,
                project=ctx.project,
                release=ctx.official_id,
            )
        )

    total_executed = stats.passed + stats.failed + stats.blocked + stats.skipped
    records.append(
        KPIRecord(
            key=KPI_KEY_TOTAL_EXECUTED,
            name="Total executed",
            value=total_executed,
            formatted_value=format_count(total_executed),
            description=f"Cases passed, failed, blocked or skipped in release {ctx.official_id}",
            percent=False,
            project=ctx.project,
            release=ctx.official_id,
        )
    )
    return records


DEFAULT_CALCULATORS: Tuple[KPICalculator, ...] = (
    calculate_planned_scope,
    calculate_release_coverage,
    calculate_release_results,
    calculate_execution_rates,
)


def summarize_release(context: ReleaseContext) -> ReleaseSummary:
    """Consolidate one release into a single summary row with whole percentages."""
    ctx = _require_context(context, "summarize_release")
    stats = ctx.stats
    scope = planned_scope(ctx.plans)
    executed = stats.executed_cases

    return ReleaseSummary(
        project=ctx.project,
        release=ctx.official_id,
        planned_scope=scope,
        executed_cases=executed,
        coverage_pct=calculate_percent(executed, scope, 0),
        passed_pct=calculate_percent(stats.passed, executed, 0),
        failed_pct=calculate_percent(stats.failed, executed, 0),
        blocked_pct=calculate_percent(stats.blocked, executed, 0),
        skipped_pct=calculate_percent(stats.skipped, executed, 0),
        retest_pct=calculate_percent(stats.retest, executed, 0),
    )
