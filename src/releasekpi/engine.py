"""KPI engine: active-release detection, KPI calculation and snapshot persistence per project."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .grouping import ReleaseGrouper
from .history import KPISnapshotStore
from .kpi import DEFAULT_CALCULATORS, KPICalculator, ReleaseContext, summarize_release
from .models import Artifact, KPIRecord, ReleaseSummary

logger = logging.getLogger(__name__)

PLANS_FIELD = "plan"
RUNS_FIELD = "run"


def _calculator_name(calculator: KPICalculator) -> str:
    return getattr(calculator, "__name__", repr(calculator))


class KPIEngine:
    """Compute the KPI list of each project's active release and store it as snapshots."""

    def __init__(
        self,
        grouper: ReleaseGrouper,
        store: Optional[KPISnapshotStore] = None,
        calculators: Optional[Iterable[KPICalculator]] = None,
    ) -> None:
        self._grouper = grouper
        self._store = store
        self._calculators: List[KPICalculator] = list(
            DEFAULT_CALCULATORS if calculators is None else calculators
        )
        logger.debug("KPI engine initialized", extra={"calculators": len(self._calculators)})

    @property
    def calculators(self) -> Tuple[KPICalculator, ...]:
        return tuple(self._calculators)

    def register(self, calculator: KPICalculator) -> None:
        """Append a calculator; its records follow those of earlier registrations."""
        self._calculators.append(calculator)

    def build_context(
        self,
        project: str,
        plans: Optional[Sequence[Artifact]],
        runs: Optional[Sequence[Artifact]],
        fallback_release: Optional[str] = None,
    ) -> Optional[ReleaseContext]:
        """Detect the active release of ``project`` and collect its plans and runs.

        Each artifact title is parsed once; detection considers the releases of
        plans and runs together. Returns ``None`` when no release is detected
        and no fallback is given.
        """
        plan_groups = self._grouper.group_by_release(plans, project)
        run_groups = self._grouper.group_by_release(runs, project)

        active_release = self._grouper.select_active_release(
            list(plan_groups) + list(run_groups), fallback_release
        )
        if not active_release:
            return None

        release_plans = plan_groups.get(active_release, [])
        release_runs = run_groups.get(active_release, [])

        logger.info(
            "Detected active release",
            extra={
                "project": project,
                "release": active_release,
                "plans": len(release_plans),
                "runs": len(release_runs),
            },
        )
        return ReleaseContext.build(
            project=project,
            official_id=active_release,
            plans=release_plans,
            runs=release_runs,
        )

    def _save(self, project: str, official_id: str, records: List[KPIRecord]) -> None:
        if self._store is None or not records:
            return

        try:
            self._store.upsert(project, official_id, records)
        except Exception:
            logger.exception(
                "Failed to persist KPI snapshots",
                extra={"project": project, "release": official_id, "records": len(records)},
            )

    def calculate_for_project(
        self,
        project: str,
        plans: Optional[Sequence[Artifact]],
        runs: Optional[Sequence[Artifact]],
        fallback_release: Optional[str] = None,
    ) -> List[KPIRecord]:
        """Run every calculator against the active release of ``project``.

        A failing calculator is logged and its KPIs omitted; the others still run.
        Records are returned in calculator registration order and submitted to the
        snapshot store.
        """
        context = self.build_context(project, plans, runs, fallback_release)
        if context is None:
            logger.warning("No valid release found; no KPIs computed", extra={"project": project})
            return []

        records: List[KPIRecord] = []
        for calculator in self._calculators:
            try:
                produced = calculator(context)
            except Exception:
                logger.exception(
                    "KPI calculator failed",
                    extra={
                        "project": project,
                        "release": context.official_id,
                        "calculator": _calculator_name(calculator),
                    },
                )
                continue
            records.extend(produced or ())

        self._save(project, context.official_id, records)
        return records

    def calculate_for_all_projects(
        self,
        per_project_artifacts: Mapping[str, Optional[Mapping[str, Any]]],
        fallback_release: Optional[str] = None,
    ) -> Dict[str, List[KPIRecord]]:
        """Compute KPI lists for every project, isolating failures per project.

        Args:
            per_project_artifacts: Project key mapped to ``{"plan": [...], "run": [...]}``.
            fallback_release: Release used when a project has no recognizable release.

        Returns:
            Project key mapped to its ordered KPI list (empty on failure).
        """
        results: Dict[str, List[KPIRecord]] = {}

        for project, artifacts in per_project_artifacts.items():
            if not artifacts:
                results[project] = []
                continue

            try:
                results[project] = self.calculate_for_project(
                    project,
                    artifacts.get(PLANS_FIELD),
                    artifacts.get(RUNS_FIELD),
                    fallback_release,
                )
            except Exception:
                logger.exception("KPI computation failed for project", extra={"project": project})
                results[project] = []

        logger.info(
            "Computed KPIs for all projects",
            extra={
                "projects": len(results),
                "records": sum(len(records) for records in results.values()),
            },
        )
        return results

    def summarize_releases(
        self,
        project: str,
        plans: Optional[Sequence[Artifact]],
        runs: Optional[Sequence[Artifact]],
    ) -> List[ReleaseSummary]:
        """One summary row per release found in ``plans``, in first-seen order."""
        plan_groups = self._grouper.group_by_release(plans, project)
        run_groups = self._grouper.group_by_release(runs, project)

        summaries: List[ReleaseSummary] = []
        for official_id, release_plans in plan_groups.items():
            context = ReleaseContext.build(
                project=project,
                official_id=official_id,
                plans=release_plans,
                runs=run_groups.get(official_id, []),
            )
            summaries.append(summarize_release(context))
        return summaries
