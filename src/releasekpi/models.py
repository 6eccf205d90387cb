"""Domain models for release identification and KPI computation.

Test plans and test runs are consumed as plain mappings (the consolidator's
JSON documents); these dataclasses model what the engine derives from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

Artifact = Mapping[str, Any]

DEFAULT_TREND_SYMBOL = "→"


@dataclass(frozen=True, slots=True)
class ReleaseIdentity:
    """Release identity recovered from a plan or run title."""

    version: str
    environment: str
    raw_title: str
    attributes: Mapping[str, Optional[str]] = field(default_factory=dict)

    @property
    def official_id(self) -> str:
        return f"{self.version}_{self.environment}"

    @property
    def platform(self) -> Optional[str]:
        return self.attributes.get("platform")

    @property
    def language(self) -> Optional[str]:
        return self.attributes.get("language")

    @property
    def test_type(self) -> Optional[str]:
        return self.attributes.get("testType")

    @property
    def sprint(self) -> Optional[str]:
        return self.attributes.get("sprint")


@dataclass(frozen=True, slots=True)
class RunStatistics:
    """Normalized, non-negative execution counters for a run or a whole release."""

    total_cases: int = 0
    executed_cases: int = 0
    untested_cases: int = 0
    passed: int = 0
    failed: int = 0
    blocked: int = 0
    skipped: int = 0
    retest: int = 0
    invalid: int = 0
    in_progress: int = 0


@dataclass(frozen=True, slots=True)
class KPIRecord:
    """One computed indicator for a project release."""

    key: str
    name: str
    value: float
    formatted_value: str
    project: str
    release: str
    description: str = ""
    percent: bool = False
    trend_symbol: str = DEFAULT_TREND_SYMBOL
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the external field names expected by report renderers."""
        return {
            "key": self.key,
            "name": self.name,
            "value": self.value,
            "formattedValue": self.formatted_value,
            "trendSymbol": self.trend_symbol,
            "description": self.description,
            "percent": self.percent,
            "project": self.project,
            "release": self.release,
            "computedAt": self.computed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "KPIRecord":
        """Rebuild a record from :meth:`to_dict` output.

        Raises:
            KeyError: If ``key``, ``project`` or ``release`` is missing.
            ValueError: If ``value`` or ``computedAt`` cannot be parsed.
        """
        key = str(payload["key"])
        computed_at_raw = payload.get("computedAt")
        computed_at = (
            datetime.fromisoformat(str(computed_at_raw))
            if computed_at_raw
            else datetime.now(timezone.utc)
        )
        return cls(
            key=key,
            name=str(payload.get("name") or key),
            value=float(payload.get("value") or 0.0),
            formatted_value=str(payload.get("formattedValue", "")),
            trend_symbol=str(payload.get("trendSymbol") or DEFAULT_TREND_SYMBOL),
            description=str(payload.get("description", "")),
            percent=bool(payload.get("percent", False)),
            project=str(payload["project"]),
            release=str(payload["release"]),
            computed_at=computed_at,
        )


@dataclass(frozen=True, slots=True)
class KPISnapshot:
    """Persisted form of a KPI record, addressed by ``(official_id, kpi_key)``.

    ``sequence`` is the record's position in the project's write log and
    defines write order independently of wall-clock timestamps.
    """

    official_id: str
    kpi_key: str
    record: KPIRecord
    sequence: int


@dataclass(frozen=True, slots=True)
class ReleaseSummary:
    """One consolidated row per release, used by multi-release panels."""

    project: str
    release: str
    planned_scope: int
    executed_cases: int
    coverage_pct: float
    passed_pct: float
    failed_pct: float
    blocked_pct: float
    skipped_pct: float
    retest_pct: float
