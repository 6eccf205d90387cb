"""Tests for KPI calculators and release summaries."""

import logging
import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from releasekpi.errors import InvalidUsageError
from releasekpi.kpi import (
    DEFAULT_CALCULATORS,
    RELEASE_RESULT_KEYS,
    ReleaseContext,
    calculate_execution_rates,
    calculate_planned_scope,
    calculate_release_coverage,
    calculate_release_results,
    planned_scope,
    summarize_release,
)

RELEASE = "PROJ-2025-02-R02_UAT"


def _context(plans=None, runs=None):
    return ReleaseContext.build(project="ALPHA", official_id=RELEASE, plans=plans, runs=runs)


def _values(records):
    return {record.key: record.value for record in records}


def test_planned_scope_sums_case_counts():
    """Verify planned scope sums cases_count, treating zero and invalid counts as nothing."""
    plans = [{"cases_count": 10}, {"cases_count": 15}, {"cases_count": 0}, {"cases_count": "x"}, None]

    records = calculate_planned_scope(_context(plans=plans))

    assert len(records) == 1
    assert records[0].key == "plannedScope"
    assert records[0].value == 25
    assert records[0].formatted_value == "25"
    assert records[0].project == "ALPHA"
    assert records[0].release == RELEASE
    assert planned_scope(None) == 0


def test_planned_scope_zero_is_logged_as_error(caplog):
    """Verify a zero scope is still reported but logged as a data anomaly."""
    with caplog.at_level(logging.ERROR, logger="releasekpi.kpi"):
        records = calculate_planned_scope(_context(plans=[]))

    assert records[0].value == 0
    assert any(record.levelno == logging.ERROR for record in caplog.records)


def test_release_coverage_two_decimals():
    """Verify coverage is executed over planned scope with two decimals."""
    plans = [{"cases_count": 80}, {"cases_count": 40}]
    runs = [{"stats": {"total": 80, "untested": 30, "passed": 40, "failed": 10}}]

    records = calculate_release_coverage(_context(plans, runs))

    assert records[0].key == "releaseCoverage"
    assert records[0].value == pytest.approx(41.67)
    assert records[0].formatted_value == "41.67%"
    assert records[0].percent is True


def test_release_coverage_zero_scope_defaults_to_zero(caplog):
    """Verify coverage is 0 with a warning when nothing was planned."""
    runs = [{"stats": {"total": 10, "passed": 10}}]

    with caplog.at_level(logging.WARNING, logger="releasekpi.kpi"):
        records = calculate_release_coverage(_context([], runs))

    assert records[0].value == 0.0
    assert any("planned scope is 0" in record.getMessage() for record in caplog.records)


def test_release_coverage_above_hundred_is_kept(caplog):
    """Verify over-execution is logged but not capped."""
    plans = [{"cases_count": 10}]
    runs = [{"stats": {"total": 12, "passed": 12}}]

    with caplog.at_level(logging.WARNING, logger="releasekpi.kpi"):
        records = calculate_release_coverage(_context(plans, runs))

    assert records[0].value == pytest.approx(120.0)
    assert any("above 100%" in record.getMessage() for record in caplog.records)


def test_release_results_distribution_over_executed_cases():
    """Verify release results are whole percentages of executed cases in fixed key order."""
    runs = [{"stats": {"total": 60, "passed": 45, "failed": 10, "blocked": 3, "skipped": 2}}]

    records = calculate_release_results(_context([{"cases_count": 60}], runs))

    assert [record.key for record in records] == list(RELEASE_RESULT_KEYS)
    values = _values(records)
    assert values["releaseResults.passedPct"] == 75.0
    assert values["releaseResults.failedPct"] == 17.0
    assert values["releaseResults.blockedPct"] == 5.0
    assert values["releaseResults.skippedPct"] == 3.0
    assert values["releaseResults.retestPct"] == 0.0
    assert records[0].formatted_value == "75%"
    assert records[0].name == "Release - Passed (%)"


def test_release_results_without_executions_are_zero():
    """Verify every result defaults to 0% when nothing was executed."""
    records = calculate_release_results(_context([{"cases_count": 10}], []))

    assert len(records) == 5
    assert all(record.value == 0.0 for record in records)
    assert all(record.formatted_value == "0%" for record in records)


def test_execution_rates_and_total_executed():
    """Verify rates are computed over passed, failed, blocked, skipped and untested cases."""
    runs = [
        {"stats": {"total": 100, "untested": 40, "passed": 45, "failed": 10, "blocked": 3, "skipped": 2}}
    ]

    records = calculate_execution_rates(_context([], runs))

    assert [record.key for record in records] == [
        "passedRate",
        "failedRate",
        "blockedRate",
        "skippedRate",
        "unexecutedRate",
        "totalExecuted",
    ]
    values = _values(records)
    assert values["passedRate"] == pytest.approx(45.0)
    assert values["failedRate"] == pytest.approx(10.0)
    assert values["blockedRate"] == pytest.approx(3.0)
    assert values["skippedRate"] == pytest.approx(2.0)
    assert values["unexecutedRate"] == pytest.approx(40.0)
    assert values["totalExecuted"] == 60
    assert records[-1].formatted_value == "60"


def test_execution_rates_empty_release():
    """Verify an empty release yields 0% rates and no executed cases."""
    values = _values(calculate_execution_rates(_context()))

    assert values["passedRate"] == 0.0
    assert values["unexecutedRate"] == 0.0
    assert values["totalExecuted"] == 0


@pytest.mark.parametrize("calculator", list(DEFAULT_CALCULATORS) + [summarize_release])
def test_calculators_reject_missing_context(calculator):
    """Verify a missing release context is reported as invalid usage."""
    with pytest.raises(InvalidUsageError):
        calculator(None)


def test_summarize_release_whole_percentages():
    """Verify the release summary row consolidates scope, coverage and results."""
    plans = [{"cases_count": 100}, {"cases_count": 20}]
    runs = [{"stats": {"total": 120, "untested": 60, "passed": 45, "failed": 10, "blocked": 5}}]

    summary = summarize_release(_context(plans, runs))

    assert summary.project == "ALPHA"
    assert summary.release == RELEASE
    assert summary.planned_scope == 120
    assert summary.executed_cases == 60
    assert summary.coverage_pct == 50.0
    assert summary.passed_pct == 75.0
    assert summary.failed_pct == 17.0
    assert summary.blocked_pct == 8.0
    assert summary.retest_pct == 0.0
