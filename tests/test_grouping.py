"""Tests for release grouping and active-release detection."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from releasekpi.config import Config
from releasekpi.grouping import ReleaseGrouper, lexicographic_release_key, sort_releases
from releasekpi.identifier import IdentifierParser


def _grouper(release_sort_key=None):
    return ReleaseGrouper(IdentifierParser(Config().identifier_rules()), release_sort_key=release_sort_key)


def _artifacts():
    return [
        {"title": "PROJ-2025-01-R05_UAT_WEB_PT_REGRESSAO", "cases_count": 500},
        {"title": "PROJ-2025-02-R02_UAT_WEB_PT_REGRESSAO", "cases_count": 80},
        {"title": "Exploratory session", "cases_count": 9},
        {"title": None},
        {"cases_count": 3},
        {"title": "PROJ-2025-02-R02_UAT_IOS_PT_SMOKE", "cases_count": 40},
        {"title": "PROJ-2025-02-R02_QA_WEB_PT_SMOKE", "cases_count": 12},
    ]


def test_group_by_release_keeps_first_seen_order_and_skips_unparsable_titles():
    """Verify artifacts are grouped per official id in first-seen order."""
    grouped = _grouper().group_by_release(_artifacts(), "PROJ")

    assert list(grouped) == [
        "PROJ-2025-01-R05_UAT",
        "PROJ-2025-02-R02_UAT",
        "PROJ-2025-02-R02_QA",
    ]
    assert [plan["cases_count"] for plan in grouped["PROJ-2025-02-R02_UAT"]] == [80, 40]
    assert sum(len(items) for items in grouped.values()) == 4


def test_group_by_release_handles_missing_collection():
    """Verify a missing or empty collection produces an empty mapping."""
    grouper = _grouper()

    assert grouper.group_by_release(None, "PROJ") == {}
    assert grouper.group_by_release([], "PROJ") == {}
    assert grouper.group_by_release([None, {}], "PROJ") == {}


def test_match_returns_identity_for_valid_title_only():
    """Verify match parses the artifact title and ignores non-string titles."""
    grouper = _grouper()

    identity = grouper.match({"title": "PROJ-2025-02-R02_UAT"})

    assert identity is not None
    assert identity.official_id == "PROJ-2025-02-R02_UAT"
    assert grouper.match({"title": 42}) is None
    assert grouper.match(None) is None


def test_detect_active_release_picks_most_recent_identifier():
    """Verify the lexicographically greatest official id is the active release."""
    artifacts = [
        {"title": "PROJ-2025-01-R05_UAT"},
        {"title": "PROJ-2025-02-R02_UAT"},
        {"title": "PROJ-2024-12-R09_UAT"},
    ]

    assert _grouper().detect_active_release(artifacts) == "PROJ-2025-02-R02_UAT"


def test_detect_active_release_uses_fallback_when_nothing_matches():
    """Verify the fallback is returned when no title matches, and None without one."""
    artifacts = [{"title": "Exploratory session"}, {"title": ""}]
    grouper = _grouper()

    assert grouper.detect_active_release(artifacts, "LEGACY_UAT") == "LEGACY_UAT"
    assert grouper.detect_active_release(artifacts) is None
    assert grouper.detect_active_release(None) is None


def test_detect_active_release_honours_custom_sort_key():
    """Verify a pluggable sort key changes which release is considered latest."""
    artifacts = [{"title": "PROJ-2025-02-R02_UAT"}, {"title": "PROJ-2025-01-R05_QA"}]
    grouper = _grouper(release_sort_key=lambda official_id: official_id.endswith("_QA"))

    assert grouper.detect_active_release(artifacts) == "PROJ-2025-01-R05_QA"


def test_sort_releases_deduplicates_and_orders_descending():
    """Verify release ordering is distinct and most recent first."""
    releases = ["A-2025-01-R01_UAT", "A-2025-03-R01_UAT", "A-2025-01-R01_UAT", "A-2025-02-R01_UAT"]

    assert sort_releases(releases) == ["A-2025-03-R01_UAT", "A-2025-02-R01_UAT", "A-2025-01-R01_UAT"]
    assert lexicographic_release_key("X") == "X"


def test_select_active_release_from_identifiers():
    """Verify the latest identifier is selected and the fallback covers an empty set."""
    grouper = _grouper()

    assert grouper.select_active_release(["A-2025-01-R01_UAT", "A-2025-02-R01_UAT"]) == "A-2025-02-R01_UAT"
    assert grouper.select_active_release([], "LEGACY_UAT") == "LEGACY_UAT"
    assert grouper.select_active_release([]) is None
