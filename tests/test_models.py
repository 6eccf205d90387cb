"""Tests for domain models and the exception hierarchy."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from releasekpi.errors import (
    ConfigurationError,
    DataValidationError,
    InvalidUsageError,
    KPIEngineError,
    PersistenceError,
)
from releasekpi.models import DEFAULT_TREND_SYMBOL, KPIRecord, ReleaseIdentity


def test_release_identity_official_id_and_attributes():
    """Verify the official id joins version and environment and attributes are exposed."""
    identity = ReleaseIdentity(
        version="PROJ-2025-02-R02",
        environment="UAT",
        raw_title="PROJ-2025-02-R02_UAT_WEB",
        attributes={"platform": "WEB", "testType": None},
    )

    assert identity.official_id == "PROJ-2025-02-R02_UAT"
    assert identity.platform == "WEB"
    assert identity.test_type is None
    assert identity.language is None


def test_kpi_record_dict_uses_external_field_names():
    """Verify serialized records use the field names expected by report renderers."""
    computed_at = datetime(2025, 2, 14, 9, 30, tzinfo=timezone.utc)
    record = KPIRecord(
        key="releaseCoverage",
        name="Release coverage (%)",
        value=41.67,
        formatted_value="41.67%",
        project="ALPHA",
        release="PROJ-2025-02-R02_UAT",
        percent=True,
        computed_at=computed_at,
    )

    payload = record.to_dict()

    assert payload["formattedValue"] == "41.67%"
    assert payload["trendSymbol"] == DEFAULT_TREND_SYMBOL
    assert payload["computedAt"] == "2025-02-14T09:30:00+00:00"
    assert KPIRecord.from_dict(payload) == record


def test_kpi_record_from_dict_requires_identity_fields():
    """Verify records without key, project or release cannot be rebuilt."""
    with pytest.raises(KeyError):
        KPIRecord.from_dict({"key": "plannedScope", "project": "ALPHA"})


def test_kpi_record_from_dict_defaults_optional_fields():
    """Verify optional fields fall back to sensible defaults."""
    record = KPIRecord.from_dict({"key": "plannedScope", "project": "ALPHA", "release": "R1_UAT"})

    assert record.name == "plannedScope"
    assert record.value == 0.0
    assert record.percent is False
    assert record.computed_at.tzinfo is not None


@pytest.mark.parametrize(
    "error_type",
    [ConfigurationError, InvalidUsageError, DataValidationError, PersistenceError],
)
def test_errors_share_base_class(error_type):
    """Verify every engine error can be caught through the common base class."""
    with pytest.raises(KPIEngineError):
        raise error_type("failure")
