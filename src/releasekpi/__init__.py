"""Release identification and multi-release KPI engine for test-management data."""

__version__ = "0.1.0"
