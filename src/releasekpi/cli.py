"""Command-line argument parsing for the release KPI engine."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated integer (``0`` or greater).

    Raises:
        argparse.ArgumentTypeError: If value is not a non-negative integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed < 0:
        raise argparse.ArgumentTypeError("must be 0 (all releases) or greater")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for KPI computation.

    Returns:
        Parsed CLI arguments: input file, optional config file, history directory,
        fallback release, panel options and log level.
    """
    parser = argparse.ArgumentParser(
        prog="release-kpi-engine",
        description=(
            "Compute release quality KPIs (scope, coverage, result distribution, "
            "execution rates) from consolidated test plans and runs, and keep "
            "their history."
        ),
    )

    parser.add_argument(
        "--input",
        required=True,
        help="Consolidated JSON file mapping project key to its 'plan' and 'run' lists.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Optional JSON configuration file (release identifier grammar, allow-lists, panel).",
    )
    parser.add_argument(
        "--history-dir",
        default=None,
        help="Directory holding KPI history (overrides config and KPI_HISTORY_DIR).",
    )
    parser.add_argument(
        "--fallback-release",
        default=None,
        help="Release identifier used when no title of a project matches the grammar.",
    )
    parser.add_argument(
        "--max-releases",
        type=_non_negative_int,
        default=None,
        help="Number of most recent releases shown in the panel (0 = all).",
    )
    parser.add_argument(
        "--panel",
        action="store_true",
        help="Also print the multi-release KPI panel from the stored history.",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging verbosity (default: WARNING).",
    )

    return parser.parse_args(argv)
