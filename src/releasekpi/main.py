"""Entry point wiring configuration, input loading, the KPI engine and the snapshot store."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from .cli import parse_args
from .config import Config, load_config
from .engine import PLANS_FIELD, RUNS_FIELD, KPIEngine
from .errors import ConfigurationError, DataValidationError, InvalidUsageError, PersistenceError
from .grouping import ReleaseGrouper
from .history import FileSnapshotStore
from .identifier import IdentifierParser
from .stats import generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_DATA_VALIDATION = 3
EXIT_PERSISTENCE = 4

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_consolidated(path: str) -> Dict[str, Dict[str, List[Any]]]:
    """Load the consolidator's output: project key -> ``{"plan": [...], "run": [...]}``.

    Missing ``plan``/``run`` entries are treated as empty lists.

    Raises:
        DataValidationError: If the file cannot be read, is not JSON, or does not
            have the expected shape.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise DataValidationError(f"Could not read consolidated input '{path}'.") from exc
    except ValueError as exc:
        raise DataValidationError(f"Consolidated input '{path}' is not valid JSON.") from exc

    if not isinstance(payload, dict):
        raise DataValidationError("Consolidated input must be a JSON object keyed by project.")

    consolidated: Dict[str, Dict[str, List[Any]]] = {}
    for project, document in payload.items():
        if not isinstance(document, dict):
            raise DataValidationError(f"Consolidated entry for project '{project}' must be an object.")

        entry: Dict[str, List[Any]] = {}
        for field_name in (PLANS_FIELD, RUNS_FIELD):
            items = document.get(field_name)
            if items is None:
                items = []
            if not isinstance(items, list):
                raise DataValidationError(
                    f"Field '{field_name}' of project '{project}' must be a list, got {type(items).__name__}."
                )
            entry[field_name] = [item for item in items if isinstance(item, dict)]
        consolidated[project] = entry

    return consolidated


def build_engine(config: Config) -> tuple[KPIEngine, FileSnapshotStore]:
    """Wire parser, grouper, snapshot store and engine from configuration."""
    parser = IdentifierParser(config.identifier_rules())
    grouper = ReleaseGrouper(parser)
    store = FileSnapshotStore(config.history_dir, release_sort_key=grouper.release_sort_key)
    return KPIEngine(grouper, store), store


def print_panel(store: FileSnapshotStore, project: str, config: Config) -> None:
    """Print the multi-release panel of ``project``; history read failures skip it."""
    try:
        panel = store.panel(project, config.panel_kpis, config.max_releases)
    except (PersistenceError, InvalidUsageError):
        logger.exception("Could not read KPI history; panel omitted", extra={"project": project})
        print(f"ERROR: KPI panel unavailable for project {project}", file=sys.stderr)
        return
    print(generate_report(f"{project} (panel)", panel))


def orchestrate_kpi_generation(argv: Optional[Sequence[str]] = None) -> int:
    """Run the end-to-end KPI computation and map failures to exit codes.

    Returns:
        ``0`` on success, ``2`` for configuration errors, ``3`` for invalid input,
        ``4`` for history errors raised outside per-project isolation and ``1``
        for anything unexpected. A project whose panel cannot be read is
        reported without it.
    """
    try:
        args = parse_args(argv)
        logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

        config = load_config(
            config_path=args.config,
            history_dir=args.history_dir,
            max_releases=args.max_releases,
            fallback_release=args.fallback_release,
        )
        consolidated = load_consolidated(args.input)
        engine, store = build_engine(config)

        results = engine.calculate_for_all_projects(consolidated, config.fallback_release)

        for project, records in results.items():
            print(generate_report(project, records))
            if args.panel:
                print_panel(store, project, config)
            print()

        return EXIT_OK
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except DataValidationError as exc:
        logger.error("Input validation error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_DATA_VALIDATION
    except PersistenceError as exc:
        logger.error("KPI history error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_PERSISTENCE
    except Exception:
        logger.exception("Unexpected error while computing KPIs")
        print("ERROR: unexpected failure; see logs for details.", file=sys.stderr)
        return EXIT_UNEXPECTED


def main(argv: Optional[Sequence[str]] = None) -> int:
    return orchestrate_kpi_generation(argv)


if __name__ == "__main__":
    raise SystemExit(main())
