"""Configuration parsing and validation for the release KPI engine."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .identifier import IdentifierRules
from .kpi import KPI_KEY_PLANNED_SCOPE, KPI_KEY_RELEASE_COVERAGE, RELEASE_RESULT_KEYS

logger = logging.getLogger(__name__)

HISTORY_DIR_ENV = "KPI_HISTORY_DIR"

DEFAULT_IDENTIFIER_FORMAT = "${version}_${environment}_${platform}_${language}_${testType}"
DEFAULT_VERSION_PATTERN = r"[A-Z0-9]+-[0-9]{4}-[0-9]{2}-R[0-9]{2}"
DEFAULT_ENVIRONMENTS = ("DEV", "QA", "HML", "UAT", "STG", "PRD", "PROD")
DEFAULT_PLATFORMS = ("WEB", "IOS", "ANDROID", "API", "DESKTOP")
DEFAULT_LANGUAGES = ("PT", "EN", "ES")
DEFAULT_TEST_TYPES = ("FUNCIONAL", "REGRESSAO", "SMOKE", "E2E", "INTEGRACAO", "PERFORMANCE")
DEFAULT_PANEL_KPIS = (KPI_KEY_PLANNED_SCOPE, KPI_KEY_RELEASE_COVERAGE) + RELEASE_RESULT_KEYS
DEFAULT_HISTORY_DIR = os.path.join("history", "kpi")

# Config file key -> Config field
_FILE_KEYS: Dict[str, str] = {
    "release.identifier.format": "identifier_format",
    "release.identifier.version.pattern": "version_pattern",
    "release.identifier.environment.allowed": "environments",
    "release.identifier.platform.allowed": "platforms",
    "release.identifier.language.allowed": "languages",
    "release.identifier.testType.allowed": "test_types",
    "report.releases.max": "max_releases",
    "panel.kpis": "panel_kpis",
    "history.kpi.baseDir": "history_dir",
    "release.fallback": "fallback_release",
}
_LIST_FIELDS = frozenset({"environments", "platforms", "languages", "test_types", "panel_kpis"})


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the KPI engine.

    An empty allow-list means the corresponding token is not restricted.
    """

    identifier_format: str = DEFAULT_IDENTIFIER_FORMAT
    version_pattern: str = DEFAULT_VERSION_PATTERN
    environments: Tuple[str, ...] = DEFAULT_ENVIRONMENTS
    platforms: Tuple[str, ...] = DEFAULT_PLATFORMS
    languages: Tuple[str, ...] = DEFAULT_LANGUAGES
    test_types: Tuple[str, ...] = DEFAULT_TEST_TYPES
    max_releases: int = 1
    panel_kpis: Tuple[str, ...] = DEFAULT_PANEL_KPIS
    history_dir: str = DEFAULT_HISTORY_DIR
    fallback_release: Optional[str] = None

    def identifier_rules(self) -> IdentifierRules:
        """Build the rules object injected into the identifier parser."""
        allow_lists = {
            "environment": self.environments,
            "platform": self.platforms,
            "language": self.languages,
            "testType": self.test_types,
        }
        return IdentifierRules(
            identifier_format=self.identifier_format,
            version_pattern=re.compile(self.version_pattern),
            allow_lists={token: values for token, values in allow_lists.items() if values},
        )


def _as_list(value: Any, key: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(item.strip() for item in value if item.strip())
    raise ConfigurationError(
        f"Invalid value for '{key}': expected a comma-separated string or a list of strings."
    )


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid value for '{key}': expected an integer.")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for '{key}': expected an integer.") from exc


def _read_config_file(config_path: str) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"Could not read configuration file '{config_path}'.") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Configuration file '{config_path}' is not valid JSON.") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file '{config_path}' must contain a JSON object.")

    return payload


def _fields_from_file(payload: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, raw in payload.items():
        field_name = _FILE_KEYS.get(key)
        if field_name is None:
            logger.warning("Ignoring unknown configuration key", extra={"key": key})
            continue

        if field_name in _LIST_FIELDS:
            values[field_name] = _as_list(raw, key)
        elif field_name == "max_releases":
            values[field_name] = _as_int(raw, key)
        elif raw is None:
            values[field_name] = None
        else:
            values[field_name] = str(raw).strip()
    return values


def validate_config(config: Config) -> Config:
    """Validate a configuration, returning it unchanged.

    The identifier format itself is not rejected here: a malformed format makes
    the parser inoperable and is reported when the parser is built.

    Raises:
        ConfigurationError: If a value is outside its accepted range.
    """
    if not config.identifier_format.strip():
        raise ConfigurationError("Invalid value for 'release.identifier.format': must not be empty.")

    try:
        re.compile(config.version_pattern)
    except re.error as exc:
        raise ConfigurationError(
            f"Invalid value for 'release.identifier.version.pattern': {exc}."
        ) from exc

    if config.max_releases < 0:
        raise ConfigurationError(
            "Invalid value for 'report.releases.max': expected 0 (all releases) or a positive integer."
        )

    if not config.history_dir.strip():
        raise ConfigurationError("Invalid value for 'history.kpi.baseDir': must not be empty.")

    return config


def load_config(
    config_path: Optional[str] = None,
    history_dir: Optional[str] = None,
    max_releases: Optional[int] = None,
    fallback_release: Optional[str] = None,
) -> Config:
    """Build and validate application configuration.

    Values are layered in this order, later ones winning: built-in defaults, the
    optional JSON file at ``config_path``, the ``KPI_HISTORY_DIR`` environment
    variable, then the explicit keyword arguments (CLI overrides).

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid.
    """
    values: Dict[str, Any] = {}
    if config_path:
        values.update(_fields_from_file(_read_config_file(config_path)))

    env_history_dir = os.getenv(HISTORY_DIR_ENV, "").strip()
    if env_history_dir:
        values["history_dir"] = env_history_dir

    if history_dir is not None:
        values["history_dir"] = history_dir
    if max_releases is not None:
        values["max_releases"] = max_releases
    if fallback_release is not None:
        values["fallback_release"] = fallback_release.strip() or None

    return validate_config(replace(Config(), **values))
