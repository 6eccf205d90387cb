"""Grouping of test plans and runs by recovered release identity."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .identifier import IdentifierParser
from .models import Artifact, ReleaseIdentity

logger = logging.getLogger(__name__)

ReleaseSortKey = Callable[[str], Any]


def lexicographic_release_key(official_id: str) -> str:
    """Default release ordering: the identifier string itself.

    Only selects the true latest release when the identifier embeds fixed-width,
    monotonically increasing tokens (for example ``PROJ-2025-02-R02``).
    """
    return official_id


def sort_releases(
    official_ids: Iterable[str],
    release_sort_key: Optional[ReleaseSortKey] = None,
) -> List[str]:
    """Return distinct release identifiers, most recent first."""
    sort_key = release_sort_key or lexicographic_release_key
    return sorted(set(official_ids), key=sort_key, reverse=True)


class ReleaseGrouper:
    """Assign artifacts to releases and pick the active one for a project."""

    def __init__(
        self,
        parser: IdentifierParser,
        release_sort_key: Optional[ReleaseSortKey] = None,
    ) -> None:
        self._parser = parser
        self._release_sort_key = release_sort_key or lexicographic_release_key

    @property
    def release_sort_key(self) -> ReleaseSortKey:
        return self._release_sort_key

    def match(self, artifact: Optional[Artifact]) -> Optional[ReleaseIdentity]:
        """Parse an artifact's ``title``; ``None`` when it has none or it does not parse."""
        if not artifact:
            return None

        title = artifact.get("title")
        if not isinstance(title, str) or not title.strip():
            return None

        return self._parser.parse(title)

    def group_by_release(
        self,
        artifacts: Optional[Iterable[Artifact]],
        project_key: str,
    ) -> Dict[str, List[Artifact]]:
        """Group artifacts by ``official_id`` in first-seen order.

        Artifacts whose title does not satisfy the grammar are skipped.
        """
        grouped: Dict[str, List[Artifact]] = {}
        skipped = 0

        for artifact in artifacts or ():
            identity = self.match(artifact)
            if identity is None:
                skipped += 1
                logger.debug(
                    "Skipping artifact without a recognizable release",
                    extra={"project": project_key, "title": (artifact or {}).get("title")},
                )
                continue
            grouped.setdefault(identity.official_id, []).append(artifact)

        logger.debug(
            "Grouped artifacts by release",
            extra={"project": project_key, "releases": len(grouped), "skipped": skipped},
        )
        return grouped

    def select_active_release(
        self,
        official_ids: Iterable[str],
        fallback: Optional[str] = None,
    ) -> Optional[str]:
        """Return the most recent of ``official_ids``, or ``fallback`` when there are none."""
        ordered = sort_releases(official_ids, self._release_sort_key)
        if not ordered:
            logger.info("No release detected; using fallback", extra={"fallback_release": fallback})
            return fallback
        return ordered[0]

    def detect_active_release(
        self,
        artifacts: Optional[Iterable[Artifact]],
        fallback: Optional[str] = None,
    ) -> Optional[str]:
        """Return the most recent release among ``artifacts``, or ``fallback``."""
        official_ids = []
        for artifact in artifacts or ():
            identity = self.match(artifact)
            if identity is not None:
                official_ids.append(identity.official_id)
        return self.select_active_release(official_ids, fallback)
