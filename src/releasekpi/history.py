"""KPI snapshot store: upsertable "current" values plus full write history.

Each project owns one append-only log of :class:`KPISnapshot` entries and an
index from ``(official_id, kpi_key)`` to the offset of the latest entry for that
pair. The index is the upsert view (at most one live snapshot per pair); the log
itself serves trend queries. Writes for a project are serialized by a
per-project lock, so different projects can be written in parallel.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidUsageError, PersistenceError
from .grouping import ReleaseSortKey, lexicographic_release_key, sort_releases
from .models import KPIRecord, KPISnapshot

logger = logging.getLogger(__name__)

HISTORY_FILE_NAME = "kpi_history.jsonl"


def _require_text(value: Optional[str], argument: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidUsageError(f"'{argument}' must be a non-empty string.")
    return value


class _ProjectLog:
    """Write log and live index for one project."""

    __slots__ = ("lock", "entries", "index", "loaded")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: List[KPISnapshot] = []
        self.index: Dict[Tuple[str, str], int] = {}
        self.loaded = False

    def append(self, snapshot: KPISnapshot) -> None:
        self.entries.append(snapshot)
        self.index[(snapshot.official_id, snapshot.kpi_key)] = snapshot.sequence

    def live(self) -> List[KPISnapshot]:
        return [self.entries[offset] for offset in sorted(self.index.values())]


class KPISnapshotStore:
    """In-memory snapshot store.

    Subclasses add durability by overriding :meth:`_load` and :meth:`_persist`.
    """

    def __init__(self, release_sort_key: Optional[ReleaseSortKey] = None) -> None:
        self._release_sort_key = release_sort_key or lexicographic_release_key
        self._registry_lock = threading.Lock()
        self._projects: Dict[str, _ProjectLog] = {}

    def _load(self, project: str) -> List[KPISnapshot]:
        """Return previously persisted snapshots for ``project`` in write order."""
        return []

    def _persist(self, project: str, snapshots: Sequence[KPISnapshot]) -> None:
        """Durably record ``snapshots`` before they become visible."""

    def _project_log(self, project: str) -> _ProjectLog:
        _require_text(project, "project")
        with self._registry_lock:
            log = self._projects.get(project)
            if log is None:
                log = _ProjectLog()
                self._projects[project] = log

        if not log.loaded:
            with log.lock:
                if not log.loaded:
                    for snapshot in self._load(project):
                        log.append(snapshot)
                    log.loaded = True
        return log

    def _read_entries(self, project: str) -> List[KPISnapshot]:
        log = self._project_log(project)
        with log.lock:
            return list(log.entries)

    def _read_live(self, project: str) -> List[KPISnapshot]:
        log = self._project_log(project)
        with log.lock:
            return log.live()

    def upsert(self, project: str, official_id: str, records: Iterable[KPIRecord]) -> int:
        """Write or replace the snapshot for each ``(official_id, record.key)`` pair.

        Returns:
            Number of snapshots written.

        Raises:
            InvalidUsageError: If ``project``, ``official_id`` or a record key is blank.
            PersistenceError: If the underlying storage rejects the write; nothing
                becomes visible in that case.
        """
        _require_text(official_id, "official_id")
        items = list(records)
        for record in items:
            _require_text(record.key, "record.key")

        log = self._project_log(project)
        with log.lock:
            start = len(log.entries)
            snapshots = [
                KPISnapshot(
                    official_id=official_id,
                    kpi_key=record.key,
                    record=record,
                    sequence=start + offset,
                )
                for offset, record in enumerate(items)
            ]
            self._persist(project, snapshots)
            for snapshot in snapshots:
                log.append(snapshot)

        logger.info(
            "Saved KPI snapshots",
            extra={"project": project, "release": official_id, "snapshots": len(snapshots)},
        )
        return len(snapshots)

    def last(self, project: str, kpi_key: str) -> Optional[KPIRecord]:
        """Most recently written value of ``kpi_key`` across all releases of ``project``."""
        for snapshot in reversed(self._read_entries(project)):
            if snapshot.kpi_key == kpi_key:
                return snapshot.record
        return None

    def trend(self, project: str, kpi_key: str) -> List[KPIRecord]:
        """Every write of ``kpi_key`` for ``project``, oldest first."""
        return [
            snapshot.record
            for snapshot in self._read_entries(project)
            if snapshot.kpi_key == kpi_key
        ]

    def current(self, project: str) -> List[KPISnapshot]:
        """Live snapshots of ``project`` (one per release and key) in write order."""
        return self._read_live(project)

    def releases(self, project: str) -> List[str]:
        """Releases with at least one live snapshot, most recent first."""
        return sort_releases(
            (snapshot.official_id for snapshot in self._read_live(project)),
            self._release_sort_key,
        )

    def panel(self, project: str, selected_keys: Sequence[str], max_releases: int = 0) -> List[KPIRecord]:
        """Latest value per selected key for the most recent releases.

        Releases are ordered most recent first and limited to ``max_releases``
        (``<= 0`` means unlimited). Output is release-major and follows the order
        of ``selected_keys`` within each release; missing values are omitted.
        """
        keys = list(dict.fromkeys(selected_keys))
        wanted = set(keys)

        by_release: Dict[str, Dict[str, KPISnapshot]] = {}
        for snapshot in self._read_live(project):
            if snapshot.kpi_key in wanted:
                by_release.setdefault(snapshot.official_id, {})[snapshot.kpi_key] = snapshot

        releases = sort_releases(by_release, self._release_sort_key)
        if max_releases > 0:
            releases = releases[:max_releases]

        return [
            by_release[release][key].record
            for release in releases
            for key in keys
            if key in by_release[release]
        ]


class FileSnapshotStore(KPISnapshotStore):
    """Snapshot store persisted as one JSON-lines write log per project.

    Layout: ``{base_dir}/{project}/kpi_history.jsonl``. Each line is one write;
    the live index is rebuilt by replaying the log on first access.
    """

    def __init__(self, base_dir: Path | str, release_sort_key: Optional[ReleaseSortKey] = None) -> None:
        super().__init__(release_sort_key=release_sort_key)
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def history_path(self, project: str) -> Path:
        """Return the log file path for ``project``."""
        _require_text(project, "project")
        if project in (".", "..") or "/" in project or "\\" in project:
            raise InvalidUsageError(f"Project key '{project}' cannot be used as a directory name.")
        return self._base_dir / project / HISTORY_FILE_NAME

    def _load(self, project: str) -> List[KPISnapshot]:
        path = self.history_path(project)
        if not path.exists():
            return []

        snapshots: List[KPISnapshot] = []
        line_number = 0
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line_number, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    payload = json.loads(line)
                    snapshots.append(
                        KPISnapshot(
                            official_id=str(payload["officialId"]),
                            kpi_key=str(payload["kpiKey"]),
                            record=KPIRecord.from_dict(payload["record"]),
                            sequence=len(snapshots),
                        )
                    )
        except OSError as exc:
            raise PersistenceError(f"Could not read KPI history file: {path}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(
                f"KPI history file is corrupted: {path} (line {line_number})"
            ) from exc

        logger.debug(
            "Loaded KPI history",
            extra={"project": project, "path": str(path), "snapshots": len(snapshots)},
        )
        return snapshots

    def _persist(self, project: str, snapshots: Sequence[KPISnapshot]) -> None:
        if not snapshots:
            return

        path = self.history_path(project)
        lines = "".join(
            json.dumps(
                {
                    "officialId": snapshot.official_id,
                    "kpiKey": snapshot.kpi_key,
                    "record": snapshot.record.to_dict(),
                },
                ensure_ascii=False,
            )
            + "\n"
            for snapshot in snapshots
        )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(lines)
        except OSError as exc:
            raise PersistenceError(f"Could not write KPI history file: {path}") from exc
