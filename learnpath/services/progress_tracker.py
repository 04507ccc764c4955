"""Per-viewer node completion, kept in durable local storage.

Each viewer has one record under ``roadmap-progress-<viewer>``::

    {"completedNodes": {"<roadmap id>": ["<node id>", ...]}}

In memory a viewer's completions are one flat set across roadmaps; only the
stored record is partitioned by roadmap. Storage faults never propagate:
unreadable records load as empty and failed writes are logged.
"""

import json
import math
from collections.abc import Iterable, Sequence

from learnpath.core.auth import ANONYMOUS_VIEWER, normalize_viewer_key
from learnpath.core.local_storage import LocalStorage
from learnpath.core.logging import get_logger
from learnpath.schemas.roadmap import ProgressSummary, RoadmapNode

logger = get_logger(__name__)

STORAGE_KEY_PREFIX = "roadmap-progress-"


def storage_key(viewer_key: str | None) -> str:
    return f"{STORAGE_KEY_PREFIX}{normalize_viewer_key(viewer_key)}"


def percentage(completed: int, total: int) -> int:
    """Whole-number percentage rounded half up; 0 for an empty roadmap."""
    if total <= 0:
        return 0
    return min(100, max(0, math.floor(completed / total * 100 + 0.5)))


class ProgressTracker:
    """Completion state for any number of viewers sharing one device."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage
        self._completed: dict[str, set[str]] = {}

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _read_record(self, viewer_key: str) -> dict[str, list[str]]:
        key = storage_key(viewer_key)
        try:
            raw = self._storage.get_item(key)
            if raw is None:
                return {}
            data = json.loads(raw)
        except (OSError, ValueError) as exc:
            logger.warning("Error loading progress", key=key, error=str(exc))
            return {}

        completed = data.get("completedNodes") if isinstance(data, dict) else None
        if not isinstance(completed, dict):
            logger.warning("Malformed progress record", key=key)
            return {}
        return {
            str(roadmap_id): [str(node_id) for node_id in node_ids]
            for roadmap_id, node_ids in completed.items()
            if isinstance(node_ids, list)
        }

    def _write_record(self, viewer_key: str, record: dict[str, list[str]]) -> None:
        key = storage_key(viewer_key)
        try:
            self._storage.set_item(key, json.dumps({"completedNodes": record}))
        except OSError as exc:
            logger.warning("Error saving progress", key=key, error=str(exc))

    def _active(self, viewer_key: str) -> set[str]:
        viewer_key = normalize_viewer_key(viewer_key)
        if viewer_key not in self._completed:
            self.load(viewer_key)
        return self._completed[viewer_key]

    # ------------------------------------------------------------------
    # Viewer state
    # ------------------------------------------------------------------

    def load(self, viewer_key: str = ANONYMOUS_VIEWER) -> frozenset[str]:
        """(Re)load a viewer's completions from storage."""
        viewer_key = normalize_viewer_key(viewer_key)
        record = self._read_record(viewer_key)
        completed = {node_id for node_ids in record.values() for node_id in node_ids}
        self._completed[viewer_key] = completed
        return frozenset(completed)

    def switch_viewer(self, viewer_key: str | None) -> frozenset[str]:
        """Make ``viewer_key`` current; returns its persisted completions.

        Call on every login/logout so one identity never sees another's
        progress.
        """
        viewer_key = normalize_viewer_key(viewer_key)
        logger.info("Switching progress viewer", viewer_key=viewer_key)
        return self.load(viewer_key)

    def completed_nodes(self, viewer_key: str) -> frozenset[str]:
        return frozenset(self._active(viewer_key))

    def is_completed(self, viewer_key: str, node_id: str) -> bool:
        return node_id in self._active(viewer_key)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def toggle(
        self,
        viewer_key: str,
        node_id: str,
        roadmap_id: str,
        roadmap_node_ids: Sequence[str],
    ) -> bool:
        """Flip completion of ``node_id`` and persist the roadmap's list.

        Returns:
            True if the node is now completed.
        """
        completed = self._active(viewer_key)
        if node_id in completed:
            completed.discard(node_id)
            now_completed = False
        else:
            completed.add(node_id)
            now_completed = True

        record = self._read_record(viewer_key)
        record[roadmap_id] = [nid for nid in roadmap_node_ids if nid in completed]
        self._write_record(viewer_key, record)
        return now_completed

    def get_progress(
        self, viewer_key: str, roadmap_id: str, nodes: Iterable[RoadmapNode]
    ) -> ProgressSummary:
        """Completion of the roadmap's non-container nodes."""
        completed_ids = self._active(viewer_key)
        completable = [n for n in nodes if n.roadmap_id == roadmap_id and not n.is_container]
        completed = sum(1 for n in completable if n.id in completed_ids)
        total = len(completable)
        return ProgressSummary(
            completed=completed,
            total=total,
            percentage=percentage(completed, total),
        )

    def reset(self, viewer_key: str, roadmap_id: str, roadmap_node_ids: Iterable[str]) -> None:
        """Clear completion for one roadmap only."""
        self._active(viewer_key).difference_update(roadmap_node_ids)
        record = self._read_record(viewer_key)
        if record.pop(roadmap_id, None) is not None:
            self._write_record(viewer_key, record)
        logger.info("Progress reset", roadmap_id=roadmap_id)

    def purge_roadmap(self, roadmap_id: str, roadmap_node_ids: Iterable[str] = ()) -> int:
        """Drop a deleted roadmap from every stored viewer record.

        Returns:
            Number of viewer records that held an entry for the roadmap.
        """
        node_ids = set(roadmap_node_ids)
        for completed in self._completed.values():
            completed.difference_update(node_ids)

        try:
            keys = [k for k in self._storage.keys() if k.startswith(STORAGE_KEY_PREFIX)]
        except OSError as exc:
            logger.warning("Error listing progress records", error=str(exc))
            return 0

        purged = 0
        for key in keys:
            viewer_key = key[len(STORAGE_KEY_PREFIX) :]
            record = self._read_record(viewer_key)
            stale = record.pop(roadmap_id, None)
            if stale is not None:
                self._completed.get(viewer_key, set()).difference_update(stale)
                self._write_record(viewer_key, record)
                purged += 1
        logger.info("Progress purged for roadmap", roadmap_id=roadmap_id, records=purged)
        return purged
