"""
Task Store - JSON Snapshot Persistence

The snapshot is a JSON array of task records sorted by ascending id.
Loading replays the records through TaskTracker so every status is
re-derived by the state machine.

POLICY:
- Missing, unreadable or corrupt snapshot -> empty tracker (logged, not raised)
- Every mutating request rewrites the whole snapshot (last writer wins)
- reset() replaces the snapshot with the fixed seed data
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .safe_tracker import SafeTaskTracker
from .task_model import Task, TaskTracker

logger = logging.getLogger("task_store")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
STORE_PATH = Path(os.getenv("STORE_PATH", str(Path.home() / ".tasks.json")))

SEED_FILE = Path(__file__).parent / "seed_tasks.yaml"


# -----------------------------------------------------------------------------
# Task Store
# -----------------------------------------------------------------------------
class TaskStore:
    """Loads and saves the full task collection."""

    def __init__(self, path: Optional[Path] = None, seed_file: Optional[Path] = None):
        self._path = Path(path) if path is not None else STORE_PATH
        self._seed_file = seed_file or SEED_FILE

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SafeTaskTracker:
        """Rebuild the tracker from disk. Never raises for bad snapshots."""
        records = self._read_records()
        return SafeTaskTracker(TaskTracker.from_records(records))

    def save(self, tracker: SafeTaskTracker) -> None:
        """Write the whole collection, pretty-printed, ascending id."""
        tasks = tracker.list_tasks().value
        self._write_records([t.to_dict() for t in tasks])
        logger.debug(f"Saved {len(tasks)} tasks to {self._path}")

    def reset(self) -> List[Task]:
        """Replace the snapshot with the seed data and return it."""
        with open(self._seed_file, encoding="utf-8") as f:
            records = yaml.safe_load(f) or []
        self._write_records(records)
        logger.info(f"Snapshot reset to {len(records)} seed tasks")
        return [Task.from_dict(r) for r in records]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read_records(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable snapshot {self._path}, starting empty: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Snapshot {self._path} is not a JSON array, starting empty")
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write_records(self, records: List[Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            f.write(json.dumps(records, indent=2) + "\n")
