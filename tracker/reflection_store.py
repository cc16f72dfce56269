"""
Reflection Store - Append-Only Persistence

Reflections are stored as one JSON array under the data directory.
Once persisted, a reflection is NEVER modified or deleted.

CONSTRAINTS:
- APPEND-ONLY: append_reflection is the only write
- VALIDATED: first failed check wins, returned as a VALIDATION error
- FSYNC: every write is flushed to disk
- Missing or corrupt file reads as an empty collection
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .reflection_model import (
    DEFAULT_SINCE_DAYS,
    Reflection,
    ReflectionAnswer,
    validate_reflection_input,
)
from .result import ErrorCode, Ok, Result, err

logger = logging.getLogger("reflection_store")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
DATA_DIR = Path(os.getenv("TRACKER_DATA_DIR", str(Path.home() / ".decision-tracker")))

REFLECTIONS_FILE = DATA_DIR / "reflections.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# -----------------------------------------------------------------------------
# Reflection Store (Append-Only)
# -----------------------------------------------------------------------------
class ReflectionStore:
    """
    Append-only storage for reflections.

    There are NO methods for editing or deleting a reflection.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else REFLECTIONS_FILE
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # WRITE Operations (Append-Only)
    # -------------------------------------------------------------------------

    def append_reflection(self, data: Mapping[str, Any]) -> Result[Reflection]:
        """Validate, stamp and append one reflection."""
        problem = validate_reflection_input(data)
        if problem is not None:
            return err(ErrorCode.VALIDATION, problem)

        note = data.get("note")
        reflection = Reflection(
            id=str(uuid.uuid4()),
            created_at=_utcnow().isoformat(),
            goal_id=data["goalId"],
            action_id=data.get("actionId"),
            signals=tuple(s for s in data.get("signals") or () if s),
            note=(note.strip() or None) if isinstance(note, str) else None,
            answers=tuple(
                ReflectionAnswer(prompt_id=a["promptId"], value=a["value"])
                for a in data.get("answers") or ()
            ),
        )

        with self._lock:
            records = self._read_raw()
            records.append(reflection.to_dict())
            self._write_raw(records)

        logger.debug(f"Appended reflection {reflection.id} for goal {reflection.goal_id}")
        return Ok(reflection)

    # -------------------------------------------------------------------------
    # READ Operations
    # -------------------------------------------------------------------------

    def list_reflections(
        self,
        goal_id: Optional[int] = None,
        action_id: Optional[int] = None,
        since_days: Optional[int] = None,
    ) -> List[Reflection]:
        """Reflections inside the recency window matching the equality filters."""
        days = DEFAULT_SINCE_DAYS if since_days is None else since_days
        cutoff = _utcnow() - timedelta(days=days)

        results = []
        for data in self._read_raw():
            try:
                reflection = Reflection.from_dict(data)
                created = _parse_timestamp(reflection.created_at)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed reflection: {e}")
                continue

            if created < cutoff:
                continue
            if goal_id is not None and reflection.goal_id != goal_id:
                continue
            if action_id is not None and reflection.action_id != action_id:
                continue
            results.append(reflection)

        return results

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read_raw(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Reflection read failed: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write_raw(self, records: List[Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            f.write(json.dumps(records, indent=2))
            f.flush()
            os.fsync(f.fileno())
