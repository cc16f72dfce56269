"""
Task Model & State Machine

This module defines the Task entity (goal or action) and the in-memory
tracker that owns every status transition.

STATE MACHINE:
- todo -> in-progress -> done
- No skipping, no regression
- A transition from the wrong source state raises InvalidTransitionError
  and leaves state unchanged

CASCADES:
- Starting an action whose parent is todo promotes the parent to in-progress
- Completing an action:
  * all sibling actions done -> parent done
  * otherwise parent todo -> parent in-progress
  * otherwise parent unchanged

The tracker is a plain object. Callers construct one per process or per
request; there is no module-level instance.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger("task_model")


# -----------------------------------------------------------------------------
# Enums (LOCKED)
# -----------------------------------------------------------------------------
class TaskStatus(str, Enum):
    """Task lifecycle states, in transition order."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class TaskKind(str, Enum):
    """Role of a task in the goal/action hierarchy."""
    GOAL = "goal"
    ACTION = "action"


STATUS_ORDER: List[str] = [s.value for s in TaskStatus]

CLARITY_FIELDS = ("outcome", "metric", "horizon")


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------
class TrackerError(Exception):
    """Base class for expected domain failures."""


class NotFoundError(TrackerError):
    """Referenced task id does not exist."""

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class InvalidTransitionError(TrackerError):
    """Task is not in the source state the transition requires."""

    def __init__(self, task_id: int, current_status: str, expected_status: str):
        super().__init__(
            f'Task {task_id} is "{current_status}", expected "{expected_status}"'
        )
        self.task_id = task_id
        self.current_status = current_status
        self.expected_status = expected_status


# -----------------------------------------------------------------------------
# Task
# -----------------------------------------------------------------------------
@dataclass
class Task:
    """
    A goal (no parent) or an action (has a parent).

    outcome/metric/horizon are optional clarity fields; their presence
    drives the suggestion and briefing engines.
    """
    id: int
    title: str
    status: str = TaskStatus.TODO.value
    outcome: Optional[str] = None
    metric: Optional[str] = None
    horizon: Optional[str] = None
    parent_id: Optional[int] = None
    kind: str = TaskKind.GOAL.value

    @property
    def is_goal(self) -> bool:
        return self.parent_id is None

    @property
    def is_complete(self) -> bool:
        """True when outcome, metric and horizon are all populated."""
        return bool(self.outcome and self.metric and self.horizon)

    def clarity_score(self) -> int:
        """25 points per populated field among title/outcome/metric/horizon."""
        score = 0
        for value in (self.title, self.outcome, self.metric, self.horizon):
            if value:
                score += 25
        return score

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot/API representation. Unset optional fields are omitted."""
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
        }
        for name in CLARITY_FIELDS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.parent_id is not None:
            result["parentId"] = self.parent_id
        result["kind"] = self.kind
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        parent_id = data.get("parentId", data.get("parent_id"))
        kind = data.get("kind") or (
            TaskKind.ACTION.value if parent_id else TaskKind.GOAL.value
        )
        return cls(
            id=int(data["id"]),
            title=str(data["title"]),
            status=data.get("status", TaskStatus.TODO.value),
            outcome=data.get("outcome"),
            metric=data.get("metric"),
            horizon=data.get("horizon"),
            parent_id=parent_id,
            kind=kind,
        )


# -----------------------------------------------------------------------------
# Task Tracker
# -----------------------------------------------------------------------------
class TaskTracker:
    """
    In-memory store of tasks plus the transition rules.

    Raises NotFoundError / InvalidTransitionError; SafeTaskTracker converts
    those into Result values for external callers.
    """

    def __init__(self):
        self._tasks: Dict[int, Task] = {}
        self._next_id = 1

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_task(
        self,
        title: str,
        parent_id: Optional[int] = None,
        kind: Optional[str] = None,
    ) -> Task:
        if kind not in (TaskKind.GOAL.value, TaskKind.ACTION.value):
            if kind is not None:
                logger.warning(f"Unknown task kind {kind!r}, deriving from parent")
            kind = TaskKind.ACTION.value if parent_id else TaskKind.GOAL.value
        task = Task(
            id=self._next_id,
            title=title,
            parent_id=parent_id or None,
            kind=kind,
        )
        self._next_id += 1
        self._tasks[task.id] = task
        logger.debug(f"Added task {task.id} ({task.kind})")
        return replace(task)

    def update_task(
        self,
        task_id: int,
        outcome: Optional[str] = None,
        metric: Optional[str] = None,
        horizon: Optional[str] = None,
    ) -> Task:
        """Merge-patch the clarity fields. None means "leave untouched"."""
        task = self._require(task_id)
        if outcome is not None:
            task.outcome = outcome
        if metric is not None:
            task.metric = metric
        if horizon is not None:
            task.horizon = horizon
        return replace(task)

    def start_task(self, task_id: int) -> Task:
        task = self._transition(task_id, TaskStatus.TODO, TaskStatus.IN_PROGRESS)
        parent = self._parent_of(task)
        if parent is not None and parent.status == TaskStatus.TODO.value:
            parent.status = TaskStatus.IN_PROGRESS.value
            logger.debug(f"Task {parent.id} promoted to in-progress by {task.id}")
        return replace(task)

    def complete_task(self, task_id: int) -> Task:
        task = self._transition(task_id, TaskStatus.IN_PROGRESS, TaskStatus.DONE)
        parent = self._parent_of(task)
        if parent is not None:
            siblings = [t for t in self._tasks.values() if t.parent_id == parent.id]
            if all(s.status == TaskStatus.DONE.value for s in siblings):
                parent.status = TaskStatus.DONE.value
                logger.debug(f"Task {parent.id} completed by last action {task.id}")
            elif parent.status == TaskStatus.TODO.value:
                parent.status = TaskStatus.IN_PROGRESS.value
        return replace(task)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_task(self, task_id: int) -> Task:
        return replace(self._require(task_id))

    def list_tasks(self) -> List[Task]:
        """Copies of every task in ascending id order."""
        return [replace(self._tasks[tid]) for tid in sorted(self._tasks)]

    # -------------------------------------------------------------------------
    # Reconstruction
    # -------------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "TaskTracker":
        """
        Rebuild a tracker by replaying persisted records.

        Every task is added first (ascending id), then each one is advanced
        through start/complete until it reaches its stored status, so parent
        statuses are re-derived by the normal cascades.
        """
        tracker = cls()
        ordered = sorted(
            (r for r in records if r.get("title") and isinstance(r.get("id"), int)),
            key=lambda r: r["id"],
        )

        for record in ordered:
            if record["id"] > tracker._next_id:
                logger.warning(
                    f"Snapshot id gap before task {record['id']}, skipping ahead"
                )
                tracker._next_id = record["id"]
            elif record["id"] < tracker._next_id:
                logger.warning(f"Duplicate task id {record['id']} in snapshot, skipped")
                continue
            parent_id = record.get("parentId", record.get("parent_id"))
            tracker.add_task(record["title"], parent_id=parent_id, kind=record.get("kind"))

        for record in ordered:
            task = tracker._tasks.get(record["id"])
            if task is None or task.title != record["title"]:
                continue
            stored = record.get("status", TaskStatus.TODO.value)
            if stored not in STATUS_ORDER:
                stored = TaskStatus.TODO.value
            target = STATUS_ORDER.index(stored)
            if task.status == TaskStatus.TODO.value and target >= 1:
                tracker.start_task(task.id)
            if task.status == TaskStatus.IN_PROGRESS.value and target >= 2:
                tracker.complete_task(task.id)
            tracker.update_task(
                task.id,
                outcome=record.get("outcome") or None,
                metric=record.get("metric") or None,
                horizon=record.get("horizon") or None,
            )

        return tracker

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def _parent_of(self, task: Task) -> Optional[Task]:
        if task.parent_id is None:
            return None
        return self._tasks.get(task.parent_id)

    def _transition(
        self,
        task_id: int,
        from_status: TaskStatus,
        to_status: TaskStatus,
    ) -> Task:
        task = self._require(task_id)
        if task.status != from_status.value:
            raise InvalidTransitionError(task_id, task.status, from_status.value)
        task.status = to_status.value
        return task
