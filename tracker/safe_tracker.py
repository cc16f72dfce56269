"""
Safe Task Tracker - Result Boundary

Non-throwing façade over TaskTracker. NotFoundError and
InvalidTransitionError become Err values with NOT_FOUND /
INVALID_TRANSITION codes; add_task and list_tasks never fail.

Anything else raised below this layer is a bug and propagates unchanged.
"""

from typing import Callable, List, Optional

from .result import ErrorCode, Ok, Result, err
from .task_model import (
    InvalidTransitionError,
    NotFoundError,
    Task,
    TaskTracker,
)


class SafeTaskTracker:
    """Result-returning wrapper used by the CLI and HTTP layers."""

    def __init__(self, tracker: Optional[TaskTracker] = None):
        self._tracker = tracker if tracker is not None else TaskTracker()

    @property
    def tracker(self) -> TaskTracker:
        """Underlying model, for persistence only."""
        return self._tracker

    def add_task(
        self,
        title: str,
        parent_id: Optional[int] = None,
        kind: Optional[str] = None,
    ) -> Result[Task]:
        return Ok(self._tracker.add_task(title, parent_id=parent_id, kind=kind))

    def update_task(
        self,
        task_id: int,
        outcome: Optional[str] = None,
        metric: Optional[str] = None,
        horizon: Optional[str] = None,
    ) -> Result[Task]:
        return self._attempt(
            lambda: self._tracker.update_task(
                task_id, outcome=outcome, metric=metric, horizon=horizon
            )
        )

    def start_task(self, task_id: int) -> Result[Task]:
        return self._attempt(lambda: self._tracker.start_task(task_id))

    def complete_task(self, task_id: int) -> Result[Task]:
        return self._attempt(lambda: self._tracker.complete_task(task_id))

    def get_task(self, task_id: int) -> Result[Task]:
        return self._attempt(lambda: self._tracker.get_task(task_id))

    def list_tasks(
        self,
        status: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> Result[List[Task]]:
        tasks = self._tracker.list_tasks()
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        if parent_id is not None:
            tasks = [t for t in tasks if t.parent_id == parent_id]
        return Ok(tasks)

    def _attempt(self, fn: Callable[[], Task]) -> Result[Task]:
        try:
            return Ok(fn())
        except NotFoundError as e:
            return err(ErrorCode.NOT_FOUND, str(e))
        except InvalidTransitionError as e:
            return err(ErrorCode.INVALID_TRANSITION, str(e))
