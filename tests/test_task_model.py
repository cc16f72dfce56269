"""
Task Model & State Machine Tests

Test Categories:
1. Creation and id assignment
2. Linear transitions
3. Parent cascades
4. Merge-patch of clarity fields
5. Copies and ordering
6. Replay from persisted records
"""

import pytest

from tracker.task_model import (
    InvalidTransitionError,
    NotFoundError,
    Task,
    TaskKind,
    TaskStatus,
    TaskTracker,
)


# =============================================================================
# 1. Creation
# =============================================================================

class TestAddTask:
    """Ids are sequential and kinds are derived from parentage."""

    def test_ids_start_at_one_and_increase(self):
        tracker = TaskTracker()
        first = tracker.add_task("Plan launch")
        second = tracker.add_task("Write brief", parent_id=1)
        assert first.id == 1
        assert second.id == 2

    def test_new_task_is_todo(self):
        task = TaskTracker().add_task("Plan launch")
        assert task.status == TaskStatus.TODO.value

    def test_kind_defaults_from_parent(self):
        tracker = TaskTracker()
        goal = tracker.add_task("Plan launch")
        action = tracker.add_task("Write brief", parent_id=goal.id)
        assert goal.kind == TaskKind.GOAL.value
        assert action.kind == TaskKind.ACTION.value
        assert goal.is_goal
        assert not action.is_goal

    def test_explicit_kind_is_kept(self):
        task = TaskTracker().add_task("Write brief", kind="action")
        assert task.kind == "action"

    def test_unknown_kind_falls_back_to_parentage(self):
        tracker = TaskTracker()
        goal = tracker.add_task("Plan launch", kind="epic")
        action = tracker.add_task("Write brief", parent_id=goal.id, kind="story")
        assert goal.kind == "goal"
        assert action.kind == "action"


# =============================================================================
# 2. Linear transitions
# =============================================================================

class TestTransitions:
    """todo -> in-progress -> done, nothing else."""

    def test_start_then_complete(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        assert tracker.start_task(1).status == TaskStatus.IN_PROGRESS.value
        assert tracker.complete_task(1).status == TaskStatus.DONE.value

    def test_complete_from_todo_rejected(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        with pytest.raises(InvalidTransitionError) as exc:
            tracker.complete_task(1)
        assert str(exc.value) == 'Task 1 is "todo", expected "in-progress"'
        assert tracker.get_task(1).status == TaskStatus.TODO.value

    def test_restart_rejected(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        tracker.start_task(1)
        with pytest.raises(InvalidTransitionError) as exc:
            tracker.start_task(1)
        assert exc.value.current_status == "in-progress"
        assert exc.value.expected_status == "todo"

    def test_done_is_terminal(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        tracker.start_task(1)
        tracker.complete_task(1)
        with pytest.raises(InvalidTransitionError):
            tracker.start_task(1)
        with pytest.raises(InvalidTransitionError):
            tracker.complete_task(1)

    def test_unknown_id(self):
        tracker = TaskTracker()
        with pytest.raises(NotFoundError) as exc:
            tracker.start_task(42)
        assert str(exc.value) == "Task 42 not found"
        with pytest.raises(NotFoundError):
            tracker.get_task(42)


# =============================================================================
# 3. Parent cascades
# =============================================================================

class TestCascades:
    """Child transitions promote or complete the parent goal."""

    def test_starting_action_promotes_todo_parent(self, goal_with_actions):
        goal_with_actions.start_task(2)
        assert goal_with_actions.get_task(1).status == "in-progress"

    def test_starting_action_leaves_in_progress_parent(self, goal_with_actions):
        goal_with_actions.start_task(2)
        goal_with_actions.start_task(3)
        assert goal_with_actions.get_task(1).status == "in-progress"

    def test_completing_last_action_completes_parent(self, goal_with_actions):
        for action_id in (2, 3):
            goal_with_actions.start_task(action_id)
            goal_with_actions.complete_task(action_id)
        assert goal_with_actions.get_task(1).status == "done"

    def test_completing_one_of_two_keeps_parent_in_progress(self, goal_with_actions):
        goal_with_actions.start_task(2)
        goal_with_actions.complete_task(2)
        assert goal_with_actions.get_task(1).status == "in-progress"

    def test_goal_started_directly_is_unaffected_by_siblings(self, goal_with_actions):
        goal_with_actions.start_task(1)
        goal_with_actions.start_task(2)
        assert goal_with_actions.get_task(1).status == "in-progress"
        assert goal_with_actions.get_task(3).status == "todo"

    def test_parent_done_cannot_be_completed_again(self, goal_with_actions):
        for action_id in (2, 3):
            goal_with_actions.start_task(action_id)
            goal_with_actions.complete_task(action_id)
        with pytest.raises(InvalidTransitionError):
            goal_with_actions.complete_task(1)


# =============================================================================
# 4. Merge-patch
# =============================================================================

class TestUpdateTask:
    """None leaves a field untouched; status is never changed by a patch."""

    def test_sets_fields(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        task = tracker.update_task(1, outcome="Launched", metric="Signups")
        assert task.outcome == "Launched"
        assert task.metric == "Signups"
        assert task.horizon is None

    def test_none_preserves_existing_values(self):
        tracker = TaskTracker()
        tracker.add_task("Plan launch")
        tracker.update_task(1, outcome="Launched")
        task = tracker.update_task(1, horizon="Q3")
        assert task.outcome == "Launched"
        assert task.horizon == "Q3"
        assert task.status == "todo"

    def test_unknown_id(self):
        with pytest.raises(NotFoundError):
            TaskTracker().update_task(7, outcome="x")


# =============================================================================
# 5. Copies and ordering
# =============================================================================

class TestQueries:
    """Returned tasks are copies in ascending id order."""

    def test_list_is_sorted(self, goal_with_actions):
        assert [t.id for t in goal_with_actions.list_tasks()] == [1, 2, 3]

    def test_mutating_a_copy_does_not_leak(self, goal_with_actions):
        copy = goal_with_actions.get_task(1)
        copy.status = "done"
        copy.title = "Changed"
        assert goal_with_actions.get_task(1).status == "todo"
        assert goal_with_actions.get_task(1).title == "Launch pricing page"

    def test_clarity_score_counts_populated_fields(self):
        task = Task(id=1, title="Plan", outcome="Done")
        assert task.clarity_score() == 50
        assert not task.is_complete

    def test_to_dict_omits_unset_fields(self):
        data = Task(id=2, title="Draft", parent_id=1, kind="action").to_dict()
        assert data == {
            "id": 2,
            "title": "Draft",
            "status": "todo",
            "parentId": 1,
            "kind": "action",
        }


# =============================================================================
# 6. Replay
# =============================================================================

class TestFromRecords:
    """Replay re-derives statuses through the state machine."""

    def test_round_trip_preserves_statuses(self, goal_with_actions):
        goal_with_actions.start_task(2)
        goal_with_actions.complete_task(2)
        goal_with_actions.update_task(1, outcome="Live", metric="Visits", horizon="May")
        records = [t.to_dict() for t in goal_with_actions.list_tasks()]

        rebuilt = TaskTracker.from_records(records)

        assert [t.to_dict() for t in rebuilt.list_tasks()] == records

    def test_completed_goal_round_trips(self, goal_with_actions):
        for action_id in (2, 3):
            goal_with_actions.start_task(action_id)
            goal_with_actions.complete_task(action_id)
        records = [t.to_dict() for t in goal_with_actions.list_tasks()]

        rebuilt = TaskTracker.from_records(records)

        assert [t.status for t in rebuilt.list_tasks()] == ["done", "done", "done"]

    def test_next_id_continues_after_replay(self):
        rebuilt = TaskTracker.from_records([
            {"id": 1, "title": "A", "status": "todo"},
            {"id": 2, "title": "B", "status": "done"},
        ])
        assert rebuilt.add_task("C").id == 3

    def test_id_gap_is_preserved(self):
        rebuilt = TaskTracker.from_records([
            {"id": 1, "title": "A"},
            {"id": 4, "title": "D"},
        ])
        assert [t.id for t in rebuilt.list_tasks()] == [1, 4]
        assert rebuilt.add_task("E").id == 5

    def test_malformed_records_skipped(self):
        rebuilt = TaskTracker.from_records([
            {"id": 1, "title": "A"},
            {"id": "2", "title": "string id"},
            {"id": 3},
            {"id": 1, "title": "duplicate"},
        ])
        assert [t.title for t in rebuilt.list_tasks()] == ["A"]

    def test_unsorted_input_is_replayed_in_id_order(self):
        rebuilt = TaskTracker.from_records([
            {"id": 2, "title": "Action", "status": "in-progress", "parentId": 1},
            {"id": 1, "title": "Goal", "status": "in-progress"},
        ])
        assert rebuilt.get_task(1).status == "in-progress"
        assert rebuilt.get_task(2).status == "in-progress"
        assert rebuilt.get_task(2).kind == "action"
