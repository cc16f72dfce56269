"""
Daily Briefing Engine

Picks up to two focus goals and exactly one action for each, using
deterministic rules over the whole task graph plus recent reflections.

RULES:
1. Candidates: goals (no parent) with status todo or in-progress
2. Order: in-progress before todo, then clarity score descending
   (stable, so ties keep ascending id order)
3. Top two become focus goals
4. Per goal: finish an in-progress action, else start a todo action,
   else propose a new action derived from the goal title
5. whyNow comes from a fixed template per branch
6. Greeting uses the user name when given

Zero eligible goals is a valid briefing with an empty focus list.
"""

import logging
from typing import List, Optional, Sequence

from .briefing_model import (
    Briefing,
    BriefingCta,
    FocusAction,
    FocusActionType,
    FocusItem,
    MAX_FOCUS_ITEMS,
)
from .reflection_model import (
    Reflection,
    ReflectionSignal,
    dominant_friction,
    friction_counts,
)
from .task_model import Task, TaskStatus

logger = logging.getLogger("briefing_engine")


# -----------------------------------------------------------------------------
# Fixed phrasing
# -----------------------------------------------------------------------------
WHY_FINISH = "This action is already in progress; finishing it moves the goal forward."
WHY_START_ACTIVE = "This goal is active but needs its next action started."
WHY_START_TODO = "Starting this action gets the goal moving."
WHY_CREATE = "This goal has no actions yet; defining one makes it concrete."

NEW_ACTION_TITLES = {
    None: 'Define next step for "{title}"',
    ReflectionSignal.UNCLEAR_ACTION.value: 'Write down the very next step for "{title}"',
    ReflectionSignal.LOW_ENERGY.value: 'Spend 10 minutes preparing the next step for "{title}"',
    ReflectionSignal.CONTEXT_SWITCHING.value: 'Block 25 focused minutes for "{title}"',
}

CTA_LABEL = "Start your day"

CTA_MICROCOPY = {
    None: "Pick one and make progress.",
    ReflectionSignal.UNCLEAR_ACTION.value: "Start by making the next step obvious.",
    ReflectionSignal.LOW_ENERGY.value: "A small step still counts on a low-energy day.",
    ReflectionSignal.CONTEXT_SWITCHING.value: "One thing at a time. Close the other tabs.",
}

DEFAULT_GREETING = "Good morning."
NO_GOALS_HEADLINE = "No active goals right now."


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------
def select_focus_goals(all_tasks: Sequence[Task]) -> List[Task]:
    active = [
        t for t in all_tasks
        if t.is_goal and t.status in (TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value)
    ]
    active.sort(key=lambda g: (g.status != TaskStatus.IN_PROGRESS.value, -g.clarity_score()))
    return active[:MAX_FOCUS_ITEMS]


def build_focus_item(
    goal: Task,
    all_tasks: Sequence[Task],
    reflections: Sequence[Reflection] = (),
) -> FocusItem:
    actions = [t for t in all_tasks if t.parent_id == goal.id]
    in_progress = next((a for a in actions if a.status == TaskStatus.IN_PROGRESS.value), None)
    todo = next((a for a in actions if a.status == TaskStatus.TODO.value), None)

    if in_progress is not None:
        action = FocusAction(
            type=FocusActionType.FINISH_EXISTING.value,
            action_id=in_progress.id,
            action_title=in_progress.title,
        )
        why_now = WHY_FINISH
    elif todo is not None:
        action = FocusAction(
            type=FocusActionType.START_EXISTING.value,
            action_id=todo.id,
            action_title=todo.title,
        )
        why_now = WHY_START_ACTIVE if goal.status == TaskStatus.IN_PROGRESS.value else WHY_START_TODO
    else:
        friction = dominant_friction(friction_counts(reflections, task_id=goal.id))
        action = FocusAction(
            type=FocusActionType.CREATE_NEW.value,
            action_title=NEW_ACTION_TITLES[friction].format(title=goal.title),
        )
        why_now = WHY_CREATE

    return FocusItem(goal_id=goal.id, goal_title=goal.title, why_now=why_now, action=action)


# -----------------------------------------------------------------------------
# Main Interface
# -----------------------------------------------------------------------------
def generate_briefing(
    all_tasks: Sequence[Task],
    reflections: Optional[Sequence[Reflection]] = None,
    user_name: Optional[str] = None,
) -> Briefing:
    """Deterministic briefing; never fails."""
    reflections = reflections or ()
    goals = select_focus_goals(all_tasks)
    focus = [build_focus_item(g, all_tasks, reflections) for g in goals]

    if focus:
        plural = "s" if len(focus) > 1 else ""
        headline = f"You have {len(focus)} goal{plural} that could use attention today."
    else:
        headline = NO_GOALS_HEADLINE

    friction = dominant_friction(friction_counts(reflections))
    greeting = f"Good morning, {user_name}." if user_name else DEFAULT_GREETING

    logger.debug(f"Briefing with {len(focus)} focus items (friction={friction})")
    return Briefing(
        greeting=greeting,
        headline=headline,
        focus=focus,
        cta=BriefingCta(label=CTA_LABEL, microcopy=CTA_MICROCOPY[friction]),
    )
