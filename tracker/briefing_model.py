"""
Daily Briefing Model

A briefing is a read-only, on-demand aggregation: at most two focus goals,
exactly one action per goal. Never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class FocusActionType(str, Enum):
    """How the user should act on a focus goal today (LOCKED)."""
    START_EXISTING = "start_existing_action"
    FINISH_EXISTING = "finish_existing_action"
    CREATE_NEW = "create_new_action"


EXISTING_ACTION_TYPES = frozenset({
    FocusActionType.START_EXISTING.value,
    FocusActionType.FINISH_EXISTING.value,
})

MAX_FOCUS_ITEMS = 2


@dataclass(frozen=True)
class FocusAction:
    type: str  # FocusActionType value
    action_title: str
    action_id: Optional[int] = None  # Required for start/finish, absent for create

    def __post_init__(self):
        if self.type in EXISTING_ACTION_TYPES and self.action_id is None:
            raise ValueError(f"{self.type} requires an action id")
        if self.type == FocusActionType.CREATE_NEW.value and self.action_id is not None:
            raise ValueError("create_new_action must not reference an action id")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type, "actionTitle": self.action_title}
        if self.action_id is not None:
            result["actionId"] = self.action_id
        return result


@dataclass(frozen=True)
class FocusItem:
    goal_id: int
    goal_title: str
    why_now: str
    action: FocusAction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goalId": self.goal_id,
            "goalTitle": self.goal_title,
            "whyNow": self.why_now,
            "action": self.action.to_dict(),
        }


@dataclass(frozen=True)
class BriefingCta:
    label: str
    microcopy: str

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "microcopy": self.microcopy}


@dataclass(frozen=True)
class Briefing:
    greeting: str
    headline: str
    cta: BriefingCta
    focus: List[FocusItem] = field(default_factory=list)

    def __post_init__(self):
        if len(self.focus) > MAX_FOCUS_ITEMS:
            raise ValueError(f"At most {MAX_FOCUS_ITEMS} focus items, got {len(self.focus)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "greeting": self.greeting,
            "headline": self.headline,
            "focus": [f.to_dict() for f in self.focus],
            "cta": self.cta.to_dict(),
        }
