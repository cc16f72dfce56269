"""
Reflection Model

Immutable post-completion feedback attached to a goal (and optionally one
of its actions). Consumed by the suggestion and briefing engines as
friction signals.

CONSTRAINTS:
- IMMUTABLE: frozen dataclasses, tuples for collections
- APPEND-ONLY: reflections are never edited or deleted
- CLOSED SIGNAL SET: only ReflectionSignal values are accepted
- At least one of signals / note / answers must be non-empty
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple


# -----------------------------------------------------------------------------
# Signal Enum (LOCKED)
# -----------------------------------------------------------------------------
class ReflectionSignal(str, Enum):
    """Closed set of quick reflection signals."""
    CLEAR_STEP = "clear_step"
    ENOUGH_TIME = "enough_time"
    CONTEXT_SWITCHING = "context_switching"
    LOW_ENERGY = "low_energy"
    UNCLEAR_ACTION = "unclear_action"


VALID_SIGNALS: FrozenSet[str] = frozenset(s.value for s in ReflectionSignal)

# Signals indicating an obstacle; used to adapt suggestion phrasing
FRICTION_SIGNALS: Tuple[str, ...] = (
    ReflectionSignal.UNCLEAR_ACTION.value,
    ReflectionSignal.LOW_ENERGY.value,
    ReflectionSignal.CONTEXT_SWITCHING.value,
)

MAX_NOTE_LENGTH = 140

DEFAULT_SINCE_DAYS = 14


# -----------------------------------------------------------------------------
# Reflection (Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ReflectionAnswer:
    prompt_id: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"promptId": self.prompt_id, "value": self.value}


@dataclass(frozen=True)
class Reflection:
    """Once created, a reflection CANNOT be modified."""
    id: str
    created_at: str  # ISO format, UTC
    goal_id: int
    action_id: Optional[int] = None
    signals: Tuple[str, ...] = ()
    note: Optional[str] = None
    answers: Tuple[ReflectionAnswer, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "goalId": self.goal_id,
        }
        if self.action_id is not None:
            result["actionId"] = self.action_id
        if self.signals:
            result["signals"] = list(self.signals)
        if self.note:
            result["note"] = self.note
        if self.answers:
            result["answers"] = [a.to_dict() for a in self.answers]
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Reflection":
        return cls(
            id=str(data["id"]),
            created_at=data["createdAt"],
            goal_id=int(data["goalId"]),
            action_id=data.get("actionId"),
            signals=tuple(data.get("signals") or ()),
            note=data.get("note"),
            answers=tuple(
                ReflectionAnswer(prompt_id=a["promptId"], value=a["value"])
                for a in data.get("answers") or ()
            ),
        )

    def concerns(self, task_id: int) -> bool:
        """True when this reflection was written about the given goal or action."""
        return self.goal_id == task_id or self.action_id == task_id


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------
def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def validate_reflection_input(data: Mapping[str, Any]) -> Optional[str]:
    """
    Validate raw reflection input.

    Returns the message of the FIRST failed check, or None when valid.
    Order: goalId, actionId, non-empty content, signals, note, answers.
    """
    if not _is_positive_int(data.get("goalId")):
        return "Invalid goalId"

    action_id = data.get("actionId")
    if action_id is not None and not _is_positive_int(action_id):
        return "Invalid actionId"

    signals = data.get("signals")
    note = data.get("note")
    answers = data.get("answers")

    has_signals = isinstance(signals, list) and len(signals) > 0
    has_note = isinstance(note, str) and len(note.strip()) > 0
    has_answers = isinstance(answers, list) and len(answers) > 0
    if not (has_signals or has_note or has_answers):
        return "Reflection must have signals, note, or answers"

    if signals is not None:
        if not isinstance(signals, list):
            return "signals must be an array"
        for signal in signals:
            if not isinstance(signal, str) or signal not in VALID_SIGNALS:
                return f"Invalid signal: {signal}"

    if note is not None:
        if not isinstance(note, str):
            return "note must be a string"
        if len(note) > MAX_NOTE_LENGTH:
            return f"note must be <= {MAX_NOTE_LENGTH} characters"

    if answers is not None:
        if not isinstance(answers, list):
            return "answers must be an array"
        for answer in answers:
            if (
                not isinstance(answer, Mapping)
                or not _is_non_empty_str(answer.get("promptId"))
                or not _is_non_empty_str(answer.get("value"))
            ):
                return "Each answer must have promptId and value"

    return None


# -----------------------------------------------------------------------------
# Signal helpers
# -----------------------------------------------------------------------------
def friction_counts(
    reflections: Iterable[Reflection],
    task_id: Optional[int] = None,
) -> Counter:
    """Count friction signals, optionally only for reflections about task_id."""
    counts: Counter = Counter()
    for reflection in reflections:
        if task_id is not None and not reflection.concerns(task_id):
            continue
        for signal in reflection.signals:
            if signal in FRICTION_SIGNALS:
                counts[signal] += 1
    return counts


def dominant_friction(counts: Counter) -> Optional[str]:
    """Most frequent friction signal; ties resolved by FRICTION_SIGNALS order."""
    if not counts:
        return None
    best = max(counts.values())
    for signal in FRICTION_SIGNALS:
        if counts.get(signal) == best:
            return signal
    return None


def parse_reflections(items: Iterable[Any]) -> List[Reflection]:
    """Best-effort conversion of client-supplied reflection dicts."""
    parsed = []
    for item in items:
        if isinstance(item, Reflection):
            parsed.append(item)
            continue
        try:
            parsed.append(Reflection.from_dict(item))
        except (KeyError, TypeError, ValueError):
            continue
    return parsed
