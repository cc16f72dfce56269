"""
Suggestion Model & Classification Enums

Suggestions are EPHEMERAL and ADVISORY-ONLY: they are produced on demand,
never persisted, and never mutate a task. Applying one re-enters through
the normal task mutation path.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# -----------------------------------------------------------------------------
# Suggestion Kind Enum (LOCKED)
# -----------------------------------------------------------------------------
class SuggestionKind(str, Enum):
    """Closed set of suggestion kinds."""
    NEXT_ACTION = "next-action"
    SPLIT = "split"
    REVIEW = "review"
    FOLLOW_UP = "follow-up"
    CLEANUP = "cleanup"
    OUTCOME = "outcome"
    METRIC = "metric"
    HORIZON = "horizon"
    EXECUTION = "execution"
    REUSE = "reuse"
    VALIDATION = "validation"


VALID_KINDS = frozenset(k.value for k in SuggestionKind)

# Kinds allowed to take the optional fourth slot
TRAILING_KINDS = frozenset({SuggestionKind.FOLLOW_UP.value, SuggestionKind.REUSE.value})


# -----------------------------------------------------------------------------
# Task Category Enum (LOCKED, ordered by match priority)
# -----------------------------------------------------------------------------
class TaskCategory(str, Enum):
    HABIT = "habit"
    STUDY = "study"
    PRODUCT = "product"
    VENDOR = "vendor"
    STRATEGY = "strategy"
    GENERAL = "general"  # Fallback when no keyword set matches


class Eligibility(str, Enum):
    """When a template may be offered, relative to outcome/metric/horizon."""
    MISSING = "missing"  # Only while at least one field is empty
    COMPLETE = "complete"  # Only once all three are filled
    ANY = "any"


FIELD_PRIORITY: Tuple[str, ...] = ("outcome", "metric", "horizon")


# -----------------------------------------------------------------------------
# Suggestion (Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Suggestion:
    """
    One proposed next step.

    outcome/metric/horizon carry a concrete proposed value only when the
    suggestion fills that field.
    """
    title: str
    rationale: str
    kind: str  # SuggestionKind value
    outcome: Optional[str] = None
    metric: Optional[str] = None
    horizon: Optional[str] = None

    def __post_init__(self):
        if self.kind not in VALID_KINDS:
            raise ValueError(f"Invalid suggestion kind: {self.kind}")
        if not self.title:
            raise ValueError("Suggestion title must not be empty")

    @property
    def dedupe_key(self) -> str:
        return self.title.lower()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "title": self.title,
            "rationale": self.rationale,
            "kind": self.kind,
        }
        for name in FIELD_PRIORITY:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result


@dataclass(frozen=True)
class SuggestionTemplate:
    """A candidate from a category template bank."""
    title: str
    rationale: str
    kind: str
    when: Eligibility
    fills: Optional[str] = None  # Which clarity field this proposes a value for
    outcome: Optional[str] = None
    metric: Optional[str] = None
    horizon: Optional[str] = None

    def is_eligible(self, complete: bool) -> bool:
        if self.when == Eligibility.ANY:
            return True
        if self.when == Eligibility.MISSING:
            return not complete
        return complete

    @property
    def priority(self) -> int:
        """Rank by filled field: outcome < metric < horizon < non-filling."""
        if self.fills is None:
            return len(FIELD_PRIORITY)
        return FIELD_PRIORITY.index(self.fills)

    def to_suggestion(self) -> Suggestion:
        return Suggestion(
            title=self.title,
            rationale=self.rationale,
            kind=self.kind,
            outcome=self.outcome,
            metric=self.metric,
            horizon=self.horizon,
        )
