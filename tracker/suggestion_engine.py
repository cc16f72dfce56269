"""
Suggestion Engine

Generates next-step suggestions for ONE task using deterministic rules.
All processing is ADVISORY-ONLY.

CRITICAL CONSTRAINTS:
- RULE-BASED ONLY: no network, no randomness
- DETERMINISTIC: same task + same tracker state always yields same output
- BOUNDED: 1 to 4 suggestions, exactly one of kind "validation"
- NO MUTATION: suggestions never change a task

Pipeline (order is load-bearing):
1. Classify the task into a category, pick its template bank
2. Rank eligible templates by the field they fill (outcome > metric > horizon)
3. Ambiguous-verb heuristic
4. "action:" prefix handling
5. Similarity reuse (token Jaccard >= 0.25)
6. Stalled in-progress unblock
7. Tracker-state heuristics
8. Mandatory validation suggestion
9. Dedupe + select: 2 regular, 1 validation, optional reuse/follow-up
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .reflection_model import (
    Reflection,
    ReflectionSignal,
    dominant_friction,
    friction_counts,
)
from .suggestion_model import (
    Eligibility,
    Suggestion,
    SuggestionKind,
    SuggestionTemplate,
    TaskCategory,
    TRAILING_KINDS,
)
from .task_model import Task, TaskStatus

logger = logging.getLogger("suggestion_engine")


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
MAX_SUGGESTIONS = 4
MAX_REGULAR = 2
MAX_TEMPLATE_FILLERS = 2
MAX_TEMPLATE_PICKS = 3
SIMILARITY_THRESHOLD = 0.25

_ACTION_PREFIX_RE = re.compile(r"^action:\s*", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_BREAK_INTO_STEPS_RE = re.compile(r"break.*into.*step", re.IGNORECASE)

# Ordered: first match wins
CATEGORY_KEYWORDS: Tuple[Tuple[TaskCategory, "re.Pattern[str]"], ...] = (
    (TaskCategory.HABIT, re.compile(
        r"\b(habit|smoke|smoking|run|running|fitness|exercise|meditat|sleep|diet|"
        r"drink|sober|gym|walk|yoga)\b", re.IGNORECASE)),
    (TaskCategory.STUDY, re.compile(
        r"\b(exam|university|learn|course|study|studying|certif|degree|class|"
        r"lecture|tutor|homework|grade)\b", re.IGNORECASE)),
    (TaskCategory.PRODUCT, re.compile(
        r"\b(onboarding|feature|ux|ui|requirements|sprint|release|deploy|ship|mvp|"
        r"prototype|a/b|activation|retention)\b", re.IGNORECASE)),
    (TaskCategory.VENDOR, re.compile(
        r"\b(vendor|provider|tool|contract|saas|integration|migrate|"
        r"analytics vendor|procurement|rfp)\b", re.IGNORECASE)),
    (TaskCategory.STRATEGY, re.compile(
        r"\b(pricing|strategy|roadmap|positioning|revenue|market|competitive|"
        r"growth|okr|quarterly|q[1-4])\b", re.IGNORECASE)),
)

AMBIGUOUS_VERB_RE = re.compile(
    r"\b(improve|optimize|prepare|fix|enhance|streamline|revamp|boost|refine|address)\b",
    re.IGNORECASE,
)

UNBLOCK_ROTATION: Tuple[Suggestion, ...] = (
    Suggestion(
        title="Schedule a 30-min stakeholder review",
        rationale="External input often unblocks stalled work.",
        kind=SuggestionKind.REVIEW.value,
    ),
    Suggestion(
        title="Write a decision memo (1 page max)",
        rationale="Writing forces clarity: if you can't write it, you can't decide it.",
        kind=SuggestionKind.EXECUTION.value,
    ),
    Suggestion(
        title="Run a 30-min experiment to test your assumption",
        rationale="Small experiments resolve uncertainty faster than analysis.",
        kind=SuggestionKind.EXECUTION.value,
    ),
)

# (title, rationale) per category for (fields missing, fields complete)
VALIDATION_PHRASES: Dict[TaskCategory, Tuple[Tuple[str, str], Tuple[str, str]]] = {
    TaskCategory.HABIT: (
        ("Try the routine for 3 days before committing to a target",
         "A short trial shows whether the cue and time slot actually work."),
        ("Check your streak against the target every Sunday",
         "A weekly check catches a slipping habit before it breaks."),
    ),
    TaskCategory.STUDY: (
        ("Take a 10-question diagnostic quiz first",
         "Knowing your baseline tells you where the study hours should go."),
        ("Compare a timed practice score with your target",
         "A realistic score tells you whether the plan is on track."),
    ),
    TaskCategory.PRODUCT: (
        ("Validate the problem with 3 user conversations",
         "Confirming the problem exists is cheaper than building the wrong thing."),
        ("Confirm the success metric is instrumented before release",
         "An unmeasured launch cannot tell you whether it worked."),
    ),
    TaskCategory.VENDOR: (
        ("Ask one reference customer about the must-haves",
         "Peers who already run the tool reveal gaps sales demos skip."),
        ("Check the contract terms against your evaluation criteria",
         "Terms that contradict your criteria are easiest to fix before signing."),
    ),
    TaskCategory.STRATEGY: (
        ("Stress-test the core assumption with one data point",
         "A single real number beats a page of reasoning about the market."),
        ("Review leading indicators at the first checkpoint",
         "Leading indicators show drift before the lagging metric does."),
    ),
    TaskCategory.GENERAL: (
        ("Write down the riskiest assumption behind this",
         "Naming the assumption makes it testable."),
        ("Check progress against your metric before continuing",
         "A quick measurement confirms the effort is paying off."),
    ),
}

ACTION_VALIDATION_PHRASES: Tuple[Tuple[str, str], Tuple[str, str]] = (
    ("Agree how you will verify this action is done",
     "Atomic actions still need an unambiguous finish line."),
    ("Verify the result against its acceptance criteria",
     "Checking the result now avoids reopening the action later."),
)

UNCLEAR_ACTION_VALIDATION = (
    "Rewrite the next step so it fits in 15 minutes",
    "Recent reflections flagged the step as unclear; a smaller step is easier to verify.",
)

FRICTION_RATIONALE_SUFFIX: Dict[str, str] = {
    ReflectionSignal.LOW_ENERGY.value: " Keep the check under 10 minutes.",
    ReflectionSignal.CONTEXT_SWITCHING.value: " Do it in one uninterrupted block.",
}


# -----------------------------------------------------------------------------
# Text helpers
# -----------------------------------------------------------------------------
def normalize_title(title: str) -> str:
    """Lowercase, strip an "action:" prefix, collapse whitespace."""
    lowered = _ACTION_PREFIX_RE.sub("", title.strip().lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def tokenize(title: str) -> Set[str]:
    """Token set of a normalized title, tokens longer than 2 characters."""
    return {t for t in normalize_title(title).split(" ") if len(t) > 2}


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 0.0
    intersection = len(a & b)
    return intersection / (len(a) + len(b) - intersection)


def is_action_prefixed(title: str) -> bool:
    return title.strip().lower().startswith("action:")


def find_ambiguous_verb(title: str) -> Optional[str]:
    match = AMBIGUOUS_VERB_RE.search(title)
    return match.group(0).lower() if match else None


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------
def classify_task(task: Task) -> TaskCategory:
    """First matching keyword set over title + outcome + metric wins."""
    text = f"{task.title} {task.outcome or ''} {task.metric or ''}"
    for category, pattern in CATEGORY_KEYWORDS:
        if pattern.search(text):
            return category
    return TaskCategory.GENERAL


# -----------------------------------------------------------------------------
# Template banks
# -----------------------------------------------------------------------------
def build_templates(task: Task, category: TaskCategory) -> List[SuggestionTemplate]:
    """Candidate templates for a category, in bank order."""
    n = normalize_title(task.title)
    T = SuggestionTemplate
    K = SuggestionKind
    E = Eligibility

    if category == TaskCategory.HABIT:
        return [
            T(f'Set a 30-day target for "{n}"',
              "A 30-day window is long enough to build a habit, short enough to stay motivated.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome=f"Maintain {n} for 30 consecutive days", horizon="30 days"),
            T(f'Choose a daily tracking metric for "{n}"',
              "Daily tracking creates feedback loops that reinforce behavior.",
              K.METRIC.value, E.MISSING, fills="metric", metric="Days streak"),
            T("Identify your trigger and replacement routine",
              "Habit change works best when you design the cue-routine-reward loop.",
              K.OUTCOME.value, E.MISSING, fills="outcome"),
            T(f'Schedule a weekly reflection on "{n}"',
              "Weekly check-ins catch drift before it becomes a relapse.",
              K.REVIEW.value, E.ANY, horizon="1 week"),
            T("Design an accountability system (partner or app)",
              "External accountability doubles follow-through rates.",
              K.EXECUTION.value, E.COMPLETE),
            T("Define what 'done' looks like: permanent or time-boxed?",
              "Clarity on the end state prevents goal fatigue.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome=f"{n} sustained for target period"),
        ]

    if category == TaskCategory.STUDY:
        return [
            T("Set a target score or grade for this",
              "A concrete target turns studying from open-ended to focused.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome="Target grade/score achieved"),
            T("Estimate hours needed and schedule study blocks",
              "Time-boxing prevents both under-preparation and burnout.",
              K.METRIC.value, E.MISSING, fills="metric",
              metric="Study hours completed", horizon="exam date"),
            T("Create a practice test or flashcard set",
              "Active recall outperforms passive review by 2-3x.",
              K.EXECUTION.value, E.ANY),
            T("Identify the 3 highest-weight topics",
              "Pareto: 20% of topics often cover 80% of the exam.",
              K.SPLIT.value, E.MISSING, fills="outcome"),
            T("Schedule a mock exam 1 week before deadline",
              "A dry run reveals gaps while there's still time to fix them.",
              K.REVIEW.value, E.COMPLETE),
        ]

    if category == TaskCategory.PRODUCT:
        return [
            T("Define the activation event for this feature",
              "Users who hit the activation event retain 3-5x better.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome="Users reach activation event", metric="Activation rate (%)"),
            T("Write a one-line success criterion",
              "If you can't state success in one line, the scope is too broad.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome="Feature shipped and adoption measured"),
            T("Identify the riskiest assumption and design a test",
              "Testing assumptions early saves weeks of wasted build time.",
              K.EXECUTION.value, E.ANY),
            T("Set a ship date and work backward",
              "Fixed deadlines force scope decisions that improve focus.",
              K.HORIZON.value, E.MISSING, fills="horizon", horizon="this sprint"),
            T("Draft a 3-bullet release note",
              "Writing the announcement first clarifies what actually matters to users.",
              K.EXECUTION.value, E.COMPLETE),
            T("Run a 30-min stakeholder alignment check",
              "Misaligned stakeholders are the most common cause of late rework.",
              K.REVIEW.value, E.COMPLETE),
        ]

    if category == TaskCategory.VENDOR:
        return [
            T("List 3 must-have criteria before evaluating vendors",
              "Without criteria, vendor selection devolves into feature-count comparison.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome="Evaluation criteria documented"),
            T("Set a decision deadline to avoid analysis paralysis",
              "Vendor decisions expand to fill available time; set a hard stop.",
              K.HORIZON.value, E.MISSING, fills="horizon", horizon="2 weeks"),
            T("Request a trial or sandbox from top 2 candidates",
              "Hands-on testing reveals integration pain that demos hide.",
              K.METRIC.value, E.MISSING, fills="metric",
              metric="Integration time (hours)"),
            T("Calculate total cost of ownership (not just license)",
              "Migration, training, and maintenance often exceed the sticker price.",
              K.EXECUTION.value, E.ANY, metric="Total cost of ownership ($)"),
            T("Write a 1-page decision memo for stakeholders",
              "A written rationale prevents re-litigation later.",
              K.REVIEW.value, E.COMPLETE),
        ]

    if category == TaskCategory.STRATEGY:
        return [
            T("Define the single metric this strategy should move",
              "Strategy without a metric is just a wish.",
              K.METRIC.value, E.MISSING, fills="metric", metric="Primary KPI"),
            T("Identify the top 3 risks to this strategy",
              "Naming risks early turns surprises into contingencies.",
              K.OUTCOME.value, E.MISSING, fills="outcome",
              outcome="Risk register created"),
            T("Set a 90-day checkpoint",
              "Quarterly review cycles match natural business rhythms.",
              K.HORIZON.value, E.MISSING, fills="horizon", horizon="90 days"),
            T("Draft a one-page strategy brief",
              "If you can't fit it on one page, the strategy isn't clear enough.",
              K.EXECUTION.value, E.ANY),
            T("Run a pre-mortem: assume it failed, why?",
              "Pre-mortems surface blind spots that optimism hides.",
              K.REVIEW.value, E.COMPLETE),
            T("Align with one key stakeholder this week",
              "Early alignment prevents costly pivots later.",
              K.EXECUTION.value, E.ANY),
        ]

    return [
        T("Write a one-sentence success definition",
          "If you can't state success simply, the goal needs sharpening.",
          K.OUTCOME.value, E.MISSING, fills="outcome",
          outcome=f"{n} completed successfully"),
        T("Pick a single number to track progress",
          "One metric beats a dashboard; it forces clarity.",
          K.METRIC.value, E.MISSING, fills="metric", metric="Progress indicator"),
        T("Set a 2-week deadline",
          "Short deadlines create urgency; extend later if needed.",
          K.HORIZON.value, E.MISSING, fills="horizon", horizon="2 weeks"),
        T("Identify the first concrete next step (< 30 min)",
          "Tiny first steps overcome inertia.",
          K.EXECUTION.value, E.ANY),
        T("Ask: what would make me abandon this? Write it down",
          "Kill criteria prevent sunk-cost traps.",
          K.REVIEW.value, E.COMPLETE),
        T("Schedule a check-in with someone who cares about this",
          "Social accountability increases follow-through.",
          K.REVIEW.value, E.ANY),
    ]


def select_templates(task: Task, templates: Sequence[SuggestionTemplate]) -> List[Suggestion]:
    """
    Up to two field-filling templates (never the same field twice), then
    one more eligible template for variety.

    Templates proposing a field the task already has are not offered.
    """
    complete = task.is_complete
    eligible = [
        t for t in templates
        if t.is_eligible(complete) and not (t.fills and getattr(task, t.fills))
    ]
    eligible.sort(key=lambda t: t.priority)

    picked: List[SuggestionTemplate] = []
    filled: Set[str] = set()
    for template in eligible:
        if len(picked) >= MAX_TEMPLATE_FILLERS:
            break
        if template.fills is None or template.fills in filled:
            continue
        filled.add(template.fills)
        picked.append(template)

    for template in eligible:
        if len(picked) >= MAX_TEMPLATE_PICKS:
            break
        if template in picked:
            continue
        if template.fills and template.fills in filled:
            continue
        picked.append(template)
        break

    return [t.to_suggestion() for t in picked]


# -----------------------------------------------------------------------------
# Heuristics
# -----------------------------------------------------------------------------
def _ambiguous_verb_suggestion(task: Task) -> Optional[Suggestion]:
    verb = find_ambiguous_verb(task.title)
    if verb is None or task.metric:
        return None
    return Suggestion(
        title=f'Replace "{verb}" with a measurable target',
        rationale=f'"{verb}" is ambiguous; a proxy metric makes progress visible.',
        kind=SuggestionKind.METRIC.value,
        metric=f"{normalize_title(task.title)} score",
    )


def _action_suggestions(task: Task) -> List[Suggestion]:
    extra = []
    if not task.outcome:
        extra.append(Suggestion(
            title="Define acceptance criteria for this action",
            rationale="Clear criteria prevent scope creep on action items.",
            kind=SuggestionKind.OUTCOME.value,
            outcome=f"{normalize_title(task.title)} completed and verified",
        ))
    if not task.metric:
        extra.append(Suggestion(
            title="Add a measurable done-check",
            rationale="Even small actions benefit from a concrete completion signal.",
            kind=SuggestionKind.METRIC.value,
            metric="Done check (yes/no)",
        ))
    return extra


def find_most_similar(task: Task, all_tasks: Sequence[Task]) -> Tuple[Optional[Task], float]:
    """Best Jaccard match among other tasks. Earliest task wins ties."""
    mine = tokenize(task.title)
    best: Optional[Task] = None
    best_score = 0.0
    for other in all_tasks:
        if other.id == task.id:
            continue
        score = jaccard(mine, tokenize(other.title))
        if score > best_score:
            best, best_score = other, score
    return best, best_score


def _reuse_suggestion(task: Task, all_tasks: Sequence[Task]) -> Optional[Suggestion]:
    match, score = find_most_similar(task, all_tasks)
    if match is None or score < SIMILARITY_THRESHOLD:
        return None

    logger.debug(f"Task {task.id} similar to {match.id} (score {score:.2f})")
    if not task.outcome and match.outcome:
        return Suggestion(
            title=f'Align outcome with "{match.title}"',
            rationale=f'Reuse "{match.outcome}" for consistency across related tasks.',
            kind=SuggestionKind.REUSE.value,
            outcome=match.outcome,
        )
    if not task.metric and match.metric:
        return Suggestion(
            title=f'Reuse metric from "{match.title}"',
            rationale=f'"{match.metric}" keeps measurement consistent across related tasks.',
            kind=SuggestionKind.REUSE.value,
            metric=match.metric,
        )
    if not task.horizon and match.horizon:
        return Suggestion(
            title=f'Align timeline with "{match.title}"',
            rationale=f'"{match.horizon}" keeps related timelines in sync.',
            kind=SuggestionKind.REUSE.value,
            horizon=match.horizon,
        )
    return None


def _unblock_suggestion(task: Task, candidates: Sequence[Suggestion]) -> Optional[Suggestion]:
    if task.status != TaskStatus.IN_PROGRESS.value or not task.is_complete:
        return None
    taken = {c.dedupe_key for c in candidates}
    for option in UNBLOCK_ROTATION:
        if option.dedupe_key not in taken:
            return option
    return None


def _tracker_state_suggestions(all_tasks: Sequence[Task]) -> List[Suggestion]:
    if not all_tasks:
        return []
    todo = sum(1 for t in all_tasks if t.status == TaskStatus.TODO.value)
    in_progress = sum(1 for t in all_tasks if t.status == TaskStatus.IN_PROGRESS.value)
    done = sum(1 for t in all_tasks if t.status == TaskStatus.DONE.value)

    extra = []
    if todo >= 4 and in_progress == 0:
        extra.append(Suggestion(
            title="Pick one task to start (10 min)",
            rationale=f"{todo} tasks waiting; starting one builds momentum.",
            kind=SuggestionKind.REVIEW.value,
        ))
    if in_progress >= 2:
        extra.append(Suggestion(
            title="Pause one in-progress task to reduce WIP",
            rationale=f"{in_progress} tasks in flight; lower WIP improves throughput.",
            kind=SuggestionKind.CLEANUP.value,
        ))
    if done >= 5:
        extra.append(Suggestion(
            title="Review recent wins and plan the next 3 tasks",
            rationale=f"{done} completed; reflect before adding more.",
            kind=SuggestionKind.REVIEW.value,
        ))
    return extra


def build_validation_suggestion(
    task: Task,
    category: TaskCategory,
    friction: Optional[str] = None,
) -> Suggestion:
    """
    The single guaranteed validation suggestion.

    Phrasing depends on category and completeness; "action:" tasks get
    their own phrasing. Friction from recent reflections adapts the text.
    """
    if friction == ReflectionSignal.UNCLEAR_ACTION.value:
        title, rationale = UNCLEAR_ACTION_VALIDATION
    else:
        if is_action_prefixed(task.title):
            missing_phrase, complete_phrase = ACTION_VALIDATION_PHRASES
        else:
            missing_phrase, complete_phrase = VALIDATION_PHRASES[category]
        title, rationale = complete_phrase if task.is_complete else missing_phrase
        rationale += FRICTION_RATIONALE_SUFFIX.get(friction or "", "")

    return Suggestion(title=title, rationale=rationale, kind=SuggestionKind.VALIDATION.value)


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------
def select_final(candidates: Sequence[Suggestion], validation: Suggestion) -> List[Suggestion]:
    """Dedupe by lowercase title, then 2 regular + 1 validation + optional trailing."""
    unique: List[Suggestion] = []
    seen: Set[str] = set()
    for suggestion in list(candidates) + [validation]:
        if suggestion.dedupe_key in seen:
            continue
        seen.add(suggestion.dedupe_key)
        unique.append(suggestion)

    regular = [s for s in unique if s.kind != SuggestionKind.VALIDATION.value]
    selected = regular[:MAX_REGULAR]
    selected.append(validation)

    for suggestion in regular[MAX_REGULAR:]:
        if len(selected) >= MAX_SUGGESTIONS:
            break
        if suggestion.kind in TRAILING_KINDS:
            selected.append(suggestion)
            break

    return selected


# -----------------------------------------------------------------------------
# Main Interface
# -----------------------------------------------------------------------------
def generate_suggestions(
    task: Task,
    all_tasks: Sequence[Task] = (),
    reflections: Optional[Sequence[Reflection]] = None,
) -> List[Suggestion]:
    """
    Generate 1-4 suggestions for a task, exactly one of kind "validation".

    Pure function of its inputs.
    """
    category = classify_task(task)
    candidates: List[Suggestion] = []

    # 1-2) Category templates
    candidates.extend(select_templates(task, build_templates(task, category)))

    # 3) Ambiguous verb
    verb_suggestion = _ambiguous_verb_suggestion(task)
    if verb_suggestion is not None:
        candidates.append(verb_suggestion)

    # 4) Atomic actions never get "break into steps"
    if is_action_prefixed(task.title):
        candidates = [c for c in candidates if not _BREAK_INTO_STEPS_RE.search(c.title)]
        candidates.extend(_action_suggestions(task))

    # 5) Reuse from the most similar task
    reuse = _reuse_suggestion(task, all_tasks)
    if reuse is not None:
        candidates.append(reuse)

    # 6) Stalled in-progress
    unblock = _unblock_suggestion(task, candidates)
    if unblock is not None:
        candidates.append(unblock)

    # 7) Tracker state
    candidates.extend(_tracker_state_suggestions(all_tasks))

    # 8) Validation
    friction = dominant_friction(friction_counts(reflections or (), task_id=task.id))
    validation = build_validation_suggestion(task, category, friction)

    # 9) Selection
    selected = select_final(candidates, validation)
    logger.debug(
        f"Task {task.id}: category={category.value}, "
        f"{len(candidates)} candidates, {len(selected)} selected"
    )
    return selected
