"""
Decision Tracker Module

Personal goal/action tracker with a deterministic suggestion layer.
One authoritative JSON snapshot is shared by the CLI and the REST API.

Components:
- Task Model: goal/action state machine (todo -> in-progress -> done)
  * Strictly linear transitions, no skipping, no regression
  * Cascading parent promotion when child actions start or complete
- Result Boundary: non-throwing façade returning {ok, value} / {ok, error}
  * Only NOT_FOUND and INVALID_TRANSITION ever surface from the model
- Persistence: JSON snapshot replayed through the state machine on load
  * Corrupt or unreadable snapshot degrades to an empty tracker
- Suggestion Engine: DETERMINISTIC next-step proposals for one task
  * Category classification, field-priority ranking, Jaccard reuse
  * Always exactly one validation suggestion, at most four in total
- Briefing Engine: DETERMINISTIC daily focus (max 2 goals, 1 action each)
- Reflection Store: append-only post-completion feedback
  * Closed signal set, 140 character notes, 14 day default window
- LLM Layer: optional enhancement, ALWAYS falls back to the deterministic engines
"""

__version__ = "0.4.0"
