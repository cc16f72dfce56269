"""
Decision Tracker - Command Line Interface

Sub-commands map one-to-one onto the SafeTaskTracker façade and the
advisory engines:

    tracker add "Decide on pricing" [--parent 1]
    tracker start 2 / tracker done 2
    tracker list [--status todo] [--json]
    tracker patch 1 --outcome "..." --metric "..." --horizon "..."
    tracker suggest 1 [--json] [--add 2]
    tracker brief [--name Sam]
    tracker reflect 1 [--action 2] [--signal low_energy] [--note "..."]

Errors print "CODE: message" plus a hint on stderr and exit with status 1.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__
from .llm_provider import brief_with_fallback, get_llm_provider, suggest_with_fallback
from .reflection_model import VALID_SIGNALS
from .reflection_store import ReflectionStore
from .result import Err, ErrorCode
from .task_model import STATUS_ORDER, Task, TaskKind, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger("tracker_cli")

ERROR_HINTS = {
    ErrorCode.NOT_FOUND: "Run `tracker list` to see existing task ids.",
    ErrorCode.INVALID_TRANSITION: "Tasks move todo -> in-progress -> done, one step at a time.",
    ErrorCode.VALIDATION: "Check the reflection fields and try again.",
    ErrorCode.BAD_REQUEST: "Run `tracker --help` for usage.",
}

STATUS_MARKS = {
    TaskStatus.TODO.value: "[ ]",
    TaskStatus.IN_PROGRESS.value: "[~]",
    TaskStatus.DONE.value: "[x]",
}


# -----------------------------------------------------------------------------
# Output helpers
# -----------------------------------------------------------------------------
def _fail(result: Err) -> int:
    code = result.error.code
    print(f"{code.value}: {result.error.message}", file=sys.stderr)
    hint = ERROR_HINTS.get(code)
    if hint:
        print(f"Hint: {hint}", file=sys.stderr)
    return 1


def _format_task(task: Task, indent: str = "") -> str:
    line = f"{task.id:>3} {STATUS_MARKS.get(task.status, '[?]')} {indent}{task.title}"
    details = [
        f"{name}: {getattr(task, name)}"
        for name in ("outcome", "metric", "horizon")
        if getattr(task, name)
    ]
    if details:
        line += f"  ({'; '.join(details)})"
    return line


def _print_tree(tasks: Sequence[Task]) -> None:
    """Goals with their actions nested underneath; orphans at the end."""
    goal_ids = {t.id for t in tasks if t.is_goal}
    for goal in (t for t in tasks if t.is_goal):
        print(_format_task(goal))
        for action in (t for t in tasks if t.parent_id == goal.id):
            print(_format_task(action, indent="  "))
    for orphan in (t for t in tasks if not t.is_goal and t.parent_id not in goal_ids):
        print(_format_task(orphan, indent="  "))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------
def cmd_add(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    tracker = store.load()
    result = tracker.add_task(args.title, parent_id=args.parent)
    store.save(tracker)
    print(f"Added {_format_task(result.value).strip()}")
    return 0


def cmd_start(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    tracker = store.load()
    result = tracker.start_task(args.id)
    if not result.ok:
        return _fail(result)
    store.save(tracker)
    print(f"Started {_format_task(result.value).strip()}")
    return 0


def cmd_done(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    tracker = store.load()
    result = tracker.complete_task(args.id)
    if not result.ok:
        return _fail(result)
    store.save(tracker)
    print(f"Completed {_format_task(result.value).strip()}")
    return 0


def cmd_list(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    tasks = store.load().list_tasks(status=args.status).value
    if args.json:
        print(json.dumps([t.to_dict() for t in tasks], indent=2))
    elif not tasks:
        print("No tasks.")
    elif args.status:
        for task in tasks:
            print(_format_task(task))
    else:
        _print_tree(tasks)
    return 0


def cmd_patch(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    if args.outcome is None and args.metric is None and args.horizon is None:
        print("BAD_REQUEST: nothing to update", file=sys.stderr)
        print(f"Hint: {ERROR_HINTS[ErrorCode.BAD_REQUEST]}", file=sys.stderr)
        return 1

    tracker = store.load()
    result = tracker.update_task(
        args.id, outcome=args.outcome, metric=args.metric, horizon=args.horizon
    )
    if not result.ok:
        return _fail(result)
    store.save(tracker)
    print(f"Updated {_format_task(result.value).strip()}")
    return 0


def cmd_suggest(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    tracker = store.load()
    found = tracker.get_task(args.id)
    if not found.ok:
        return _fail(found)
    task = found.value
    all_tasks = tracker.list_tasks().value
    reflections = [r for r in reflection_store.list_reflections() if r.concerns(task.id)]

    suggestions = asyncio.run(
        suggest_with_fallback(task, all_tasks, reflections, provider=get_llm_provider())
    )

    if args.add is not None:
        if not 1 <= args.add <= len(suggestions):
            print(f"BAD_REQUEST: no suggestion #{args.add}", file=sys.stderr)
            print(f"Hint: choose a number between 1 and {len(suggestions)}", file=sys.stderr)
            return 1
        chosen = suggestions[args.add - 1]
        added = tracker.add_task(chosen.title, parent_id=task.id, kind=TaskKind.ACTION.value)
        store.save(tracker)
        print(f"Added {_format_task(added.value).strip()}")
        return 0

    if args.json:
        print(json.dumps([s.to_dict() for s in suggestions], indent=2))
        return 0

    print(f"Suggestions for: {task.title}")
    for number, suggestion in enumerate(suggestions, start=1):
        print(f"{number}. [{suggestion.kind}] {suggestion.title}")
        print(f"   {suggestion.rationale}")
    return 0


def cmd_brief(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    all_tasks = store.load().list_tasks().value
    reflections = reflection_store.list_reflections()
    briefing = asyncio.run(
        brief_with_fallback(all_tasks, reflections, args.name, provider=get_llm_provider())
    )

    if args.json:
        print(json.dumps(briefing.to_dict(), indent=2))
        return 0

    print(briefing.greeting)
    print(briefing.headline)
    for item in briefing.focus:
        print(f"\n* {item.goal_title}")
        print(f"  Why now: {item.why_now}")
        print(f"  Next: {item.action.action_title}")
    print(f"\n{briefing.cta.label}: {briefing.cta.microcopy}")
    return 0


def cmd_reflect(args, store: TaskStore, reflection_store: ReflectionStore) -> int:
    data = {"goalId": args.goal_id}
    if args.action is not None:
        data["actionId"] = args.action
    if args.signal:
        data["signals"] = args.signal
    if args.note is not None:
        data["note"] = args.note

    result = reflection_store.append_reflection(data)
    if not result.ok:
        return _fail(result)
    print(f"Reflection saved for goal {result.value.goal_id}")
    return 0


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracker",
        description="Track goals and actions, get suggestions and a daily briefing.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--store", type=Path, help="Task snapshot file (default: $STORE_PATH)")
    parser.add_argument(
        "--reflections", type=Path, help="Reflections file (default: $TRACKER_DATA_DIR/reflections.json)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a goal, or an action with --parent")
    p.add_argument("title")
    p.add_argument("--parent", type=int, help="Parent goal id")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("start", help="Move a task from todo to in-progress")
    p.add_argument("id", type=int)
    p.set_defaults(func=cmd_start)

    p = sub.add_parser("done", help="Move a task from in-progress to done")
    p.add_argument("id", type=int)
    p.set_defaults(func=cmd_done)

    p = sub.add_parser("list", help="List tasks")
    p.add_argument("--status", choices=STATUS_ORDER)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("patch", help="Set outcome, metric or horizon")
    p.add_argument("id", type=int)
    p.add_argument("--outcome")
    p.add_argument("--metric")
    p.add_argument("--horizon")
    p.set_defaults(func=cmd_patch)

    p = sub.add_parser("suggest", help="Suggest next steps for a task")
    p.add_argument("id", type=int)
    p.add_argument("--json", action="store_true")
    p.add_argument("--add", type=int, metavar="N", help="Add suggestion N as an action")
    p.set_defaults(func=cmd_suggest)

    p = sub.add_parser("brief", help="Show today's briefing")
    p.add_argument("--name")
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_brief)

    p = sub.add_parser("reflect", help="Record a reflection on a goal")
    p.add_argument("goal_id", type=int)
    p.add_argument("--action", type=int, help="Action id the reflection is about")
    p.add_argument("--signal", action="append", choices=sorted(VALID_SIGNALS))
    p.add_argument("--note")
    p.set_defaults(func=cmd_reflect)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    args = build_parser().parse_args(argv)
    store = TaskStore(path=args.store)
    reflection_store = ReflectionStore(path=args.reflections)
    logger.debug(f"Running {args.command} against {store.path}")
    return args.func(args, store, reflection_store)


if __name__ == "__main__":
    sys.exit(main())
