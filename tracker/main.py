"""
Decision Tracker - FastAPI Application

Thin HTTP wrapper over the tracker core. Every request loads the task
snapshot, performs exactly one operation and saves when it mutated.

CONSTRAINTS:
- Every response body is the Result envelope ({ok, value} / {ok, error})
- 201 on create/append, 400 on failed results and malformed requests
- Suggestions and briefings are ADVISORY-ONLY: they never mutate tasks
- The LLM path is optional and always falls back to the deterministic engines
"""

import logging
import os
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .llm_provider import (
    SuggestionProvider,
    brief_with_fallback,
    get_llm_provider,
    suggest_with_fallback,
)
from .reflection_model import DEFAULT_SINCE_DAYS, parse_reflections
from .reflection_store import ReflectionStore
from .result import ErrorCode, Ok, Result, err
from .task_model import Task, TaskKind, TaskStatus
from .task_store import TaskStore

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("tracker_api")

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if o.strip()
]
PORT = int(os.getenv("PORT", "3333"))


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------
class AddTaskRequest(BaseModel):
    title: str = Field(..., min_length=1)
    parentId: Optional[int] = None
    kind: Optional[Literal["goal", "action"]] = None


class PatchTaskRequest(BaseModel):
    outcome: Optional[str] = None
    metric: Optional[str] = None
    horizon: Optional[str] = None


class SuggestionRequest(BaseModel):
    id: int
    title: str = Field(..., min_length=1)
    status: Literal["todo", "in-progress", "done"] = TaskStatus.TODO.value
    outcome: Optional[str] = None
    metric: Optional[str] = None
    horizon: Optional[str] = None
    parentId: Optional[int] = None
    reflections: Optional[List[Dict[str, Any]]] = None

    def to_task(self) -> Task:
        return Task(
            id=self.id,
            title=self.title,
            status=self.status,
            outcome=self.outcome or None,
            metric=self.metric or None,
            horizon=self.horizon or None,
            parent_id=self.parentId,
            kind=TaskKind.ACTION.value if self.parentId else TaskKind.GOAL.value,
        )


class BriefingRequest(BaseModel):
    userName: Optional[str] = None


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_task_store() -> TaskStore:
    return TaskStore()


def get_reflection_store() -> ReflectionStore:
    return ReflectionStore()


def _respond(result: Result, status_code: int = 200) -> JSONResponse:
    """Envelope response; any Err maps to 400."""
    if not result.ok:
        status_code = 400
    return JSONResponse(status_code=status_code, content=result.to_dict())


# -----------------------------------------------------------------------------
# FastAPI Application
# -----------------------------------------------------------------------------
app = FastAPI(
    title="Decision Tracker",
    description="Goals, actions, suggestions, briefings and reflections",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Re-shape FastAPI request validation errors into the envelope."""
    problems = exc.errors()
    if problems:
        first = problems[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Malformed request"
    logger.debug(f"Rejected {request.method} {request.url.path}: {message}")
    return _respond(err(ErrorCode.BAD_REQUEST, message))


@app.get("/health")
async def health():
    return _respond(Ok("ok"))


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------
@app.get("/tasks")
async def list_tasks(
    status: Optional[Literal["todo", "in-progress", "done"]] = None,
    parent_id: Optional[int] = Query(None, alias="parentId"),
    store: TaskStore = Depends(get_task_store),
):
    tracker = store.load()
    return _respond(tracker.list_tasks(status=status, parent_id=parent_id))


@app.post("/tasks")
async def add_task(request: AddTaskRequest, store: TaskStore = Depends(get_task_store)):
    tracker = store.load()
    result = tracker.add_task(request.title, parent_id=request.parentId, kind=request.kind)
    store.save(tracker)
    logger.info(f"Task {result.value.id} added")
    return _respond(result, status_code=201)


@app.patch("/tasks/{task_id}")
async def patch_task(
    task_id: int,
    request: PatchTaskRequest,
    store: TaskStore = Depends(get_task_store),
):
    fields = {k: v for k, v in request.model_dump().items() if v is not None}
    if not fields:
        return _respond(err(
            ErrorCode.BAD_REQUEST, "Provide at least one of outcome, metric, horizon"
        ))

    tracker = store.load()
    result = tracker.update_task(task_id, **fields)
    if result.ok:
        store.save(tracker)
    return _respond(result)


@app.post("/tasks/{task_id}/start")
async def start_task(task_id: int, store: TaskStore = Depends(get_task_store)):
    tracker = store.load()
    result = tracker.start_task(task_id)
    if result.ok:
        store.save(tracker)
    return _respond(result)


@app.post("/tasks/{task_id}/done")
async def complete_task(task_id: int, store: TaskStore = Depends(get_task_store)):
    tracker = store.load()
    result = tracker.complete_task(task_id)
    if result.ok:
        store.save(tracker)
    return _respond(result)


@app.post("/reset")
async def reset_tasks(store: TaskStore = Depends(get_task_store)):
    tasks = store.reset()
    return _respond(Ok(tasks))


# -----------------------------------------------------------------------------
# Suggestions & Briefing (advisory-only)
# -----------------------------------------------------------------------------
@app.post("/suggestions")
async def suggest(
    request: SuggestionRequest,
    store: TaskStore = Depends(get_task_store),
    reflection_store: ReflectionStore = Depends(get_reflection_store),
    provider: Optional[SuggestionProvider] = Depends(get_llm_provider),
):
    task = request.to_task()
    all_tasks = store.load().list_tasks().value
    if request.reflections is not None:
        reflections = parse_reflections(request.reflections)
    else:
        reflections = [
            r for r in reflection_store.list_reflections() if r.concerns(task.id)
        ]

    suggestions = await suggest_with_fallback(task, all_tasks, reflections, provider=provider)
    return _respond(Ok({"suggestions": suggestions}))


@app.post("/briefing")
async def briefing(
    request: Optional[BriefingRequest] = None,
    store: TaskStore = Depends(get_task_store),
    reflection_store: ReflectionStore = Depends(get_reflection_store),
    provider: Optional[SuggestionProvider] = Depends(get_llm_provider),
):
    user_name = request.userName if request is not None else None
    all_tasks = store.load().list_tasks().value
    reflections = reflection_store.list_reflections(since_days=DEFAULT_SINCE_DAYS)

    result = await brief_with_fallback(all_tasks, reflections, user_name, provider=provider)
    return _respond(Ok(result))


# -----------------------------------------------------------------------------
# Reflections (append-only)
# -----------------------------------------------------------------------------
@app.post("/reflections")
async def append_reflection(
    data: Dict[str, Any] = Body(...),
    reflection_store: ReflectionStore = Depends(get_reflection_store),
):
    return _respond(reflection_store.append_reflection(data), status_code=201)


@app.get("/reflections")
async def list_reflections(
    goal_id: Optional[int] = Query(None, alias="goalId"),
    action_id: Optional[int] = Query(None, alias="actionId"),
    days: int = Query(DEFAULT_SINCE_DAYS, ge=0),
    reflection_store: ReflectionStore = Depends(get_reflection_store),
):
    reflections = reflection_store.list_reflections(
        goal_id=goal_id, action_id=action_id, since_days=days
    )
    return _respond(Ok(reflections))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tracker.main:app", host="0.0.0.0", port=PORT)
