"""
Pytest configuration for Decision Tracker tests.

This module provides:
1. Async test support without pytest-asyncio
2. Common fixtures for stores and task graphs
3. Test session configuration
"""

import asyncio
import functools
from pathlib import Path

import pytest

from tracker.reflection_store import ReflectionStore
from tracker.task_model import TaskTracker
from tracker.task_store import TaskStore


# -----------------------------------------------------------------------------
# Async Test Support
# -----------------------------------------------------------------------------
def async_test(func):
    """
    Decorator to run async tests without pytest-asyncio.

    Usage:
        @async_test
        async def test_something(self):
            result = await some_async_function()
            assert result is not None
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def store_path(tmp_path) -> Path:
    """Task snapshot location inside a temp directory."""
    return tmp_path / "tasks.json"


@pytest.fixture
def task_store(store_path) -> TaskStore:
    return TaskStore(path=store_path)


@pytest.fixture
def reflection_store(tmp_path) -> ReflectionStore:
    return ReflectionStore(path=tmp_path / "data" / "reflections.json")


@pytest.fixture
def goal_with_actions() -> TaskTracker:
    """Goal 1 with actions 2 and 3, all todo."""
    tracker = TaskTracker()
    tracker.add_task("Launch pricing page")
    tracker.add_task("Draft copy", parent_id=1)
    tracker.add_task("Review with design", parent_id=1)
    return tracker


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async (custom implementation)"
    )
