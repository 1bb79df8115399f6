"""Shared fixtures."""

import pytest

from fakes import FakeBackend, FakeTable


@pytest.fixture
def backend():
    """Empty in-memory task backend."""
    return FakeBackend()


@pytest.fixture
def starred_items():
    """Boto3-style table double for SmartTodoStarredTasks."""
    return FakeTable(("userId", "taskId"))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep settings independent of the developer's environment."""
    for name in (
        "SMART_TODO_API_GATEWAY_URL",
        "SMART_TODO_SYNC_RETRY_DELAY",
        "SMART_TODO_FETCH_INTERVAL",
        "SMART_TODO_TASK_LISTS_TABLE",
        "SMART_TODO_TASKS_TABLE",
        "SMART_TODO_STARRED_TABLE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_REGION", "us-east-1")
