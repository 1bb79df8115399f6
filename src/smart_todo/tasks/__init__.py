"""Task backends: Google Tasks directly, through the proxy, or DynamoDB.

Usage:
    from smart_todo.tasks import TasksClient

    client = TasksClient()
    lists = client.list_task_lists()
    task = client.create_task(lists[0].id, {"title": "Review PR", "due": "2026-01-25"})
    client.update_task(lists[0].id, task.id, {"starred": True})

OAuth Setup:
    1. Download OAuth credentials from Google Cloud Console
    2. Import: smart-todo google import ~/Downloads/credentials.json
    3. Authorize: smart-todo google login
"""

from __future__ import annotations

from smart_todo.tasks.api import ProxyTasksClient
from smart_todo.tasks.base import BaseTasksBackend
from smart_todo.tasks.client import TasksClient
from smart_todo.tasks.exceptions import (
    AuthenticationRequired,
    InsufficientScopeError,
    InvalidTaskListIdError,
    TaskNotFoundError,
    TasksApiError,
    TasksError,
    TokenExpiredError,
)
from smart_todo.tasks.models import Task, TaskList

__all__ = [
    "BaseTasksBackend",
    "TasksClient",
    "ProxyTasksClient",
    "Task",
    "TaskList",
    "TasksError",
    "TasksApiError",
    "AuthenticationRequired",
    "InsufficientScopeError",
    "InvalidTaskListIdError",
    "TaskNotFoundError",
    "TokenExpiredError",
]
