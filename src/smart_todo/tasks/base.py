"""
Abstract base class for task backends.
"""

from abc import ABC, abstractmethod
from typing import Any

from smart_todo.tasks.models import Task, TaskList


class BaseTasksBackend(ABC):
    """Remote persistence contract shared by Google Tasks, the proxy and DynamoDB.

    Every method raises a ``TasksError`` subclass on failure.
    """

    backend_name: str

    @abstractmethod
    def list_task_lists(self) -> list[TaskList]:
        """Return every task list of the signed-in user."""

    @abstractmethod
    def create_task_list(self, title: str, color: str | None = None) -> TaskList:
        """Create a task list and return it with its real id."""

    @abstractmethod
    def update_task_list(self, list_id: str, updates: dict[str, Any]) -> TaskList:
        """Rename (or recolor) a task list."""

    @abstractmethod
    def delete_task_list(self, list_id: str) -> None:
        """Delete a task list together with its tasks."""

    @abstractmethod
    def list_tasks(self, list_id: str) -> list[Task]:
        """Return the tasks of one list, each stamped with ``list_id``."""

    @abstractmethod
    def create_task(self, list_id: str, task: dict[str, Any]) -> Task:
        """Create a task from a dict of title/notes/due/status/starred."""

    @abstractmethod
    def update_task(self, list_id: str, task_id: str, updates: dict[str, Any]) -> Task:
        """Apply a partial update; only keys present in ``updates`` change."""

    @abstractmethod
    def delete_task(self, list_id: str, task_id: str) -> None:
        """Delete a task."""

    @abstractmethod
    def move_task(
        self,
        list_id: str,
        task_id: str,
        previous: str | None = None,
        destination_list_id: str | None = None,
    ) -> Task:
        """Reorder a task after ``previous`` or move it to another list."""
