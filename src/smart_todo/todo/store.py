"""Client-side state for task lists and tasks.

``TodoStore`` applies every mutation to local state first and then calls the
backend. When the backend refuses, the local change is reverted, the failure
is logged and ``error`` holds a short message for display.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from datetime import date
from typing import Any

from smart_todo.auth.service import is_token_error
from smart_todo.sync.queue import (
    ACTION_REORDER,
    ACTION_UPDATE,
    TYPE_TASK,
    TYPE_TASK_LIST,
    SyncQueue,
)
from smart_todo.tasks.base import BaseTasksBackend
from smart_todo.tasks.exceptions import TasksError
from smart_todo.tasks.models import (
    STATUS_COMPLETED,
    STATUS_NEEDS_ACTION,
    TEMP_LIST_PREFIX,
    TEMP_TASK_PREFIX,
    Task,
    TaskList,
    make_temp_id,
    parse_due,
)
from smart_todo.todo import filters
from smart_todo.todo.filters import FILTER_ALL, TodayProvider

logger = logging.getLogger(__name__)

SIGN_IN_MESSAGE = "Your Google session is not valid. Please sign in again."


class TodoStore:
    """Task lists, tasks and the current view of them."""

    def __init__(
        self,
        backend: BaseTasksBackend,
        sync_queue: SyncQueue | None = None,
        today: TodayProvider = date.today,
    ):
        """Initialize the store.

        Args:
            backend: Remote backend for direct calls.
            sync_queue: Queue used for reorders; its id mappings and data
                refreshes are applied to this store.
            today: Returns the current date (injectable for tests).
        """
        self.backend = backend
        self.sync_queue = sync_queue
        self.today = today

        self.task_lists: list[TaskList] = []
        self.all_tasks: list[Task] = []
        self.selected_list_id: str | None = None
        self.date_filter: str = FILTER_ALL
        self.search_query = ""
        self.loading = False
        self.error: str | None = None

        if sync_queue is not None:
            sync_queue.on_list_id_mapped(self.apply_list_id_mapping)
            sync_queue.on_data_updated(self.replace_data)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _snapshot(self) -> tuple[list[TaskList], list[Task], str | None]:
        return copy.copy(self.task_lists), copy.copy(self.all_tasks), self.selected_list_id

    def _restore(self, snapshot: tuple[list[TaskList], list[Task], str | None]) -> None:
        self.task_lists, self.all_tasks, self.selected_list_id = snapshot

    def _failed(self, message: str, error: Exception) -> None:
        logger.error("%s %s", message, error)
        self.error = f"{message} {SIGN_IN_MESSAGE}" if is_token_error(error) else message

    def get_task_list(self, list_id: str) -> TaskList | None:
        return next((task_list for task_list in self.task_lists if task_list.id == list_id), None)

    def get_task(self, task_id: str) -> Task | None:
        return next((task for task in self.all_tasks if task.id == task_id), None)

    def _replace_task(self, task_id: str, task: Task) -> None:
        self.all_tasks = [task if t.id == task_id else t for t in self.all_tasks]

    def _replace_list(self, list_id: str, task_list: TaskList) -> None:
        self.task_lists = [task_list if tl.id == list_id else tl for tl in self.task_lists]

    def _set_task_lists(self, task_lists: list[TaskList]) -> None:
        # Colors are client-side only; keep the ones already assigned
        colors = {task_list.id: task_list.color for task_list in self.task_lists}
        self.task_lists = [
            replace(task_list, color=colors.get(task_list.id, task_list.color))
            for task_list in task_lists
        ]
        if self.get_task_list(self.selected_list_id) is None:
            self.selected_list_id = self.task_lists[0].id if self.task_lists else None

    # =========================================================================
    # Loading
    # =========================================================================

    def fetch_task_lists(self) -> list[TaskList]:
        self.loading = True
        self.error = None
        try:
            remote = self.backend.list_task_lists()
        except TasksError as e:
            self._failed("Failed to fetch task lists.", e)
            return []
        finally:
            self.loading = False

        self._set_task_lists(remote)
        return self.task_lists

    def fetch_tasks(self, list_id: str | None = None) -> list[Task]:
        """Reload the tasks of one list (the selected one by default)."""
        list_id = list_id or self.selected_list_id
        if not list_id:
            return []

        self.loading = True
        self.error = None
        try:
            tasks = [replace(task, list_id=list_id) for task in self.backend.list_tasks(list_id)]
        except TasksError as e:
            self._failed("Failed to fetch tasks.", e)
            return []
        finally:
            self.loading = False

        self.all_tasks = [task for task in self.all_tasks if task.list_id != list_id] + tasks
        return tasks

    def fetch_all(self) -> list[Task]:
        """Reload every list and all of their tasks."""
        tasks: list[Task] = []
        for task_list in self.fetch_task_lists():
            tasks.extend(self.fetch_tasks(task_list.id))
        return tasks

    def replace_data(self, task_lists: list[TaskList], tasks: list[Task]) -> None:
        """Swap in freshly fetched data, keeping client-side list colors."""
        self._set_task_lists(task_lists)
        self.all_tasks = list(tasks)

    def apply_list_id_mapping(self, temp_id: str, real_id: str) -> None:
        """Replace a temporary list id with the id the backend assigned."""
        logger.debug("Mapping task list %s -> %s", temp_id, real_id)
        self.task_lists = [
            replace(task_list, id=real_id) if task_list.id == temp_id else task_list
            for task_list in self.task_lists
        ]
        self.all_tasks = [
            replace(task, list_id=real_id) if task.list_id == temp_id else task
            for task in self.all_tasks
        ]
        if self.selected_list_id == temp_id:
            self.selected_list_id = real_id

    # =========================================================================
    # Task lists
    # =========================================================================

    def create_task_list(self, title: str, color: str | None = None) -> TaskList | None:
        snapshot = self._snapshot()
        temp = TaskList(id=make_temp_id(TEMP_LIST_PREFIX), title=title)
        if color:
            temp.color = color
        self.task_lists.append(temp)

        try:
            created = self.backend.create_task_list(title, color)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to create task list.", e)
            return None

        created = replace(created, color=color or created.color)
        self._replace_list(temp.id, created)
        self.apply_list_id_mapping(temp.id, created.id)
        return created

    def update_task_list(
        self,
        list_id: str,
        title: str | None = None,
        color: str | None = None,
    ) -> TaskList | None:
        current = self.get_task_list(list_id)
        if current is None:
            self.error = "Task list not found."
            return None

        snapshot = self._snapshot()
        updates: dict[str, Any] = {}
        if title:
            updates["title"] = title
        if color:
            updates["color"] = color
        local = replace(current, **updates)
        self._replace_list(list_id, local)

        if current.is_temporary and self.sync_queue is not None:
            # Not created remotely yet; the queue turns this into a create
            self.sync_queue.add_to_sync_queue(
                TYPE_TASK_LIST, ACTION_UPDATE, {"id": list_id, **updates}
            )
            return local

        try:
            updated = self.backend.update_task_list(list_id, updates)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to update task list.", e)
            return None

        updated = replace(updated, color=local.color)
        self._replace_list(list_id, updated)
        return updated

    def delete_task_list(self, list_id: str) -> bool:
        """Delete a list and, locally, every task it owns."""
        snapshot = self._snapshot()
        self.task_lists = [task_list for task_list in self.task_lists if task_list.id != list_id]
        self.all_tasks = [task for task in self.all_tasks if task.list_id != list_id]
        if self.selected_list_id == list_id:
            self.selected_list_id = self.task_lists[0].id if self.task_lists else None

        try:
            self.backend.delete_task_list(list_id)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to delete task list.", e)
            return False
        return True

    def select_list(self, list_id: str | None) -> None:
        self.selected_list_id = list_id

    # =========================================================================
    # Tasks
    # =========================================================================

    def create_task(
        self,
        title: str,
        list_id: str | None = None,
        notes: str | None = None,
        due: str | date | None = None,
        starred: bool = False,
    ) -> Task | None:
        list_id = list_id or self.selected_list_id
        if not list_id:
            self.error = "Select a task list first."
            return None

        snapshot = self._snapshot()
        temp = Task(
            id=make_temp_id(TEMP_TASK_PREFIX),
            title=title,
            notes=notes,
            due=parse_due(due),
            starred=starred,
            list_id=list_id,
        )
        self.all_tasks.append(temp)

        try:
            created = self.backend.create_task(
                list_id,
                {
                    "title": title,
                    "notes": notes or "",
                    "due": temp.due,
                    "starred": starred,
                    "status": STATUS_NEEDS_ACTION,
                },
            )
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to create task.", e)
            return None

        created = replace(created, list_id=list_id)
        self._replace_task(temp.id, created)
        return created

    def update_task(self, task_id: str, **updates: Any) -> Task | None:
        """Update fields of a task (title, notes, due, status, starred)."""
        current = self.get_task(task_id)
        if current is None:
            self.error = "Task not found."
            return None

        snapshot = self._snapshot()
        local = current
        for name in ("title", "notes", "status", "starred"):
            if name in updates:
                local = replace(local, **{name: updates[name]})
        if "due" in updates:
            local = replace(local, due=parse_due(updates["due"]))
        self._replace_task(task_id, local)

        try:
            updated = self.backend.update_task(current.list_id, task_id, updates)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to update task.", e)
            return None

        updated = replace(updated, list_id=current.list_id)
        self._replace_task(task_id, updated)
        return updated

    def toggle_completion(self, task_id: str) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            self.error = "Task not found."
            return None
        status = STATUS_NEEDS_ACTION if task.is_completed else STATUS_COMPLETED
        return self.update_task(task_id, status=status)

    def toggle_star(self, task_id: str) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            self.error = "Task not found."
            return None
        return self.update_task(task_id, starred=not task.starred)

    def delete_task(self, task_id: str) -> bool:
        current = self.get_task(task_id)
        if current is None:
            self.error = "Task not found."
            return False

        snapshot = self._snapshot()
        self.all_tasks = [task for task in self.all_tasks if task.id != task_id]
        try:
            self.backend.delete_task(current.list_id, task_id)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to delete task.", e)
            return False
        return True

    def move_task(self, task_id: str, destination_list_id: str) -> Task | None:
        """Move a task to another list."""
        current = self.get_task(task_id)
        if current is None:
            self.error = "Task not found."
            return None
        if current.list_id == destination_list_id:
            return current

        snapshot = self._snapshot()
        self._replace_task(task_id, replace(current, list_id=destination_list_id))
        try:
            moved = self.backend.move_task(
                current.list_id, task_id, destination_list_id=destination_list_id
            )
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to move task.", e)
            return None

        # The backend may assign a new id on cross-list moves
        moved = replace(moved, list_id=destination_list_id)
        self._replace_task(task_id, moved)
        return moved

    def reorder_task(self, task_id: str, previous_task_id: str | None = None) -> bool:
        """Place a task right after ``previous_task_id`` (first when None).

        The local order changes at once; the remote move goes through the
        sync queue.
        """
        task = self.get_task(task_id)
        if task is None:
            self.error = "Task not found."
            return False

        snapshot = self._snapshot()
        remaining = [t for t in self.all_tasks if t.id != task_id]
        if previous_task_id is None:
            index = next(
                (i for i, t in enumerate(remaining) if t.list_id == task.list_id), len(remaining)
            )
        else:
            index = next(
                (i + 1 for i, t in enumerate(remaining) if t.id == previous_task_id), None
            )
            if index is None:
                self.error = "Task not found."
                return False
        remaining.insert(index, task)
        self.all_tasks = remaining

        data = {"id": task_id, "list_id": task.list_id, "previous": previous_task_id}
        if self.sync_queue is not None:
            self.sync_queue.add_to_sync_queue(TYPE_TASK, ACTION_REORDER, data)
            return True

        try:
            self.backend.move_task(task.list_id, task_id, previous=previous_task_id)
        except TasksError as e:
            self._restore(snapshot)
            self._failed("Failed to reorder task.", e)
            return False
        return True

    # =========================================================================
    # View
    # =========================================================================

    def set_filter(self, filter_name: str) -> None:
        if filter_name not in filters.FILTERS:
            raise ValueError(
                f"Unknown filter: {filter_name}. Available: {', '.join(filters.FILTERS)}"
            )
        self.date_filter = filter_name

    def search(self, query: str | None) -> list[Task]:
        """Set the free-text search and return the resulting view.

        An empty query clears the search.
        """
        self.search_query = (query or "").strip()
        return self.visible_tasks

    @property
    def visible_tasks(self) -> list[Task]:
        """Tasks for the current view, recomputed from ``all_tasks``.

        The ``all`` filter shows the selected list; date and starred filters
        span every list, and so does an active search.
        """
        searching = bool(self.search_query)
        list_id = None
        if self.date_filter == FILTER_ALL and not searching:
            list_id = self.selected_list_id
        tasks = filters.filter_tasks(
            self.all_tasks, self.date_filter, self.today(), list_id=list_id
        )
        return filters.search_tasks(tasks, self.search_query) if searching else tasks

    def count_by_filter(self) -> dict[str, int]:
        return filters.count_by_filter(self.all_tasks, self.today())
