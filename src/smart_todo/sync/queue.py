"""Background sync queue between local state and the remote task backend.

Local mutations are queued with ``add_to_sync_queue`` and replayed in the
background: task lists first, then tasks, each bucket in the order
create, update, delete, reorder. A failed item is logged and skipped; the
caller never sees the outcome, though ``last_errors`` keeps a record.

Example:
    >>> queue = SyncQueue(backend)
    >>> queue.add_to_sync_queue("task", "create", {"list_id": "abc", "title": "Buy milk"})
    >>> queue.get_sync_status()["queue_length"]
    1
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from smart_todo.config import get_settings
from smart_todo.tasks.base import BaseTasksBackend
from smart_todo.tasks.exceptions import InvalidTaskListIdError
from smart_todo.tasks.models import (
    STATUS_NEEDS_ACTION,
    TEMP_LIST_PREFIX,
    Task,
    TaskList,
    validate_task_list_id,
)

logger = logging.getLogger(__name__)

TYPE_TASK_LIST = "taskList"
TYPE_TASK = "task"
TYPES = (TYPE_TASK_LIST, TYPE_TASK)

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_REORDER = "reorder"
ACTIONS = (ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE, ACTION_REORDER)

# Pending-change counter names per action
BUCKET_NAMES = {
    ACTION_CREATE: "created",
    ACTION_UPDATE: "updated",
    ACTION_DELETE: "deleted",
    ACTION_REORDER: "reordered",
}

TASK_UPDATE_FIELDS = ("title", "notes", "due", "starred", "status", "completed")

_INVALID_IDS = ("undefined", "null")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SyncQueueEntry:
    """One queued mutation."""

    type: str
    action: str
    data: Any
    timestamp: int = field(default_factory=_now_ms)


@dataclass
class SyncFailure:
    """A queued mutation the backend rejected."""

    type: str
    action: str
    data: Any
    error: Exception


@dataclass
class FetchResult:
    task_lists: list[TaskList]
    tasks: list[Task]


class SyncQueue:
    """Queue of local mutations replayed against a ``BaseTasksBackend``."""

    def __init__(self, backend: BaseTasksBackend, retry_delay: float | None = None):
        """Initialize the queue.

        Args:
            backend: Remote backend the mutations are replayed against.
            retry_delay: Seconds before draining leftovers. Defaults to settings.
        """
        self.backend = backend
        self.retry_delay = get_settings().sync_retry_delay if retry_delay is None else retry_delay
        self.queue: list[SyncQueueEntry] = []
        self.is_syncing = False
        self.last_sync_time: int | None = None
        self.last_errors: list[SyncFailure] = []
        self.list_id_map: dict[str, str] = {}
        self.pending_changes: dict[str, dict[str, list[SyncQueueEntry]]] = self._empty_buckets()
        self._list_id_listeners: list[Callable[[str, str], None]] = []
        self._data_listeners: list[Callable[[list[TaskList], list[Task]], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._retry_handle: asyncio.TimerHandle | None = None
        self._periodic_task: asyncio.Task | None = None

    @staticmethod
    def _empty_buckets() -> dict[str, dict[str, list[SyncQueueEntry]]]:
        return {type_: {action: [] for action in ACTIONS} for type_ in TYPES}

    # =========================================================================
    # Listeners
    # =========================================================================

    def on_list_id_mapped(self, callback: Callable[[str, str], None]) -> None:
        """Register ``callback(temp_id, real_id)`` for lists created from a temp id."""
        self._list_id_listeners.append(callback)

    def on_data_updated(self, callback: Callable[[list[TaskList], list[Task]], None]) -> None:
        """Register ``callback(task_lists, tasks)`` for ``fetch_latest_data`` results."""
        self._data_listeners.append(callback)

    def _emit(self, listeners: list[Callable], *args) -> None:
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Sync listener %r failed", listener)

    # =========================================================================
    # Queueing
    # =========================================================================

    def add_to_sync_queue(self, type_: str, action: str, data: Any) -> None:
        """Queue a mutation and kick off a sync on the running loop.

        Invalid payloads are logged and dropped.
        """
        logger.debug("Adding to sync queue: %s - %s %r", type_, action, data)

        if type_ not in TYPES or action not in ACTIONS:
            logger.error("Unknown sync operation: %s - %s", type_, action)
            return
        if not data:
            logger.error("Invalid data for sync queue: %s - %s %r", type_, action, data)
            return

        if type_ == TYPE_TASK_LIST and action == ACTION_UPDATE:
            list_id = data.get("id")
            if not list_id:
                logger.error("Missing task list ID for update: %r", data)
                return
            if not isinstance(list_id, str) or list_id in _INVALID_IDS:
                logger.error("Invalid task list ID format: %r", list_id)
                return
            if not data.get("title") and not data.get("color"):
                logger.error("Missing update properties for task list: %r", data)
                return

        self._enqueue(SyncQueueEntry(type_, action, data))
        self._schedule_sync()

    def _enqueue(self, entry: SyncQueueEntry) -> None:
        self.queue.append(entry)
        self.pending_changes[entry.type][entry.action].append(entry)

    def _schedule_sync(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; sync deferred until start_sync() is awaited")
            return
        task = loop.create_task(self.start_sync())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # =========================================================================
    # Draining
    # =========================================================================

    async def start_sync(self) -> None:
        """Replay every queued entry once; leftovers are retried after ``retry_delay``."""
        if self.is_syncing:
            logger.debug("Sync already in progress, queuing...")
            return

        self.is_syncing = True
        snapshot = list(self.queue)
        try:
            logger.info("Starting sync of %d queued changes", len(snapshot))
            await self._sync_task_lists(snapshot)
            await self._sync_tasks(snapshot)
            self.last_sync_time = _now_ms()
            logger.info("Sync completed")
        finally:
            self._remove(snapshot)
            self.is_syncing = False
            if self.queue:
                logger.info("%d items remaining in queue, continuing sync...", len(self.queue))
                loop = asyncio.get_running_loop()
                self._retry_handle = loop.call_later(self.retry_delay, self._schedule_sync)

    def _remove(self, snapshot: list[SyncQueueEntry]) -> None:
        done = {id(entry) for entry in snapshot}
        self.queue = [entry for entry in self.queue if id(entry) not in done]
        for buckets in self.pending_changes.values():
            for action, entries in buckets.items():
                buckets[action] = [entry for entry in entries if id(entry) not in done]

    @staticmethod
    def _select(snapshot: list[SyncQueueEntry], type_: str, action: str) -> list[SyncQueueEntry]:
        return [entry for entry in snapshot if entry.type == type_ and entry.action == action]

    def _fail(self, entry: SyncQueueEntry, error: Exception) -> None:
        logger.error("Error syncing %s %s: %s", entry.type, entry.action, error)
        self.last_errors.append(SyncFailure(entry.type, entry.action, entry.data, error))

    def _resolve_list_id(self, list_id: str | None) -> str | None:
        return self.list_id_map.get(list_id, list_id) if list_id else list_id

    async def _call(self, func: Callable, *args, **kwargs) -> Any:
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _sync_task_lists(self, snapshot: list[SyncQueueEntry]) -> None:
        for entry in self._select(snapshot, TYPE_TASK_LIST, ACTION_CREATE):
            try:
                await self._create_task_list(entry.data)
            except Exception as e:
                self._fail(entry, e)

        for entry in self._select(snapshot, TYPE_TASK_LIST, ACTION_UPDATE):
            data = dict(entry.data)
            data["id"] = self._resolve_list_id(data["id"])
            try:
                list_id = validate_task_list_id(data["id"])
                updates = {key: data[key] for key in ("title", "color") if data.get(key)}
                await self._call(self.backend.update_task_list, list_id, updates)
                logger.info("Task list updated successfully: %s", list_id)
            except InvalidTaskListIdError as e:
                self._fail(entry, e)
                if data["id"] and str(data["id"]).startswith(TEMP_LIST_PREFIX):
                    logger.info("Moving task list to creation queue: %s", data["id"])
                    self._enqueue(SyncQueueEntry(TYPE_TASK_LIST, ACTION_CREATE, data))
            except Exception as e:
                self._fail(entry, e)

        for entry in self._select(snapshot, TYPE_TASK_LIST, ACTION_DELETE):
            raw = entry.data.get("id") if isinstance(entry.data, dict) else entry.data
            try:
                if not raw or raw in _INVALID_IDS:
                    raise InvalidTaskListIdError(f"Invalid task list ID for deletion: {raw!r}")
                list_id = self._resolve_list_id(raw)
                await self._call(self.backend.delete_task_list, list_id)
                logger.info("Task list deleted successfully: %s", list_id)
            except Exception as e:
                self._fail(entry, e)

    async def _create_task_list(self, data: dict[str, Any]) -> None:
        temp_id = data.get("id")
        created = await self._call(self.backend.create_task_list, data["title"], data.get("color"))
        if temp_id and temp_id.startswith(TEMP_LIST_PREFIX):
            logger.info("Task list created with real ID: %s (was temp ID: %s)", created.id, temp_id)
            self.list_id_map[temp_id] = created.id
            self._emit(self._list_id_listeners, temp_id, created.id)

    async def _sync_tasks(self, snapshot: list[SyncQueueEntry]) -> None:
        for entry in self._select(snapshot, TYPE_TASK, ACTION_CREATE):
            data = entry.data
            try:
                body = {
                    "title": data.get("title", ""),
                    "notes": data.get("notes") or "",
                    "due": data.get("due"),
                    "starred": bool(data.get("starred")),
                    "status": data.get("status") or STATUS_NEEDS_ACTION,
                }
                await self._call(self.backend.create_task, self._task_list_id(data), body)
            except Exception as e:
                self._fail(entry, e)

        for entry in self._select(snapshot, TYPE_TASK, ACTION_UPDATE):
            data = entry.data
            try:
                updates = {key: data[key] for key in TASK_UPDATE_FIELDS if key in data}
                await self._call(
                    self.backend.update_task, self._task_list_id(data), data["id"], updates
                )
            except Exception as e:
                self._fail(entry, e)

        for entry in self._select(snapshot, TYPE_TASK, ACTION_DELETE):
            data = entry.data
            try:
                await self._call(self.backend.delete_task, self._task_list_id(data), data["id"])
            except Exception as e:
                self._fail(entry, e)

        for entry in self._select(snapshot, TYPE_TASK, ACTION_REORDER):
            data = entry.data
            try:
                destination = self._resolve_list_id(data.get("destination_list_id"))
                await self._call(
                    self.backend.move_task,
                    self._task_list_id(data),
                    data["id"],
                    previous=data.get("previous"),
                    destination_list_id=destination,
                )
            except Exception as e:
                self._fail(entry, e)

    def _task_list_id(self, data: dict[str, Any]) -> str:
        """Return the task's list id, re-targeted if its list was created this session."""
        return validate_task_list_id(self._resolve_list_id(data.get("list_id")))

    # =========================================================================
    # Status and reads
    # =========================================================================

    def get_sync_status(self) -> dict[str, Any]:
        """Return sync flags and per-type/action pending counters."""
        return {
            "is_syncing": self.is_syncing,
            "last_sync_time": self.last_sync_time,
            "queue_length": len(self.queue),
            "pending_changes": {
                "task_lists": self._counts(TYPE_TASK_LIST),
                "tasks": self._counts(TYPE_TASK),
            },
        }

    def _counts(self, type_: str) -> dict[str, int]:
        return {
            BUCKET_NAMES[action]: len(entries)
            for action, entries in self.pending_changes[type_].items()
        }

    async def _fetch_all(self) -> FetchResult:
        task_lists = await self._call(self.backend.list_task_lists)
        tasks: list[Task] = []
        for task_list in task_lists:
            list_tasks = await self._call(self.backend.list_tasks, task_list.id)
            tasks.extend(replace(task, list_id=task_list.id) for task in list_tasks)
        return FetchResult(task_lists=task_lists, tasks=tasks)

    async def initial_sync(self) -> FetchResult:
        """Load every list and its tasks at startup."""
        logger.info("Starting initial sync...")
        result = await self._fetch_all()
        self.last_sync_time = _now_ms()
        logger.info(
            "Initial sync completed: %d lists, %d tasks", len(result.task_lists), len(result.tasks)
        )
        return result

    async def fetch_latest_data(self) -> FetchResult:
        """Reload every list and its tasks and notify ``on_data_updated`` listeners."""
        logger.debug("Fetching latest data...")
        result = await self._fetch_all()
        self._emit(self._data_listeners, result.task_lists, result.tasks)
        return result

    def start_periodic_data_fetch(self, interval: float | None = None) -> None:
        """Run ``fetch_latest_data`` every ``interval`` seconds on the running loop."""
        interval = get_settings().fetch_interval if interval is None else interval
        self.stop_periodic_data_fetch()
        self._periodic_task = asyncio.get_running_loop().create_task(self._periodic(interval))
        logger.info("Periodic data fetch started with interval: %ss", interval)

    async def _periodic(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.fetch_latest_data()
            except Exception as e:
                logger.error("Periodic data fetch error: %s", e)

    def stop_periodic_data_fetch(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
            logger.info("Periodic data fetch stopped")
