"""Background replay of local mutations against the task backend."""

from smart_todo.sync.queue import FetchResult, SyncFailure, SyncQueue, SyncQueueEntry

__all__ = ["SyncQueue", "SyncQueueEntry", "SyncFailure", "FetchResult"]
