"""Task and task list models plus the Google Tasks wire codec."""

from __future__ import annotations

import contextlib
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from urllib.parse import quote

from smart_todo.tasks.exceptions import InvalidTaskListIdError

logger = logging.getLogger(__name__)

STATUS_NEEDS_ACTION = "needsAction"
STATUS_COMPLETED = "completed"

PRIORITY_HIGH = "high"
PRIORITY_NORMAL = "normal"

TEMP_LIST_PREFIX = "temp-list-"
TEMP_TASK_PREFIX = "temp-task-"

DEFAULT_LIST_COLOR = "blue"


@dataclass
class TaskList:
    """Represents a task list."""

    id: str
    title: str
    color: str = DEFAULT_LIST_COLOR  # client-side only
    updated: datetime | None = None
    created: datetime | None = None

    @property
    def is_temporary(self) -> bool:
        """Check if the list has not been persisted remotely yet."""
        return self.id.startswith(TEMP_LIST_PREFIX)


@dataclass
class Task:
    """Represents a task owned by exactly one list."""

    id: str
    title: str
    status: str = STATUS_NEEDS_ACTION  # "needsAction" or "completed"
    notes: str | None = None
    due: date | None = None
    starred: bool = False
    list_id: str | None = None
    position: str | None = None
    parent: str | None = None
    completed: datetime | None = None
    updated: datetime | None = None

    @property
    def is_completed(self) -> bool:
        """Check if task is completed."""
        return self.status == STATUS_COMPLETED

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_TASK_PREFIX)

    def to_api_body(self) -> dict[str, Any]:
        """Serialize to a Google Tasks request body."""
        body: dict[str, Any] = {
            "title": self.title,
            "notes": self.notes or "",
            "status": self.status,
        }
        if self.due:
            body["due"] = format_due(self.due)
        return set_starred_status(body, self.starred)


def make_temp_id(prefix: str) -> str:
    """Create a client-side placeholder id such as ``temp-list-1718000000000-1a2b``."""
    millis = int(datetime.now().timestamp() * 1000)
    return f"{prefix}{millis}-{uuid.uuid4().hex[:4]}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp, returning None when absent or malformed."""
    if not value:
        return None
    with contextlib.suppress(ValueError, AttributeError):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return None


def parse_due(value: str | date | None) -> date | None:
    """Parse a due value into a calendar date.

    Google Tasks stores only the date part of ``due`` (time is always
    midnight UTC), so the time component is dropped.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    with contextlib.suppress(ValueError, AttributeError):
        return date.fromisoformat(value.split("T")[0])
    logger.warning("Ignoring unparseable due date: %r", value)
    return None


def format_due(value: str | date | None) -> str | None:
    """Format a due date as the RFC 3339 string Google Tasks expects."""
    due = parse_due(value)
    if due is None:
        return None
    return f"{due.isoformat()}T00:00:00.000Z"


def extract_starred_status(data: dict[str, Any]) -> bool:
    """Read the starred flag from an API payload.

    An explicit ``starred`` key wins; otherwise ``priority == "high"``.
    """
    if data.get("starred") is not None:
        return bool(data["starred"])
    if data.get("priority") is not None:
        return data["priority"] == PRIORITY_HIGH
    return False


def set_starred_status(data: dict[str, Any], starred: bool) -> dict[str, Any]:
    """Return a copy of ``data`` with the starred flag encoded as ``priority``."""
    updated = dict(data)
    updated["priority"] = PRIORITY_HIGH if starred else PRIORITY_NORMAL
    return updated


def validate_task_list_id(list_id: Any) -> str:
    """Validate a task list id and return it stripped.

    Raises:
        InvalidTaskListIdError: If the id is missing, blank or temporary.
    """
    if list_id is None:
        raise InvalidTaskListIdError("Missing task list ID")

    value = str(list_id).strip()
    if not value:
        raise InvalidTaskListIdError("Missing task list ID")
    if value.startswith(TEMP_LIST_PREFIX):
        raise InvalidTaskListIdError("Cannot update task list with temporary ID")
    return value


def encode_task_list_id(list_id: Any) -> str:
    """Validate and URL-encode a task list id for use in a path."""
    return quote(validate_task_list_id(list_id), safe="")


def apply_task_updates(current: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Merge a partial update into a full Google Tasks resource.

    Only keys present in ``updates`` are touched. ``due=None`` clears the due
    date and reopening a task clears ``completed``.
    """
    body = dict(current)
    body.pop("starred", None)

    if "title" in updates:
        body["title"] = updates["title"]
    if "notes" in updates:
        body["notes"] = updates["notes"] or ""
    if "due" in updates:
        body["due"] = format_due(updates["due"])
    if "status" in updates:
        body["status"] = updates["status"]
        if updates["status"] == STATUS_NEEDS_ACTION:
            body["completed"] = None
    if "completed" in updates and updates.get("status") != STATUS_NEEDS_ACTION:
        completed = updates["completed"]
        body["completed"] = completed.isoformat() if isinstance(completed, datetime) else completed
    if "starred" in updates:
        body = set_starred_status(body, bool(updates["starred"]))

    return body


def task_from_api(data: dict[str, Any], list_id: str | None = None) -> Task:
    """Parse a task from an API response."""
    return Task(
        id=data["id"],
        title=data.get("title") or "",
        status=data.get("status", STATUS_NEEDS_ACTION),
        notes=data.get("notes"),
        due=parse_due(data.get("due")),
        starred=extract_starred_status(data),
        list_id=list_id or data.get("listId"),
        position=data.get("position"),
        parent=data.get("parent"),
        completed=parse_timestamp(data.get("completed")),
        updated=parse_timestamp(data.get("updated")),
    )


def task_list_from_api(data: dict[str, Any]) -> TaskList:
    """Parse a task list from an API response."""
    return TaskList(
        id=data["id"],
        title=data.get("title", ""),
        color=data.get("color") or DEFAULT_LIST_COLOR,
        updated=parse_timestamp(data.get("updated")),
    )
