"""DynamoDB task storage (SmartTodo-TaskLists / SmartTodo-Tasks).

SmartTodo-TaskLists: PK ``userId``, SK ``listId``.
SmartTodo-Tasks:     PK ``userId``, SK ``taskId``, with GSIs
    UserListIndex     on ``userListId`` = "{userId}#{listId}"
    StarredTasksIndex on (``userId``, ``starredDue`` = "{starred}#{due}")
    DueDateIndex      on (``userId``, ``due``)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from smart_todo.config import get_settings
from smart_todo.dynamodb.exceptions import DynamoDbError
from smart_todo.dynamodb.starred import now_iso, query_all
from smart_todo.tasks.base import BaseTasksBackend
from smart_todo.tasks.exceptions import TaskNotFoundError
from smart_todo.tasks.models import (
    DEFAULT_LIST_COLOR,
    STATUS_COMPLETED,
    STATUS_NEEDS_ACTION,
    Task,
    TaskList,
    format_due,
    parse_due,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

USER_LIST_INDEX = "UserListIndex"
STARRED_INDEX = "StarredTasksIndex"
DUE_DATE_INDEX = "DueDateIndex"

# Sort key used in starredDue for tasks without a due date
NO_DUE_SENTINEL = "9999-12-31T23:59:59.999Z"

# Positions are fixed-width digit strings, so string order is numeric order
POSITION_WIDTH = 20
POSITION_LIMIT = 10**POSITION_WIDTH
POSITION_STEP = 2**32



def _new_id(prefix: str) -> str:
    millis = int(datetime.now().timestamp() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:4]}"


def starred_due_key(starred: bool, due: str | None) -> str:
    """Build the StarredTasksIndex sort key."""
    return f"{'true' if starred else 'false'}#{due or NO_DUE_SENTINEL}"


def format_position(value: int) -> str:
    return str(value).zfill(POSITION_WIDTH)


def position_value(position: str | None) -> int | None:
    return int(position) if position and position.isdigit() else None


def sort_by_position(tasks: list[Task]) -> list[Task]:
    """Positioned tasks in position order, then unpositioned ones as given."""

    def key(task: Task) -> tuple[bool, int]:
        value = position_value(task.position)
        return value is None, value or 0

    return sorted(tasks, key=key)



class DynamoTasksRepository(BaseTasksBackend):
    """Task lists and tasks of one user stored in DynamoDB.

    Example:
        >>> repo = DynamoTasksRepository(user_id="user123")
        >>> work = repo.create_task_list("Work", color="blue")
        >>> repo.create_task(work.id, {"title": "Prepare slides", "starred": True})
    """

    backend_name = "dynamodb"

    def __init__(
        self,
        user_id: str,
        lists_table: Any = None,
        tasks_table: Any = None,
        region: str | None = None,
    ):
        settings = get_settings()
        self.user_id = user_id
        if lists_table is None or tasks_table is None:
            resource = boto3.resource("dynamodb", region_name=region or settings.aws_region)
            lists_table = lists_table or resource.Table(settings.task_lists_table)
            tasks_table = tasks_table or resource.Table(settings.tasks_table)
        self.lists_table = lists_table
        self.tasks_table = tasks_table

    def _fail(self, action: str, error: Exception) -> DynamoDbError:
        logger.error("Error %s: %s", action, error)
        return DynamoDbError(f"Error {action}: {error}")

    @property
    def _user_key(self):
        return Key("userId").eq(self.user_id)

    def _user_list_id(self, list_id: str) -> str:
        return f"{self.user_id}#{list_id}"

    def _update(
        self,
        table: Any,
        key: dict[str, Any],
        values: dict[str, Any],
    ) -> dict[str, Any]:
        """Run a SET update for ``values`` plus ``updatedAt`` and return the new item."""
        values = {**values, "updatedAt": now_iso()}
        names = {f"#{name}": name for name in values}
        expression = "SET " + ", ".join(f"#{name} = :{name}" for name in values)
        response = table.update_item(
            Key=key,
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues={f":{name}": value for name, value in values.items()},
            ReturnValues="ALL_NEW",
        )
        return response.get("Attributes", {})

    @staticmethod
    def _to_task_list(item: dict[str, Any]) -> TaskList:
        return TaskList(
            id=item["listId"],
            title=item.get("title", ""),
            color=item.get("color") or DEFAULT_LIST_COLOR,
            updated=parse_timestamp(item.get("updatedAt")),
            created=parse_timestamp(item.get("createdAt")),
        )

    @staticmethod
    def _to_task(item: dict[str, Any]) -> Task:
        return Task(
            id=item["taskId"],
            title=item.get("title", ""),
            status=item.get("status", STATUS_NEEDS_ACTION),
            notes=item.get("notes") or None,
            due=parse_due(item.get("due")),
            starred=bool(item.get("starred")),
            list_id=item.get("listId"),
            position=item.get("position"),
            updated=parse_timestamp(item.get("updatedAt")),
        )

    # =========================================================================
    # Task Lists
    # =========================================================================

    def list_task_lists(self) -> list[TaskList]:
        try:
            items = query_all(self.lists_table, KeyConditionExpression=self._user_key)
        except (ClientError, BotoCoreError) as e:
            raise self._fail("fetching task lists", e) from e
        return [self._to_task_list(item) for item in items]

    def get_task_list(self, list_id: str) -> TaskList:
        try:
            response = self.lists_table.get_item(Key={"userId": self.user_id, "listId": list_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"fetching task list {list_id}", e) from e
        if "Item" not in response:
            raise TaskNotFoundError(f"Task list {list_id} not found")
        return self._to_task_list(response["Item"])

    def create_task_list(self, title: str, color: str | None = None) -> TaskList:
        timestamp = now_iso()
        item = {
            "userId": self.user_id,
            "listId": _new_id("list"),
            "title": title,
            "color": color or DEFAULT_LIST_COLOR,
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        try:
            self.lists_table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            raise self._fail("creating task list", e) from e
        return self._to_task_list(item)

    def update_task_list(self, list_id: str, updates: dict[str, Any]) -> TaskList:
        values = {name: updates[name] for name in ("title", "color") if updates.get(name)}
        try:
            item = self._update(
                self.lists_table, {"userId": self.user_id, "listId": list_id}, values
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"updating task list {list_id}", e) from e
        return self._to_task_list(item)

    def delete_task_list(self, list_id: str) -> None:
        for task in self.list_tasks(list_id):
            self.delete_task(list_id, task.id)
        try:
            self.lists_table.delete_item(Key={"userId": self.user_id, "listId": list_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"deleting task list {list_id}", e) from e

    # =========================================================================
    # Tasks
    # =========================================================================

    def get_all_tasks(self) -> list[Task]:
        try:
            items = query_all(self.tasks_table, KeyConditionExpression=self._user_key)
        except (ClientError, BotoCoreError) as e:
            raise self._fail("fetching tasks", e) from e
        return [self._to_task(item) for item in items]

    def list_tasks(self, list_id: str) -> list[Task]:
        try:
            items = query_all(
                self.tasks_table,
                IndexName=USER_LIST_INDEX,
                KeyConditionExpression=Key("userListId").eq(self._user_list_id(list_id)),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"fetching tasks for list {list_id}", e) from e
        return sort_by_position([self._to_task(item) for item in items])

    def get_starred_tasks(self) -> list[Task]:
        try:
            items = query_all(
                self.tasks_table,
                IndexName=STARRED_INDEX,
                KeyConditionExpression=self._user_key & Key("starredDue").begins_with("true#"),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("fetching starred tasks", e) from e
        return [self._to_task(item) for item in items]

    def get_tasks_by_due_date(self) -> list[Task]:
        """Return dated tasks, earliest due date first."""
        try:
            items = query_all(
                self.tasks_table,
                IndexName=DUE_DATE_INDEX,
                KeyConditionExpression=self._user_key,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("fetching tasks by due date", e) from e
        tasks = [self._to_task(item) for item in items]
        return sorted((task for task in tasks if task.due), key=lambda task: task.due)

    def _get_task_item(self, task_id: str) -> dict[str, Any]:
        try:
            response = self.tasks_table.get_item(Key={"userId": self.user_id, "taskId": task_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"fetching task {task_id}", e) from e
        if "Item" not in response:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return response["Item"]

    def get_task(self, list_id: str, task_id: str) -> Task:
        return self._to_task(self._get_task_item(task_id))

    def create_task(self, list_id: str, task: dict[str, Any]) -> Task:
        timestamp = now_iso()
        due = format_due(task.get("due"))
        starred = bool(task.get("starred"))
        item = {
            "userId": self.user_id,
            "taskId": _new_id("task"),
            "title": task.get("title", ""),
            "notes": task.get("notes") or "",
            "due": due,
            "status": task.get("status") or STATUS_NEEDS_ACTION,
            "starred": starred,
            "listId": list_id,
            "userListId": self._user_list_id(list_id),
            "starredDue": starred_due_key(starred, due),
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        try:
            self.tasks_table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            raise self._fail("creating task", e) from e
        return self._to_task(item)

    def update_task(self, list_id: str, task_id: str, updates: dict[str, Any]) -> Task:
        current = self._get_task_item(task_id)

        values: dict[str, Any] = {}
        if "title" in updates:
            values["title"] = updates["title"]
        if "notes" in updates:
            values["notes"] = updates["notes"] or ""
        if "due" in updates:
            values["due"] = format_due(updates["due"])
        if "status" in updates:
            values["status"] = updates["status"]
        if "starred" in updates:
            values["starred"] = bool(updates["starred"])
        if "starred" in values or "due" in values:
            values["starredDue"] = starred_due_key(
                values.get("starred", bool(current.get("starred"))),
                values.get("due", current.get("due")),
            )

        try:
            item = self._update(
                self.tasks_table, {"userId": self.user_id, "taskId": task_id}, values
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"updating task {task_id}", e) from e
        return self._to_task(item)

    def move_task_to_list(self, task_id: str, new_list_id: str) -> Task:
        self._get_task_item(task_id)
        try:
            item = self._update(
                self.tasks_table,
                {"userId": self.user_id, "taskId": task_id},
                {"listId": new_list_id, "userListId": self._user_list_id(new_list_id)},
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"moving task {task_id} to list {new_list_id}", e) from e
        return self._to_task(item)

    def move_task(
        self,
        list_id: str,
        task_id: str,
        previous: str | None = None,
        destination_list_id: str | None = None,
    ) -> Task:
        if destination_list_id and destination_list_id != list_id:
            task = self.move_task_to_list(task_id, destination_list_id)
            if previous is None:
                return task
            list_id = destination_list_id
        else:
            self._get_task_item(task_id)
        return self._place_after(list_id, task_id, previous)

    def _place_after(self, list_id: str, task_id: str, previous: str | None) -> Task:
        """Give a task a position right after ``previous`` (None: top of the list)."""
        others = [task for task in self.list_tasks(list_id) if task.id != task_id]
        index = 0
        if previous:
            index = next((i + 1 for i, task in enumerate(others) if task.id == previous), -1)
            if index < 0:
                raise TaskNotFoundError(f"Task {previous} not found in list {list_id}")

        low = position_value(others[index - 1].position) if index > 0 else 0
        high = position_value(others[index].position) if index < len(others) else POSITION_LIMIT
        if low is not None and high is not None and high - low >= 2:
            return self._set_position(task_id, format_position((low + high) // 2))

        # No free position between the neighbours: renumber the whole list
        order = [task.id for task in others]
        order.insert(index, task_id)
        placed = {
            current_id: self._set_position(current_id, format_position(n * POSITION_STEP))
            for n, current_id in enumerate(order, start=1)
        }
        return placed[task_id]

    def _set_position(self, task_id: str, position: str) -> Task:
        try:
            item = self._update(
                self.tasks_table,
                {"userId": self.user_id, "taskId": task_id},
                {"position": position},
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"reordering task {task_id}", e) from e
        return self._to_task(item)

    def delete_task(self, list_id: str, task_id: str) -> None:
        try:
            self.tasks_table.delete_item(Key={"userId": self.user_id, "taskId": task_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"deleting task {task_id}", e) from e

    def toggle_task_completion(self, task_id: str, completed: bool) -> Task:
        status = STATUS_COMPLETED if completed else STATUS_NEEDS_ACTION
        return self.update_task("", task_id, {"status": status})

    def toggle_task_star(self, task_id: str) -> Task:
        current = self._get_task_item(task_id)
        return self.update_task("", task_id, {"starred": not current.get("starred")})
