"""Starred-task side table (SmartTodoStarredTasks).

Key schema: PK ``userId``, SK ``taskId``; GSI ``ListIdIndex`` on ``listId``.
A record's presence means the task is starred.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from smart_todo.config import get_settings
from smart_todo.dynamodb.exceptions import DynamoDbError

logger = logging.getLogger(__name__)

LIST_ID_INDEX = "ListIdIndex"


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def query_all(table: Any, **kwargs) -> list[dict[str, Any]]:
    """Run a query and follow LastEvaluatedKey until exhausted."""
    items: list[dict[str, Any]] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class StarredTasksTable:
    """Star flags kept outside Google Tasks, keyed by (userId, taskId)."""

    def __init__(
        self,
        table: Any = None,
        table_name: str | None = None,
        region: str | None = None,
    ):
        """Initialize the side table.

        Args:
            table: Pre-built boto3 Table (or a test double).
            table_name: Table name. Defaults to settings.starred_table.
            region: AWS region. Defaults to settings.aws_region.
        """
        settings = get_settings()
        self.table_name = table_name or settings.starred_table
        if table is None:
            table = boto3.resource("dynamodb", region_name=region or settings.aws_region).Table(
                self.table_name
            )
        self.table = table

    def _fail(self, action: str, error: Exception) -> DynamoDbError:
        logger.error("Error %s in %s: %s", action, self.table_name, error)
        return DynamoDbError(f"Error {action}: {error}", table_name=self.table_name)

    def get_starred_tasks(self, user_id: str) -> list[dict[str, Any]]:
        """Return every starred record of a user."""
        try:
            return query_all(self.table, KeyConditionExpression=Key("userId").eq(user_id))
        except (ClientError, BotoCoreError) as e:
            raise self._fail("fetching starred tasks", e) from e

    def get_starred_by_list(self, user_id: str, list_id: str) -> list[dict[str, Any]]:
        """Return a user's starred records for one list."""
        try:
            return query_all(
                self.table,
                IndexName=LIST_ID_INDEX,
                KeyConditionExpression=Key("listId").eq(list_id),
                FilterExpression=Attr("userId").eq(user_id),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"fetching starred tasks for list {list_id}", e) from e

    def starred_ids(self, user_id: str) -> set[str]:
        return {item["taskId"] for item in self.get_starred_tasks(user_id)}

    def is_starred(self, user_id: str, task_id: str) -> bool:
        try:
            response = self.table.get_item(Key={"userId": user_id, "taskId": task_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"reading star for task {task_id}", e) from e
        return "Item" in response

    def star(self, user_id: str, task_id: str, list_id: str | None = None) -> dict[str, Any]:
        item = {"userId": user_id, "taskId": task_id, "starredAt": now_iso()}
        if list_id:
            item["listId"] = list_id
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"starring task {task_id}", e) from e
        return item

    def unstar(self, user_id: str, task_id: str) -> None:
        try:
            self.table.delete_item(Key={"userId": user_id, "taskId": task_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"unstarring task {task_id}", e) from e

    def move(self, user_id: str, task_id: str, list_id: str) -> bool:
        """Point an existing star record at another list.

        Returns:
            True if the task was starred and its record was updated.
        """
        try:
            response = self.table.get_item(Key={"userId": user_id, "taskId": task_id})
            item = response.get("Item")
            if item is None:
                return False
            self.table.put_item(Item={**item, "listId": list_id})
        except (ClientError, BotoCoreError) as e:
            raise self._fail(f"moving star for task {task_id}", e) from e
        return True

    def set_starred(
        self,
        user_id: str,
        task_id: str,
        starred: bool,
        list_id: str | None = None,
    ) -> None:
        if starred:
            self.star(user_id, task_id, list_id)
        else:
            self.unstar(user_id, task_id)
