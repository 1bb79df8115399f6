"""DynamoDB storage: the task tables and the starred side table."""

from smart_todo.dynamodb.exceptions import DynamoDbError
from smart_todo.dynamodb.repository import DynamoTasksRepository, starred_due_key
from smart_todo.dynamodb.starred import StarredTasksTable

__all__ = [
    "DynamoTasksRepository",
    "StarredTasksTable",
    "DynamoDbError",
    "starred_due_key",
]
