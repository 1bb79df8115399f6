"""DynamoDB storage exceptions."""

from smart_todo.tasks.exceptions import TasksError


class DynamoDbError(TasksError):
    """Raised when a DynamoDB call fails."""

    def __init__(self, message: str, table_name: str | None = None):
        self.table_name = table_name
        super().__init__(message)
