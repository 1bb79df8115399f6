"""Google Tasks API backend using googleapiclient."""

from __future__ import annotations

import logging
from typing import Any

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from smart_todo.google import GoogleOAuth
from smart_todo.google.exceptions import GoogleAuthError
from smart_todo.tasks.base import BaseTasksBackend
from smart_todo.tasks.exceptions import (
    AuthenticationRequired,
    InsufficientScopeError,
    TaskNotFoundError,
    TasksApiError,
    TokenExpiredError,
)
from smart_todo.tasks.models import (
    STATUS_NEEDS_ACTION,
    Task,
    TaskList,
    apply_task_updates,
    format_due,
    set_starred_status,
    task_from_api,
    task_list_from_api,
    validate_task_list_id,
)

logger = logging.getLogger(__name__)


def _api_error(error: HttpError) -> TasksApiError:
    """Translate a googleapiclient HttpError into a TasksApiError."""
    status = getattr(error.resp, "status", None)
    status = int(status) if status is not None else None
    reason = error.reason if hasattr(error, "reason") else str(error)
    message = f"Tasks API error: {status} - {reason}"

    if status == 401:
        return TokenExpiredError(message, status_code=status)
    if status == 403 and "insufficient" in str(reason).lower():
        return InsufficientScopeError(message, status_code=status)
    if status == 404:
        return TaskNotFoundError(message)
    return TasksApiError(message, status_code=status)


class TasksClient(BaseTasksBackend):
    """Google Tasks API client with OAuth authentication.

    Usage:
        client = TasksClient()

        lists = client.list_task_lists()
        tasks = client.list_tasks(lists[0].id)
        task = client.create_task(lists[0].id, {"title": "Review PR", "starred": True})
        client.update_task(lists[0].id, task.id, {"status": "completed"})

    Note:
        Requires OAuth authorization. Run `smart-todo google login` to authorize.
    """

    backend_name = "google"

    def __init__(
        self,
        scopes: list[str] | None = None,
        auth: GoogleOAuth | None = None,
        service: Any = None,
        max_results: int = 100,
    ) -> None:
        """Initialize Tasks client.

        Args:
            scopes: OAuth scopes. Defaults to GoogleOAuth defaults.
            auth: Pre-built GoogleOAuth instance.
            service: Pre-built Tasks API service (skips OAuth entirely).
            max_results: Page size for list calls.
        """
        self._scopes = scopes
        self._auth = auth
        self._service = service
        self.max_results = max_results

    def _get_service(self) -> Any:
        """Get or create Tasks API service.

        Raises:
            AuthenticationRequired: If the user has to (re)authorize.
        """
        if self._service is None:
            try:
                if self._auth is None:
                    self._auth = GoogleOAuth(scopes=self._scopes)
                if not self._auth.is_authorized():
                    raise AuthenticationRequired(
                        "Tasks API requires OAuth authorization. "
                        "Run 'smart-todo google login' to authorize.",
                        authorization_url=self._auth.get_authorization_url(),
                    )
                self._service = self._auth.build_service("tasks", "v1")
            except GoogleAuthError as e:
                logger.warning("Google authorization failed: %s", e)
                raise AuthenticationRequired(
                    f"{e}. Run 'smart-todo google login' to sign in again."
                ) from e
        return self._service

    def _execute(self, request: Any) -> dict[str, Any]:
        try:
            return request.execute() or {}
        except HttpError as e:
            raise _api_error(e) from e
        except RefreshError as e:
            raise TokenExpiredError(f"Failed to refresh access token: {e}") from e

    def _paginate(self, method: Any, **kwargs) -> list[dict[str, Any]]:
        """Collect every page of a list call."""
        items: list[dict[str, Any]] = []
        page_token = None
        while True:
            if page_token:
                kwargs["pageToken"] = page_token
            result = self._execute(method(**kwargs))
            items.extend(result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                return items

    # =========================================================================
    # Task Lists
    # =========================================================================

    def list_task_lists(self) -> list[TaskList]:
        service = self._get_service()
        items = self._paginate(service.tasklists().list, maxResults=self.max_results)
        return [task_list_from_api(item) for item in items]

    def get_task_list(self, list_id: str) -> TaskList:
        service = self._get_service()
        list_id = validate_task_list_id(list_id)
        return task_list_from_api(self._execute(service.tasklists().get(tasklist=list_id)))

    def create_task_list(self, title: str, color: str | None = None) -> TaskList:
        service = self._get_service()
        result = self._execute(service.tasklists().insert(body={"title": title}))
        task_list = task_list_from_api(result)
        if color:
            task_list.color = color
        return task_list

    def update_task_list(self, list_id: str, updates: dict[str, Any]) -> TaskList:
        service = self._get_service()
        list_id = validate_task_list_id(list_id)
        body = {"id": list_id}
        if updates.get("title"):
            body["title"] = updates["title"]
        result = self._execute(service.tasklists().patch(tasklist=list_id, body=body))
        task_list = task_list_from_api(result)
        if updates.get("color"):
            task_list.color = updates["color"]
        return task_list

    def delete_task_list(self, list_id: str) -> None:
        service = self._get_service()
        list_id = validate_task_list_id(list_id)
        self._execute(service.tasklists().delete(tasklist=list_id))

    # =========================================================================
    # Tasks
    # =========================================================================

    def list_tasks(
        self,
        list_id: str,
        show_completed: bool = True,
        show_hidden: bool = False,
    ) -> list[Task]:
        service = self._get_service()
        items = self._paginate(
            service.tasks().list,
            tasklist=list_id,
            showCompleted=show_completed,
            showHidden=show_hidden,
            maxResults=self.max_results,
        )
        return [task_from_api(item, list_id=list_id) for item in items]

    def get_task(self, list_id: str, task_id: str) -> Task:
        service = self._get_service()
        result = self._execute(service.tasks().get(tasklist=list_id, task=task_id))
        return task_from_api(result, list_id=list_id)

    def create_task(self, list_id: str, task: dict[str, Any]) -> Task:
        service = self._get_service()

        body: dict[str, Any] = {
            "title": task.get("title", ""),
            "notes": task.get("notes") or "",
            "status": task.get("status") or STATUS_NEEDS_ACTION,
        }
        due = format_due(task.get("due"))
        if due:
            body["due"] = due
        body = set_starred_status(body, bool(task.get("starred")))

        kwargs: dict[str, Any] = {"tasklist": list_id, "body": body}
        if task.get("parent"):
            kwargs["parent"] = task["parent"]

        result = self._execute(service.tasks().insert(**kwargs))
        return task_from_api(result, list_id=list_id)

    def update_task(self, list_id: str, task_id: str, updates: dict[str, Any]) -> Task:
        service = self._get_service()

        current = self._execute(service.tasks().get(tasklist=list_id, task=task_id))
        body = apply_task_updates(current, updates)

        result = self._execute(service.tasks().update(tasklist=list_id, task=task_id, body=body))
        return task_from_api(result, list_id=list_id)

    def delete_task(self, list_id: str, task_id: str) -> None:
        service = self._get_service()
        self._execute(service.tasks().delete(tasklist=list_id, task=task_id))

    def move_task(
        self,
        list_id: str,
        task_id: str,
        previous: str | None = None,
        destination_list_id: str | None = None,
    ) -> Task:
        service = self._get_service()

        kwargs: dict[str, Any] = {"tasklist": list_id, "task": task_id}
        if previous:
            kwargs["previous"] = previous
        if destination_list_id and destination_list_id != list_id:
            kwargs["destinationTasklist"] = destination_list_id

        result = self._execute(service.tasks().move(**kwargs))
        return task_from_api(result, list_id=destination_list_id or list_id)
