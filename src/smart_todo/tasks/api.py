"""Tasks backend that goes through the Lambda proxy.

Every call is an authenticated request to ``{api_gateway_url}/api/tasks``
followed by the regular Google Tasks path; the proxy forwards it to
tasks.googleapis.com and adds the ``starred`` flag on task listings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from smart_todo.config import get_settings
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
    encode_task_list_id,
    format_due,
    set_starred_status,
    task_from_api,
    task_list_from_api,
)

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    return quote(str(value), safe="@")


class ProxyTasksClient(BaseTasksBackend):
    """Tasks backend calling the smart-todo proxy over HTTP.

    Example:
        >>> auth = AuthService()
        >>> client = ProxyTasksClient(token_provider=auth.get_access_token)
        >>> lists = client.list_task_lists()
    """

    backend_name = "proxy"

    def __init__(
        self,
        token_provider: Callable[[], str | None],
        base_url: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the proxy client.

        Args:
            token_provider: Returns the current Google access token or None.
            base_url: Proxy base including ``/api/tasks``. Defaults to settings.
            client: Pre-built httpx client (tests pass one with a MockTransport).
            timeout: Request timeout in seconds.
        """
        self.token_provider = token_provider
        self.base_url = (base_url or get_settings().api_base_url).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def _get_headers(self) -> dict[str, str]:
        token = self.token_provider()
        if not token:
            raise AuthenticationRequired()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated request through the proxy.

        Raises:
            AuthenticationRequired: If no access token is available.
            TasksApiError: If the proxy or Google returns an error.
        """
        headers = self._get_headers()
        url = f"{self.base_url}{path}"
        body = json if method in ("POST", "PUT", "PATCH") else None

        logger.debug("Sending %s request to: %s", method, url)
        try:
            response = self._client.request(method, url, headers=headers, json=body, params=params)
        except httpx.HTTPError as e:
            raise TasksApiError(f"Request failed: {e}") from e

        content_type = response.headers.get("content-type", "")

        if response.status_code >= 400:
            message = f"API error: {response.status_code}"
            payload: Any = None
            if "application/json" in content_type:
                try:
                    payload = response.json()
                except ValueError:
                    payload = None
                error = payload.get("error") if isinstance(payload, dict) else None
                if isinstance(error, dict) and error.get("message"):
                    message = error["message"]
                elif isinstance(error, str):
                    message = error
            else:
                message = f"API error: {response.status_code} - {response.text}"

            if response.status_code == 401:
                raise TokenExpiredError(message, response.status_code, payload)
            if response.status_code == 403 and "insufficient" in message.lower():
                raise InsufficientScopeError(message, response.status_code, payload)
            if response.status_code == 404:
                raise TaskNotFoundError(message)
            raise TasksApiError(message, response.status_code, payload)

        if not response.content:
            return {}
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError as e:
                raise TasksApiError(f"JSON parse error: {e}") from e

        logger.debug("Non-JSON response received: %s", response.text)
        return {"text": response.text}

    # =========================================================================
    # Task Lists
    # =========================================================================

    def list_task_lists(self) -> list[TaskList]:
        data = self._request("GET", "/tasks/v1/users/@me/lists", params={"maxResults": 100})
        return [task_list_from_api(item) for item in data.get("items", [])]

    def get_task_list(self, list_id: str) -> TaskList:
        data = self._request("GET", f"/tasks/v1/users/@me/lists/{encode_task_list_id(list_id)}")
        return task_list_from_api(data)

    def create_task_list(self, title: str, color: str | None = None) -> TaskList:
        data = self._request("POST", "/tasks/v1/users/@me/lists", json={"title": title})
        task_list = task_list_from_api(data)
        if color:
            task_list.color = color
        return task_list

    def update_task_list(self, list_id: str, updates: dict[str, Any]) -> TaskList:
        encoded = encode_task_list_id(list_id)
        body = {"id": list_id}
        if updates.get("title"):
            body["title"] = updates["title"]
        data = self._request("PUT", f"/tasks/v1/users/@me/lists/{encoded}", json=body)
        task_list = task_list_from_api(data)
        if updates.get("color"):
            task_list.color = updates["color"]
        return task_list

    def delete_task_list(self, list_id: str) -> None:
        self._request("DELETE", f"/tasks/v1/users/@me/lists/{encode_task_list_id(list_id)}")

    # =========================================================================
    # Tasks
    # =========================================================================

    def list_tasks(self, list_id: str) -> list[Task]:
        params = {"showCompleted": "true", "showHidden": "false", "maxResults": 100}
        data = self._request("GET", f"/tasks/v1/lists/{_seg(list_id)}/tasks", params=params)
        return [task_from_api(item, list_id=list_id) for item in data.get("items", [])]

    def get_task(self, list_id: str, task_id: str) -> Task:
        data = self._request("GET", f"/tasks/v1/lists/{_seg(list_id)}/tasks/{_seg(task_id)}")
        return task_from_api(data, list_id=list_id)

    def create_task(self, list_id: str, task: dict[str, Any]) -> Task:
        body: dict[str, Any] = {
            "title": task.get("title", ""),
            "notes": task.get("notes") or "",
            "status": task.get("status") or STATUS_NEEDS_ACTION,
        }
        due = format_due(task.get("due"))
        if due:
            body["due"] = due
        body = set_starred_status(body, bool(task.get("starred")))
        body["starred"] = bool(task.get("starred"))

        data = self._request("POST", f"/tasks/v1/lists/{_seg(list_id)}/tasks", json=body)
        return task_from_api(data, list_id=list_id)

    def update_task(self, list_id: str, task_id: str, updates: dict[str, Any]) -> Task:
        path = f"/tasks/v1/lists/{_seg(list_id)}/tasks/{_seg(task_id)}"
        current = self._request("GET", path)
        body = apply_task_updates(current, updates)
        if "starred" in updates:
            # The proxy mirrors this key into its starred side table
            body["starred"] = bool(updates["starred"])
        data = self._request("PUT", path, json=body)
        return task_from_api(data, list_id=list_id)

    def delete_task(self, list_id: str, task_id: str) -> None:
        self._request("DELETE", f"/tasks/v1/lists/{_seg(list_id)}/tasks/{_seg(task_id)}")

    def move_task(
        self,
        list_id: str,
        task_id: str,
        previous: str | None = None,
        destination_list_id: str | None = None,
    ) -> Task:
        params: dict[str, Any] = {}
        if previous:
            params["previous"] = previous
        if destination_list_id and destination_list_id != list_id:
            params["destinationTasklist"] = destination_list_id
        data = self._request(
            "POST",
            f"/tasks/v1/lists/{_seg(list_id)}/tasks/{_seg(task_id)}/move",
            params=params,
        )
        return task_from_api(data, list_id=destination_list_id or list_id)

    # =========================================================================
    # Starred side table
    # =========================================================================

    def get_starred_tasks(self) -> list[dict[str, Any]]:
        """Return the caller's starred records kept by the proxy."""
        return self._request("GET", "/starred").get("items", [])

    def set_task_star(self, task_id: str, starred: bool, list_id: str | None = None) -> dict:
        """Write the starred flag for one task into the proxy's side table."""
        return self._request(
            "PUT",
            f"/{_seg(task_id)}/star",
            json={"starred": starred, "listId": list_id},
        )

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
