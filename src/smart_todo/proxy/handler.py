"""AWS Lambda handler: annotate-and-forward proxy in front of Google Tasks.

Requests arrive from API Gateway as ``/api/tasks/<google tasks path>``. The
prefix is stripped and the call is forwarded to tasks.googleapis.com with the
caller's bearer token. Star flags live in the SmartTodoStarredTasks table and
are merged into task listings on the way back.

Two routes are answered locally:
    GET /api/tasks/starred            - the caller's starred records
    PUT /api/tasks/{taskId}/star      - set or clear a star
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from smart_todo.config import API_PREFIX, GOOGLE_TASKS_BASE_URL
from smart_todo.dynamodb.exceptions import DynamoDbError
from smart_todo.dynamodb.starred import StarredTasksTable

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, X-User-Id",
}

ANONYMOUS_USER = "anonymous"

LIST_TASKS_PATH = re.compile(r"^/tasks/v1/lists/([^/]+)/tasks/?$")
TASK_PATH = re.compile(r"^/tasks/v1/lists/([^/]+)/tasks/([^/]+)/?$")
MOVE_PATH = re.compile(r"^/tasks/v1/lists/([^/]+)/tasks/([^/]+)/move/?$")
STAR_PATH = re.compile(r"^/([^/]+)/star/?$")

_http_client: httpx.Client | None = None
_starred_table: StarredTasksTable | None = None


def get_http_client() -> httpx.Client:
    """Return the shared upstream client, created on first use."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.Client(timeout=30.0)
    return _http_client


def get_starred_table() -> StarredTasksTable:
    """Return the shared side table, created on first use."""
    global _starred_table
    if _starred_table is None:
        _starred_table = StarredTasksTable()
    return _starred_table


def _response(status_code: int, body: Any = None) -> dict[str, Any]:
    if body is None:
        payload = ""
    elif isinstance(body, str):
        payload = body
    else:
        payload = json.dumps(body)
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": payload,
    }


def _header(event: dict[str, Any], name: str) -> str | None:
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def _user_id(event: dict[str, Any]) -> str:
    user_id = _header(event, "X-User-Id")
    if user_id:
        return user_id
    claims = ((event.get("requestContext") or {}).get("authorizer") or {}).get("claims") or {}
    return claims.get("sub") or ANONYMOUS_USER


def _parse_body(event: dict[str, Any]) -> dict[str, Any] | None:
    raw = event.get("body")
    if not raw:
        return None
    return json.loads(raw)


def _strip_prefix(path: str) -> str:
    if path.startswith(API_PREFIX):
        path = path[len(API_PREFIX) :]
    return path or "/"


def _get_starred(user_id: str) -> dict[str, Any]:
    items = get_starred_table().get_starred_tasks(user_id)
    return _response(200, {"items": items})


def _put_star(user_id: str, task_id: str, body: dict[str, Any] | None) -> dict[str, Any]:
    body = body or {}
    if "starred" not in body:
        return _response(400, {"error": "starred is required"})
    starred = bool(body["starred"])
    get_starred_table().set_starred(user_id, task_id, starred, body.get("listId"))
    return _response(200, {"taskId": task_id, "starred": starred})


def _annotate_starred(data: dict[str, Any], user_id: str) -> None:
    try:
        starred_ids = get_starred_table().starred_ids(user_id)
    except DynamoDbError as e:
        logger.warning("Could not read starred tasks for user %s: %s", user_id, e)
        return
    for item in data.get("items", []):
        item["starred"] = item.get("id") in starred_ids


def _mirror_star(user_id: str, task_id: str, starred: bool, list_id: str) -> None:
    try:
        get_starred_table().set_starred(user_id, task_id, starred, list_id)
    except DynamoDbError as e:
        logger.error("Starred table update failed: %s", e)



def _forward(
    method: str,
    path: str,
    auth_header: str,
    params: dict[str, Any],
    body: dict[str, Any] | None,
) -> httpx.Response:
    url = f"{GOOGLE_TASKS_BASE_URL}{path}"
    logger.info("Making %s request to: %s", method, url)
    return get_http_client().request(
        method,
        url,
        headers={"Authorization": auth_header, "Content-Type": "application/json"},
        params=params,
        json=body,
    )


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Lambda entry point for API Gateway proxy events."""
    method = str(event.get("httpMethod") or "").upper()
    if method == "OPTIONS":
        return _response(200, {"message": "CORS preflight request successful"})

    auth_header = _header(event, "Authorization")
    if not auth_header:
        return _response(401, {"error": "Authorization header is required"})

    path = _strip_prefix(event.get("path") or "")
    user_id = _user_id(event)

    try:
        body = _parse_body(event)
    except ValueError:
        return _response(400, {"error": "Request body must be JSON"})

    try:
        if method == "GET" and path.rstrip("/") == "/starred":
            return _get_starred(user_id)
        star_match = STAR_PATH.match(path)
        if method == "PUT" and star_match:
            return _put_star(user_id, star_match.group(1), body)
    except DynamoDbError as e:
        logger.error("Starred table request failed: %s", e)
        return _response(500, {"error": "Internal Server Error"})

    starred = None
    if isinstance(body, dict) and "starred" in body:
        body = dict(body)
        starred = bool(body.pop("starred"))

    params = event.get("queryStringParameters") or {}
    try:
        upstream = _forward(method, path, auth_header, params, body)
    except httpx.HTTPError as e:
        logger.error("Error proxying request to Google Tasks API: %s", e)
        return _response(500, {"error": "Internal Server Error"})

    logger.info("Google Tasks API response status: %s", upstream.status_code)
    if upstream.status_code >= 400:
        return _response(upstream.status_code, upstream.text)

    task_match = TASK_PATH.match(path)
    if method == "DELETE" and task_match:
        try:
            get_starred_table().unstar(user_id, task_match.group(2))
        except DynamoDbError as e:
            logger.error("Starred table update failed: %s", e)

    move_match = MOVE_PATH.match(path)
    if method == "POST" and move_match and params.get("destinationTasklist"):
        try:
            get_starred_table().move(user_id, move_match.group(2), params["destinationTasklist"])
        except DynamoDbError as e:
            logger.error("Starred table update failed: %s", e)

    if not upstream.content:
        return _response(upstream.status_code)
    try:
        data = upstream.json()
    except ValueError:
        return _response(upstream.status_code, upstream.text)

    list_match = LIST_TASKS_PATH.match(path)
    if method == "GET" and list_match and isinstance(data, dict):
        _annotate_starred(data, user_id)
    elif method == "POST" and list_match and isinstance(data, dict) and data.get("id"):
        if starred is None:
            starred = isinstance(body, dict) and body.get("priority") == "high"
        if starred:
            _mirror_star(user_id, data["id"], True, list_match.group(1))
        data["starred"] = starred
    elif method in ("PUT", "PATCH") and task_match and starred is not None:
        list_id, task_id = task_match.groups()
        _mirror_star(user_id, task_id, starred, list_id)
        if isinstance(data, dict):
            data["starred"] = starred

    return _response(upstream.status_code, data)
