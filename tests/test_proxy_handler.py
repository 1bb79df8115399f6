"""Tests for the Lambda annotate-and-forward proxy."""

import importlib
import json

import httpx
import pytest

from fakes import client_error
from smart_todo.dynamodb import StarredTasksTable

proxy_handler = importlib.import_module("smart_todo.proxy.handler")

USER_ID = "user123"
LIST_ID = "list001"
TASKS_PATH = f"/tasks/v1/lists/{LIST_ID}/tasks"

GOOGLE_TASKS = {
    "kind": "tasks#tasks",
    "items": [
        {"id": "task001", "title": "Write report", "status": "needsAction"},
        {"id": "task002", "title": "Book flights", "status": "needsAction"},
        {"id": "task003", "title": "Call Bob", "status": "completed"},
    ],
}


class Upstream:
    """Stand-in for tasks.googleapis.com."""

    def __init__(self):
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
        return self.routes[key]


@pytest.fixture
def upstream(monkeypatch):
    upstream = Upstream()
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    monkeypatch.setattr(proxy_handler, "_http_client", client)
    return upstream


@pytest.fixture
def starred(monkeypatch, starred_items):
    """Side table holding two starred tasks of user123 in list001."""
    starred_items.items = [
        {"userId": USER_ID, "taskId": "task001", "listId": LIST_ID, "starredAt": "t"},
        {"userId": USER_ID, "taskId": "task003", "listId": LIST_ID, "starredAt": "t"},
        {"userId": "someone-else", "taskId": "task002", "listId": LIST_ID, "starredAt": "t"},
    ]
    table = StarredTasksTable(table=starred_items)
    monkeypatch.setattr(proxy_handler, "_starred_table", table)
    return table


def make_event(method, path, body=None, headers=None, query=None, claims=None):
    if headers is None:
        headers = {"Authorization": "Bearer ya29.token", "X-User-Id": USER_ID}
    event = {
        "httpMethod": method,
        "path": f"/api/tasks{path}",
        "headers": headers,
        "queryStringParameters": query,
        "body": json.dumps(body) if body is not None else None,
    }
    if claims is not None:
        event["requestContext"] = {"authorizer": {"claims": claims}}
    return event


def call(event):
    response = proxy_handler.handler(event, None)
    body = response["body"]
    try:
        parsed = json.loads(body) if body else None
    except ValueError:
        parsed = body
    return response["statusCode"], parsed, response


class TestLocalRoutes:
    """Routes answered without calling Google."""

    def test_options(self, upstream):
        status, body, response = call(make_event("OPTIONS", TASKS_PATH, headers={}))

        assert status == 200
        assert body == {"message": "CORS preflight request successful"}
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"
        assert upstream.requests == []

    def test_missing_authorization(self, upstream):
        status, body, _ = call(make_event("GET", TASKS_PATH, headers={"X-User-Id": USER_ID}))

        assert status == 401
        assert body == {"error": "Authorization header is required"}
        assert upstream.requests == []

    def test_invalid_json(self, upstream):
        event = make_event("POST", TASKS_PATH)
        event["body"] = "{not json"

        status, _, _ = call(event)

        assert status == 400

    def test_get_starred(self, upstream, starred):
        """Should return only the caller's starred records."""
        status, body, _ = call(make_event("GET", "/starred"))

        assert status == 200
        assert sorted(item["taskId"] for item in body["items"]) == ["task001", "task003"]
        assert upstream.requests == []

    def test_put_star(self, upstream, starred):
        event = make_event("PUT", "/task002/star", {"starred": True, "listId": LIST_ID})

        status, body, _ = call(event)

        assert status == 200
        assert body == {"taskId": "task002", "starred": True}
        assert starred.is_starred(USER_ID, "task002")

    def test_put_unstar(self, upstream, starred):
        status, _, _ = call(make_event("PUT", "/task001/star", {"starred": False}))

        assert status == 200
        assert not starred.is_starred(USER_ID, "task001")

    def test_put_star_requires_flag(self, upstream, starred):
        status, body, _ = call(make_event("PUT", "/task001/star", {}))

        assert status == 400
        assert body == {"error": "starred is required"}

    def test_starred_table_failure(self, upstream, starred, starred_items):
        starred_items.error = client_error()

        status, body, _ = call(make_event("GET", "/starred"))

        assert status == 500
        assert body == {"error": "Internal Server Error"}

    def test_user_from_authorizer_claims(self, upstream, starred):
        """Should fall back to the authorizer's sub claim."""
        event = make_event(
            "GET",
            "/starred",
            headers={"Authorization": "Bearer ya29.token"},
            claims={"sub": USER_ID},
        )

        _, body, _ = call(event)

        assert len(body["items"]) == 2


class TestForwarding:
    """Requests forwarded to Google Tasks."""

    def test_list_tasks_annotated(self, upstream, starred):
        """Should mark exactly the starred tasks of the caller."""
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json=GOOGLE_TASKS)

        status, body, _ = call(make_event("GET", TASKS_PATH, query={"showCompleted": "true"}))

        assert status == 200
        assert {item["id"]: item["starred"] for item in body["items"]} == {
            "task001": True,
            "task002": False,
            "task003": True,
        }

    def test_forwards_token_and_query(self, upstream, starred):
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json=GOOGLE_TASKS)

        call(make_event("GET", TASKS_PATH, query={"showCompleted": "true"}))

        request = upstream.requests[0]
        assert request.url.host == "tasks.googleapis.com"
        assert request.headers["Authorization"] == "Bearer ya29.token"
        assert request.url.params["showCompleted"] == "true"

    def test_annotation_failure_still_returns_tasks(self, upstream, starred, starred_items):
        """Should return the listing unannotated when the side table fails."""
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json=GOOGLE_TASKS)
        starred_items.error = client_error()

        status, body, _ = call(make_event("GET", TASKS_PATH))

        assert status == 200
        assert all("starred" not in item for item in body["items"])

    def test_update_strips_and_mirrors_starred(self, upstream, starred):
        """Should keep starred out of the Google body and write it to the side table."""
        path = f"{TASKS_PATH}/task002"
        upstream.routes[("PUT", path)] = httpx.Response(
            200, json={"id": "task002", "title": "Book flights", "priority": "high"}
        )

        status, body, _ = call(
            make_event("PUT", path, {"id": "task002", "title": "Book flights", "starred": True})
        )

        assert status == 200
        assert body["starred"] is True
        sent = json.loads(upstream.requests[0].content)
        assert "starred" not in sent
        assert sent["title"] == "Book flights"
        assert starred.is_starred(USER_ID, "task002")

    def test_update_unstar(self, upstream, starred):
        path = f"{TASKS_PATH}/task001"
        upstream.routes[("PATCH", path)] = httpx.Response(200, json={"id": "task001"})

        _, body, _ = call(make_event("PATCH", path, {"starred": False}))

        assert body["starred"] is False
        assert not starred.is_starred(USER_ID, "task001")

    def test_delete_unstars(self, upstream, starred):
        """Should drop the star record of a deleted task."""
        path = f"{TASKS_PATH}/task001"
        upstream.routes[("DELETE", path)] = httpx.Response(204)

        status, body, _ = call(make_event("DELETE", path))

        assert status == 204
        assert body is None
        assert not starred.is_starred(USER_ID, "task001")
        assert starred.is_starred(USER_ID, "task003")

    def test_upstream_error_passthrough(self, upstream, starred):
        """Should return Google's status and body unchanged."""
        status, body, _ = call(make_event("GET", "/tasks/v1/lists/missing/tasks"))

        assert status == 404
        assert body == {"error": {"code": 404, "message": "Not Found"}}

    def test_transport_error(self, monkeypatch, starred):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(boom))
        monkeypatch.setattr(proxy_handler, "_http_client", client)

        status, body, _ = call(make_event("GET", TASKS_PATH))

        assert status == 500
        assert body == {"error": "Internal Server Error"}

    def test_task_lists_not_annotated(self, upstream, starred):
        lists_path = "/tasks/v1/users/@me/lists"
        upstream.routes[("GET", lists_path)] = httpx.Response(
            200, json={"items": [{"id": LIST_ID, "title": "Work"}]}
        )

        _, body, _ = call(make_event("GET", lists_path))

        assert body == {"items": [{"id": LIST_ID, "title": "Work"}]}


class TestStarRoundTrip:
    """Star flags written through the proxy show up in later listings."""

    def test_star_without_list_id_is_annotated(self, upstream, starred, starred_items):
        """Should annotate by membership even when the record has no listId."""
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json=GOOGLE_TASKS)

        call(make_event("PUT", "/task002/star", {"starred": True}))
        _, body, _ = call(make_event("GET", TASKS_PATH))

        record = next(item for item in starred_items.items if item["taskId"] == "task002")
        assert "listId" not in record
        assert {item["id"]: item["starred"] for item in body["items"]}["task002"] is True

    def test_stale_list_id_is_annotated(self, upstream, starred, starred_items):
        starred_items.items.append({"userId": USER_ID, "taskId": "task002", "listId": "list999"})
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json=GOOGLE_TASKS)

        _, body, _ = call(make_event("GET", TASKS_PATH))

        assert {item["id"]: item["starred"] for item in body["items"]}["task002"] is True

    def test_move_updates_list_id(self, upstream, starred, starred_items):
        """Should point the star record at the destination list."""
        path = f"{TASKS_PATH}/task001/move"
        upstream.routes[("POST", path)] = httpx.Response(200, json={"id": "task001"})

        status, _, _ = call(make_event("POST", path, query={"destinationTasklist": "list002"}))

        assert status == 200
        record = next(item for item in starred_items.items if item["taskId"] == "task001")
        assert record["listId"] == "list002"

    def test_move_of_unstarred_task_adds_no_record(self, upstream, starred):
        path = f"{TASKS_PATH}/task002/move"
        upstream.routes[("POST", path)] = httpx.Response(200, json={"id": "task002"})

        call(make_event("POST", path, query={"destinationTasklist": "list002"}))

        assert not starred.is_starred(USER_ID, "task002")

    def test_create_starred_then_list(self, upstream, starred):
        """Should keep a task created starred starred on the next listing."""
        created = {"id": "task009", "title": "Pay rent", "priority": "high"}
        upstream.routes[("POST", TASKS_PATH)] = httpx.Response(200, json=created)
        upstream.routes[("GET", TASKS_PATH)] = httpx.Response(200, json={"items": [created]})

        new_task = {"title": "Pay rent", "priority": "high", "starred": True}
        status, body, _ = call(make_event("POST", TASKS_PATH, new_task))
        assert status == 200
        assert body["starred"] is True
        assert "starred" not in json.loads(upstream.requests[0].content)

        _, listing, _ = call(make_event("GET", TASKS_PATH))

        assert listing["items"] == [{**created, "starred": True}]

    def test_create_with_high_priority_is_starred(self, upstream, starred):
        upstream.routes[("POST", TASKS_PATH)] = httpx.Response(
            200, json={"id": "task010", "priority": "high"}
        )

        call(make_event("POST", TASKS_PATH, {"title": "Renew passport", "priority": "high"}))

        assert starred.is_starred(USER_ID, "task010")

    def test_create_unstarred(self, upstream, starred):
        upstream.routes[("POST", TASKS_PATH)] = httpx.Response(200, json={"id": "task011"})

        _, body, _ = call(make_event("POST", TASKS_PATH, {"title": "Water plants"}))

        assert body["starred"] is False
        assert not starred.is_starred(USER_ID, "task011")
