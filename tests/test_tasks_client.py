"""Tests for the googleapiclient-based TasksClient."""

import json
from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from smart_todo.google.exceptions import TokenError
from smart_todo.tasks import TasksClient
from smart_todo.tasks.exceptions import (
    AuthenticationRequired,
    InsufficientScopeError,
    InvalidTaskListIdError,
    TaskNotFoundError,
    TasksApiError,
    TokenExpiredError,
)

TASK = {
    "id": "task001",
    "title": "Write report",
    "notes": "",
    "status": "needsAction",
    "priority": "normal",
}


def http_error(status: int, message: str) -> HttpError:
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(httplib2.Response({"status": status}), content)


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def client(service):
    return TasksClient(service=service)


class TestAuthorization:
    def test_requires_authorization(self):
        """Should raise with the authorization URL when not authorized."""
        auth = MagicMock()
        auth.is_authorized.return_value = False
        auth.get_authorization_url.return_value = "https://accounts.google.com/o/oauth2/auth?x=1"

        with pytest.raises(AuthenticationRequired) as exc_info:
            TasksClient(auth=auth).list_task_lists()
        assert exc_info.value.authorization_url.startswith("https://accounts.google.com")

    def test_builds_service_from_auth(self, service):
        auth = MagicMock()
        auth.is_authorized.return_value = True
        auth.build_service.return_value = service
        service.tasklists().list().execute.return_value = {"items": []}

        TasksClient(auth=auth).list_task_lists()

        auth.build_service.assert_called_once_with("tasks", "v1")

    def test_failed_refresh_requires_sign_in(self):
        """Should turn a Google auth failure into AuthenticationRequired."""
        auth = MagicMock()
        auth.is_authorized.return_value = True
        auth.build_service.side_effect = TokenError("Failed to refresh token: invalid_grant")

        with pytest.raises(AuthenticationRequired, match="invalid_grant"):
            TasksClient(auth=auth).list_task_lists()

    def test_refresh_error_during_request(self, client, service):
        service.tasklists().list().execute.side_effect = RefreshError("invalid_grant")

        with pytest.raises(TokenExpiredError):
            client.list_task_lists()


class TestCalls:
    """Requests issued through the service."""

    def test_list_task_lists_paginates(self, client, service):
        """Should follow nextPageToken."""
        service.tasklists().list().execute.side_effect = [
            {"items": [{"id": "list001", "title": "Work"}], "nextPageToken": "p2"},
            {"items": [{"id": "list002", "title": "Home"}]},
        ]

        lists = client.list_task_lists()

        assert [task_list.id for task_list in lists] == ["list001", "list002"]
        service.tasklists().list.assert_called_with(maxResults=100, pageToken="p2")

    def test_list_tasks(self, client, service):
        service.tasks().list().execute.return_value = {"items": [{**TASK, "priority": "high"}]}

        tasks = client.list_tasks("list001")

        assert tasks[0].starred is True
        assert tasks[0].list_id == "list001"
        service.tasks().list.assert_called_with(
            tasklist="list001", showCompleted=True, showHidden=False, maxResults=100
        )

    def test_create_task_body(self, client, service):
        service.tasks().insert().execute.return_value = TASK

        client.create_task(
            "list001", {"title": "Write report", "due": "2025-06-20", "starred": True}
        )

        service.tasks().insert.assert_called_with(
            tasklist="list001",
            body={
                "title": "Write report",
                "notes": "",
                "status": "needsAction",
                "due": "2025-06-20T00:00:00.000Z",
                "priority": "high",
            },
        )

    def test_update_merges_current(self, client, service):
        """Should read the task and send the merged resource."""
        service.tasks().get().execute.return_value = dict(TASK)
        service.tasks().update().execute.return_value = {**TASK, "status": "completed"}

        task = client.update_task("list001", "task001", {"status": "completed"})

        body = service.tasks().update.call_args.kwargs["body"]
        assert body["status"] == "completed"
        assert body["title"] == "Write report"
        assert task.is_completed

    def test_move_params(self, client, service):
        service.tasks().move().execute.return_value = TASK

        client.move_task("list001", "task001", previous="task000", destination_list_id="list002")

        service.tasks().move.assert_called_with(
            tasklist="list001", task="task001", previous="task000", destinationTasklist="list002"
        )

    def test_temporary_list_id_rejected(self, client):
        with pytest.raises(InvalidTaskListIdError):
            client.delete_task_list("temp-list-1718000000000-ab12")


class TestErrors:
    """HttpError mapping."""

    @pytest.mark.parametrize(
        ("status", "message", "expected"),
        [
            (401, "Invalid Credentials", TokenExpiredError),
            (403, "Request had insufficient authentication scopes.", InsufficientScopeError),
            (404, "Not Found", TaskNotFoundError),
            (500, "Backend Error", TasksApiError),
        ],
    )
    def test_mapping(self, client, service, status, message, expected):
        service.tasklists().list().execute.side_effect = http_error(status, message)

        with pytest.raises(expected):
            client.list_task_lists()

    def test_forbidden_without_scope_problem(self, client, service):
        service.tasklists().list().execute.side_effect = http_error(403, "Rate limit exceeded")

        with pytest.raises(TasksApiError) as exc_info:
            client.list_task_lists()
        assert not isinstance(exc_info.value, InsufficientScopeError)
        assert exc_info.value.status_code == 403
