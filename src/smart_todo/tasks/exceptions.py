"""Task backend exceptions."""

from __future__ import annotations

from typing import Any


class TasksError(Exception):
    """Base exception for task backend errors."""

    pass


class AuthenticationRequired(TasksError):
    """Raised when no usable access token is available.

    ``authorization_url`` is set when an interactive OAuth consent can fix it.
    """

    def __init__(self, message: str | None = None, authorization_url: str | None = None):
        self.authorization_url = authorization_url
        super().__init__(message or "No access token available. Please sign in again.")


class InvalidTaskListIdError(TasksError, ValueError):
    """Raised for missing, blank or temporary task list ids."""


class TaskNotFoundError(TasksError):
    """Raised when a task or task list does not exist."""


class TasksApiError(TasksError):
    """Raised when the remote API returns an error."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class TokenExpiredError(TasksApiError):
    """Raised on HTTP 401: the access token is invalid or expired."""


class InsufficientScopeError(TasksApiError):
    """Raised on HTTP 403 when the token lacks a required OAuth scope."""
