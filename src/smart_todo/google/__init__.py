"""Google OAuth utilities for the Tasks API."""

from smart_todo.google.exceptions import (
    CredentialsNotFoundError,
    GoogleAuthError,
    ScopeMismatchError,
    TokenError,
)
from smart_todo.google.oauth import GoogleOAuth

__all__ = [
    "GoogleOAuth",
    "GoogleAuthError",
    "CredentialsNotFoundError",
    "TokenError",
    "ScopeMismatchError",
]
