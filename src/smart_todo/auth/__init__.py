"""Token storage and the auth service."""

from smart_todo.auth.service import AuthService, is_token_error
from smart_todo.auth.token_store import (
    AuthToken,
    CookieTokenBackend,
    FileTokenBackend,
    MemoryTokenBackend,
    TokenBackend,
    TokenStore,
)

__all__ = [
    "AuthService",
    "AuthToken",
    "TokenStore",
    "TokenBackend",
    "FileTokenBackend",
    "MemoryTokenBackend",
    "CookieTokenBackend",
    "is_token_error",
]
