"""Tests for AuthService."""

from unittest.mock import MagicMock

import pytest

from smart_todo.auth import AuthService, MemoryTokenBackend, TokenStore, is_token_error
from smart_todo.auth.service import SCOPE_DENIED_MESSAGE
from smart_todo.google.exceptions import TokenError
from smart_todo.tasks.exceptions import (
    AuthenticationRequired,
    InsufficientScopeError,
    TasksApiError,
    TokenExpiredError,
)

NOW = 1_700_000_000.0


@pytest.fixture
def store():
    return TokenStore([MemoryTokenBackend()])


@pytest.fixture
def oauth():
    """GoogleOAuth double whose refresh issues a new token."""
    oauth = MagicMock()
    oauth.token = {
        "access_token": "refreshed-access",
        "id_token": "refreshed-id",
        "expires_at": NOW + 3600,
    }
    oauth.get_user_info.return_value = {"id": "user123", "email": "test@example.com"}
    return oauth


class TestTokens:
    """Token access and expiry."""

    def test_no_token(self, store):
        """Should return None when nothing is stored."""
        auth = AuthService(store=store, clock=lambda: NOW)

        assert auth.get_access_token() is None
        assert auth.is_authenticated() is False

    def test_valid_token(self, store):
        """Should return the stored access token."""
        auth = AuthService(store=store, clock=lambda: NOW)
        auth.save_tokens("access", id_token="id", expires_in=3600)

        assert auth.get_access_token() == "access"
        assert auth.get_id_token() == "id"
        assert auth.is_authenticated() is True

    def test_expired_without_oauth(self, store):
        """Should return None for an expired token when it cannot refresh."""
        auth = AuthService(store=store, clock=lambda: NOW)
        auth.save_tokens("access", expires_at=NOW - 10)

        assert auth.get_access_token() is None
        assert auth.is_authenticated() is False

    def test_expired_token_refreshes(self, store, oauth):
        """Should refresh once and return the new token."""
        auth = AuthService(store=store, oauth=oauth, clock=lambda: NOW)
        auth.save_tokens("old-access", expires_at=NOW - 10)

        assert auth.get_access_token() == "refreshed-access"
        oauth.refresh.assert_called_once()

    def test_refresh_failure(self, store, oauth):
        """Should report failure when the refresh is rejected."""
        oauth.refresh.side_effect = TokenError("invalid_grant")
        auth = AuthService(store=store, oauth=oauth, clock=lambda: NOW)
        auth.save_tokens("old-access", expires_at=NOW - 10)

        assert auth.refresh_token() is False
        assert auth.get_access_token() is None

    def test_sync_from_oauth_stores_profile(self, store, oauth):
        """Should copy the OAuth token and user profile into the store."""
        auth = AuthService(store=store, oauth=oauth, clock=lambda: NOW)

        auth.sync_from_oauth()

        assert auth.get_access_token() == "refreshed-access"
        assert auth.get_user_id() == "user123"

    def test_sign_out(self, store):
        """Should clear tokens and profile."""
        auth = AuthService(store=store, clock=lambda: NOW)
        auth.save_tokens("access", user_info={"id": "user123"})

        auth.sign_out()

        assert auth.get_access_token() is None
        assert auth.get_user_info() is None


class TestReauthorization:
    """One-shot re-authorization on scope failures."""

    def test_success_without_retry(self, store):
        auth = AuthService(store=store)
        assert auth.call_with_reauthorization(lambda: 42) == 42

    def test_retries_once_after_reauthorization(self, store):
        """Should re-authorize and retry after an insufficient-scope error."""
        reauthorize = MagicMock(return_value=True)
        func = MagicMock(side_effect=[InsufficientScopeError("insufficient scope", 403), "ok"])
        auth = AuthService(store=store, reauthorize=reauthorize)

        assert auth.call_with_reauthorization(func, "list001") == "ok"
        reauthorize.assert_called_once()
        assert func.call_count == 2

    def test_gives_up_after_second_failure(self, store):
        """Should raise AuthenticationRequired when the retry fails too."""
        func = MagicMock(side_effect=InsufficientScopeError("insufficient scope", 403))
        auth = AuthService(store=store, reauthorize=lambda: True)

        with pytest.raises(AuthenticationRequired, match="not granted"):
            auth.call_with_reauthorization(func)
        assert func.call_count == 2

    def test_reauthorization_refused(self, store):
        """Should raise without retrying when re-authorization fails."""
        func = MagicMock(side_effect=InsufficientScopeError("insufficient scope", 403))
        auth = AuthService(store=store, reauthorize=lambda: False)

        with pytest.raises(AuthenticationRequired) as exc_info:
            auth.call_with_reauthorization(func)
        assert str(exc_info.value) == SCOPE_DENIED_MESSAGE
        assert func.call_count == 1


class TestIsTokenError:
    """Classification of token failures."""

    def test_token_errors(self):
        assert is_token_error(TokenExpiredError("expired", 401))
        assert is_token_error(AuthenticationRequired())
        assert is_token_error(TokenError("invalid_grant"))

    def test_other_errors(self):
        assert not is_token_error(TasksApiError("Backend error", 500))
        assert not is_token_error(ValueError("bad"))
