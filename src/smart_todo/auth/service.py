"""Auth service: token access, refresh, sign-out and re-authorization."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from smart_todo.auth.token_store import AuthToken, TokenStore
from smart_todo.google import GoogleOAuth
from smart_todo.google.exceptions import GoogleAuthError, TokenError
from smart_todo.tasks.exceptions import (
    AuthenticationRequired,
    InsufficientScopeError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCOPE_DENIED_MESSAGE = (
    "Access to Google Tasks was not granted. "
    "Please sign in again and allow access to your tasks."
)

# Seconds before the real expiry at which a token is treated as expired
EXPIRY_LEEWAY = 60


def is_token_error(error: BaseException) -> bool:
    """Check whether an error means the user has to sign in again."""
    if isinstance(error, (TokenExpiredError, AuthenticationRequired, TokenError)):
        return True
    message = str(error).lower()
    return "access token" in message or "invalid_grant" in message


class AuthService:
    """Google OAuth tokens for the signed-in user.

    Tokens are kept in a ``TokenStore`` (three replicated backends) and
    refreshed through ``GoogleOAuth`` when one is available.

    Example:
        >>> auth = AuthService(oauth=GoogleOAuth())
        >>> auth.sync_from_oauth()
        >>> token = auth.get_access_token()
    """

    def __init__(
        self,
        store: TokenStore | None = None,
        oauth: GoogleOAuth | None = None,
        reauthorize: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the auth service.

        Args:
            store: Token store. Defaults to file + session + cookie backends.
            oauth: GoogleOAuth used to refresh tokens and fetch the profile.
            reauthorize: Interactive re-consent hook; defaults to a token refresh.
            clock: Time source in epoch seconds.
        """
        self.store = store or TokenStore()
        self.oauth = oauth
        self._reauthorize = reauthorize
        self.clock = clock

    def save_tokens(
        self,
        access_token: str,
        id_token: str | None = None,
        expires_at: float | None = None,
        expires_in: float | None = None,
        user_info: dict[str, Any] | None = None,
    ) -> AuthToken:
        """Store a freshly issued token triplet (and optionally the profile)."""
        if expires_at is None and expires_in is not None:
            expires_at = self.clock() + expires_in

        token = AuthToken(access_token=access_token, id_token=id_token, expires_at=expires_at)
        self.store.save_token(token)
        if user_info is not None:
            self.store.save_user_info(user_info)
        logger.info("Stored access token (expires at %s)", expires_at)
        return token

    def sync_from_oauth(self, fetch_user_info: bool = True) -> AuthToken | None:
        """Copy the GoogleOAuth session token into the token store.

        Returns:
            The stored token, or None when the OAuth session has none.
        """
        if self.oauth is None or not self.oauth.token:
            return None

        token = self.oauth.token
        user_info = None
        if fetch_user_info:
            try:
                user_info = self.oauth.get_user_info()
            except GoogleAuthError as e:
                logger.warning("Could not fetch user info: %s", e)

        return self.save_tokens(
            access_token=token["access_token"],
            id_token=token.get("id_token"),
            expires_at=token.get("expires_at"),
            user_info=user_info,
        )

    def _is_expired(self, token: AuthToken) -> bool:
        return token.expires_at is not None and self.clock() >= token.expires_at - EXPIRY_LEEWAY

    def get_access_token(self) -> str | None:
        """Return a usable access token.

        An expired token triggers one refresh attempt; None is returned when
        there is no token or the refresh fails.
        """
        token = self.store.load_token()
        if token is None:
            return None

        if self._is_expired(token):
            logger.info("Token expired when getting access token")
            if not self.refresh_token():
                return None
            token = self.store.load_token()
            if token is None:
                return None

        return token.access_token

    def get_id_token(self) -> str | None:
        token = self.store.load_token()
        return token.id_token if token else None

    def get_user_info(self) -> dict[str, Any] | None:
        return self.store.load_user_info()

    def get_user_id(self) -> str | None:
        info = self.get_user_info()
        return info.get("id") if info else None

    def is_authenticated(self) -> bool:
        """Check for a stored, unexpired access token (without refreshing)."""
        token = self.store.load_token()
        return token is not None and not self._is_expired(token)

    def refresh_token(self) -> bool:
        """Refresh the access token through GoogleOAuth.

        Returns:
            True if a new token was stored.
        """
        if self.oauth is None:
            logger.warning("Cannot refresh token: no OAuth session configured")
            return False

        try:
            self.oauth.refresh()
        except GoogleAuthError as e:
            logger.error("Token refresh error: %s", e)
            return False

        return self.sync_from_oauth(fetch_user_info=False) is not None

    def reauthorize(self) -> bool:
        """Run the re-authorization hook once."""
        if self._reauthorize is not None:
            return self._reauthorize()
        return self.refresh_token()

    def sign_out(self) -> None:
        """Remove tokens and profile from every backend."""
        self.store.clear()
        logger.info("Signed out")

    def call_with_reauthorization(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Call ``func``; on a scope failure re-authorize once and retry.

        Raises:
            AuthenticationRequired: If re-authorization fails or the retry
                still lacks the scope.
        """
        try:
            return func(*args, **kwargs)
        except InsufficientScopeError as e:
            logger.warning("Insufficient scope, attempting re-authorization: %s", e)
            if not self.reauthorize():
                raise AuthenticationRequired(SCOPE_DENIED_MESSAGE) from e

        try:
            return func(*args, **kwargs)
        except InsufficientScopeError as e:
            logger.error("Still missing scope after re-authorization: %s", e)
            raise AuthenticationRequired(SCOPE_DENIED_MESSAGE) from e
