"""Google OAuth for the Tasks API using Authlib.

Handles the installed-app authorization flow, token persistence in
google/token.json, refresh with scope preservation, and building
``googleapiclient`` services for the Tasks API.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from authlib.integrations.requests_client import OAuth2Session
from authlib.oauth2 import OAuth2Error
from google.oauth2.credentials import Credentials as GoogleCredentials
from googleapiclient.discovery import build

from smart_todo.config import GOOGLE_CREDENTIALS, GOOGLE_TOKEN
from smart_todo.google.exceptions import (
    CredentialsNotFoundError,
    ScopeMismatchError,
    TokenError,
)

logger = logging.getLogger(__name__)


SCOPES = {
    "tasks": "https://www.googleapis.com/auth/tasks",
    "tasks_readonly": "https://www.googleapis.com/auth/tasks.readonly",
    "userinfo_email": "https://www.googleapis.com/auth/userinfo.email",
    "userinfo_profile": "https://www.googleapis.com/auth/userinfo.profile",
    "openid": "openid",
}

DEFAULT_SCOPES = ["tasks", "userinfo_email", "userinfo_profile"]


class GoogleOAuth:
    """Google OAuth management using Authlib.

    Example:
        >>> auth = GoogleOAuth()
        >>> if not auth.is_authorized():
        ...     print(f"Visit: {auth.get_authorization_url()}")
        ...     auth.fetch_token(input("Paste redirect URL: "))
        >>> tasks_service = auth.build_service("tasks", "v1")
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

    def __init__(
        self,
        scopes: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
    ):
        """Initialize Google OAuth.

        Args:
            scopes: Scope names (e.g., ["tasks"]) or full URLs.
                   Defaults to tasks plus basic profile scopes.
            client_id: OAuth client ID (loaded from credentials file if not provided).
            client_secret: OAuth client secret (loaded from credentials file if not provided).
            token_path: Path to store/load tokens. Defaults to google/token.json.
            credentials_path: Path to OAuth credentials file. Defaults to google/credentials.json.
        """
        self.token_path = Path(token_path) if token_path else GOOGLE_TOKEN
        self.credentials_path = Path(credentials_path) if credentials_path else GOOGLE_CREDENTIALS

        self.required_scopes = self._resolve_scopes(scopes or DEFAULT_SCOPES)

        if not client_id or not client_secret:
            client_id, client_secret = self._load_client_credentials()

        self.client_id = client_id
        self.client_secret = client_secret

        self.session = OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(self.required_scopes),
            redirect_uri="http://localhost:0",
            token=self._load_token(),
            update_token=self._save_token,
            token_endpoint=self.TOKEN_URL,
            grant_type="refresh_token",
            token_endpoint_auth_method="client_secret_post",
        )

        self._state: str | None = None
        self.last_refresh: datetime | None = None
        self.refresh_count = 0

    def _resolve_scopes(self, scopes: list[str]) -> list[str]:
        """Resolve scope names to full URLs."""
        resolved = []
        for scope in scopes:
            if scope.startswith("https://") or scope == "openid":
                resolved.append(scope)
            elif scope in SCOPES:
                resolved.append(SCOPES[scope])
            else:
                raise ValueError(
                    f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
                )
        return resolved

    def _load_client_credentials(self) -> tuple[str, str]:
        """Load OAuth client credentials from file."""
        if not self.credentials_path.exists():
            raise CredentialsNotFoundError(str(self.credentials_path))

        with open(self.credentials_path) as f:
            creds = json.load(f)

        if "installed" in creds:
            app_creds = creds["installed"]
        elif "web" in creds:
            app_creds = creds["web"]
        else:
            raise ValueError("Invalid credentials.json format. Expected 'installed' or 'web' key.")

        return app_creds["client_id"], app_creds["client_secret"]

    def _load_token(self) -> dict[str, Any] | None:
        """Load token from google/token.json, converting to Authlib format."""
        if not self.token_path.exists():
            logger.info("No existing token found")
            return None

        try:
            with open(self.token_path) as f:
                token_data = json.load(f)

            expiry = token_data.get("expiry")
            if expiry and isinstance(expiry, str):
                expires_at = datetime.fromisoformat(expiry.replace("Z", "+00:00")).timestamp()
            else:
                expires_at = expiry

            current_scopes = set(token_data.get("scopes", []))
            missing = set(self.required_scopes) - current_scopes
            if missing:
                logger.warning("Token missing required scopes: %s", missing)
                return None

            logger.info("Loaded token with scopes: %s", current_scopes)
            return {
                "access_token": token_data.get("token"),
                "refresh_token": token_data.get("refresh_token"),
                "id_token": token_data.get("id_token"),
                "token_type": token_data.get("type", "Bearer"),
                "expires_at": expires_at,
                "scope": " ".join(current_scopes),
            }

        except (OSError, ValueError) as e:
            logger.error("Failed to load token: %s", e)
            return None

    def _save_token(
        self,
        token: dict[str, Any],
        refresh_token: str | None = None,
        access_token: str | None = None,
    ):
        """Save token to storage (Authlib callback)."""
        if access_token:
            token["access_token"] = access_token
        if refresh_token:
            token["refresh_token"] = refresh_token

        token_scopes = set(token.get("scope", "").split())
        missing = set(self.required_scopes) - token_scopes
        if missing:
            raise ScopeMismatchError(missing)

        # google.oauth2.credentials compatible layout
        google_token = {
            "token": token["access_token"],
            "refresh_token": token.get("refresh_token"),
            "id_token": token.get("id_token"),
            "token_uri": self.TOKEN_URL,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scopes": sorted(token_scopes),
            "type": token.get("token_type", "Bearer"),
            "expiry": token.get("expires_at"),
        }

        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_path, "w") as f:
            json.dump(google_token, f, indent=2)

        self.last_refresh = datetime.now()
        self.refresh_count += 1

        logger.info("Token saved with scopes: %s", token_scopes)

    @property
    def token(self) -> dict[str, Any] | None:
        """Current Authlib token dict, if any."""
        return self.session.token or None

    def is_authorized(self) -> bool:
        """Check if we have a token carrying all required scopes."""
        if not self.session.token:
            return False

        token_scopes = set(self.session.token.get("scope", "").split())
        return set(self.required_scopes).issubset(token_scopes)

    def is_expired(self) -> bool:
        """Check whether the current access token has expired."""
        if not self.session.token:
            return True
        expires_at = self.session.token.get("expires_at")
        return bool(expires_at) and expires_at < datetime.now().timestamp()

    def get_authorization_url(self) -> str:
        """Start OAuth authorization flow.

        Returns:
            Authorization URL for user to visit.
        """
        authorization_url, state = self.session.create_authorization_url(
            self.AUTHORIZE_URL,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )

        self._state = state
        return authorization_url

    def fetch_token(self, authorization_response: str) -> dict[str, Any]:
        """Complete authorization flow and fetch token.

        Args:
            authorization_response: The full redirect URL from OAuth callback.

        Returns:
            The fetched OAuth token dict.
        """
        token = self.session.fetch_token(
            self.TOKEN_URL,
            authorization_response=authorization_response,
            client_secret=self.client_secret,
        )

        self._save_token(token)
        return token

    def refresh(self) -> dict[str, Any]:
        """Refresh the access token using the stored refresh token.

        Raises:
            TokenError: If there is no refresh token or the refresh fails.
        """
        if not self.session.token or not self.session.token.get("refresh_token"):
            raise TokenError("No refresh token available")

        logger.info("Refreshing access token")
        try:
            token = self.session.refresh_token(
                self.TOKEN_URL,
                refresh_token=self.session.token.get("refresh_token"),
            )
        except OAuth2Error as e:
            raise TokenError(f"Failed to refresh token: {e}") from e
        return token

    def get_credentials(self) -> GoogleCredentials:
        """Get Google Credentials object for API client libraries.

        Raises:
            TokenError: If not authorized or token refresh fails.
        """
        if not self.is_authorized():
            raise TokenError("Not authorized or missing required scopes")

        if self.is_expired():
            logger.info("Token expired, refreshing...")
            self.refresh()

        return GoogleCredentials(
            token=self.session.token["access_token"],
            refresh_token=self.session.token.get("refresh_token"),
            token_uri=self.TOKEN_URL,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.required_scopes,
        )

    def build_service(self, service_name: str = "tasks", version: str = "v1"):
        """Build a Google API service with current credentials."""
        creds = self.get_credentials()
        return build(service_name, version, credentials=creds)

    def get_user_info(self) -> dict[str, Any]:
        """Fetch the signed-in user's profile from the userinfo endpoint.

        Raises:
            TokenError: If not authorized or the request fails.
        """
        if not self.is_authorized():
            raise TokenError("Not authorized or missing required scopes")

        response = self.session.get(self.USERINFO_URL)
        if response.status_code != 200:
            raise TokenError(f"Failed to fetch user info: HTTP {response.status_code}")
        data = response.json()
        return {
            "id": data.get("sub"),
            "name": data.get("name"),
            "email": data.get("email"),
            "imageUrl": data.get("picture"),
        }

    def revoke_token(self):
        """Revoke the current token and clear local storage."""
        if not self.session.token:
            logger.warning("No token to revoke")
            return

        try:
            self.session.post(
                self.REVOKE_URL,
                params={"token": self.session.token["access_token"]},
            )
        except Exception as e:
            logger.warning("Failed to revoke token remotely: %s", e)

        if self.token_path.exists():
            self.token_path.unlink()

        logger.info("Token revoked successfully")

    def get_token_info(self) -> dict[str, Any]:
        """Get information about the current token.

        Returns:
            Dictionary with token status, scopes, expiry, etc.
        """
        if not self.session.token:
            return {"status": "no_token"}

        token = self.session.token
        expires_at = token.get("expires_at", 0)

        if expires_at:
            expires_in = expires_at - datetime.now().timestamp()
            expires_str = str(timedelta(seconds=max(0, int(expires_in))))
        else:
            expires_str = "unknown"

        return {
            "status": "expired" if self.is_expired() else "valid",
            "scopes": token.get("scope", "").split(),
            "expires_in": expires_str,
            "has_refresh_token": bool(token.get("refresh_token")),
            "refresh_count": self.refresh_count,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
        }
