"""Auth token storage replicated over three backends.

The token triplet (access token, id token, expiry) and the cached user
profile are written to every backend:

- ``FileTokenBackend``   persistent JSON file (data/token_store.json)
- ``MemoryTokenBackend`` process-lifetime session storage
- ``CookieTokenBackend`` Mozilla-format cookie jar (data/cookies.txt)

Each backend applies its own TTL. Writes are last-writer-wins and a failing
backend is logged and skipped, so the copies are not guaranteed to agree.
Reads return the first unexpired value in backend priority order.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from http.cookiejar import Cookie, MozillaCookieJar
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from smart_todo.config import COOKIE_FILE, TOKEN_STORE_FILE, get_settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "google_access_token"
ID_TOKEN_KEY = "google_auth_token"
TOKEN_EXPIRY_KEY = "google_token_expiry"
USER_INFO_KEY = "google_user_info"

ALL_KEYS = (ACCESS_TOKEN_KEY, ID_TOKEN_KEY, TOKEN_EXPIRY_KEY, USER_INFO_KEY)

COOKIE_DOMAIN = "localhost"


@dataclass
class AuthToken:
    """Access token, id token and expiry (epoch seconds)."""

    access_token: str
    id_token: str | None = None
    expires_at: float | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


class TokenBackend(ABC):
    """One storage location for token values."""

    name: str

    def __init__(self, ttl: int | None = None, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock

    def _expires_at(self, ttl: int | None) -> float | None:
        ttl = ttl if ttl is not None else self.ttl
        return self.clock() + ttl if ttl else None

    def _is_live(self, expires_at: float | None) -> bool:
        return expires_at is None or self.clock() < expires_at

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def clear(self) -> None:
        for key in ALL_KEYS:
            self.delete(key)


class MemoryTokenBackend(TokenBackend):
    """Session storage: lives as long as the process."""

    name = "session"

    def __init__(self, ttl: int | None = None, clock: Callable[[], float] = time.time):
        super().__init__(ttl, clock)
        self._data: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if not self._is_live(expires_at):
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._data[key] = (value, self._expires_at(ttl))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileTokenBackend(TokenBackend):
    """Persistent storage in a JSON file."""

    name = "local"

    def __init__(
        self,
        path: str | Path = TOKEN_STORE_FILE,
        ttl: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl, clock)
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable token store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str) -> str | None:
        entry = self._read().get(key)
        if not isinstance(entry, dict):
            return None
        if not self._is_live(entry.get("expires_at")):
            return None
        return entry.get("value")

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        data = self._read()
        data[key] = {"value": value, "expires_at": self._expires_at(ttl)}
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class CookieTokenBackend(TokenBackend):
    """Cookie-jar storage; every value is a cookie with its own expiry."""

    name = "cookie"

    def __init__(
        self,
        path: str | Path = COOKIE_FILE,
        ttl: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl, clock)
        self.path = Path(path)

    def _jar(self) -> MozillaCookieJar:
        jar = MozillaCookieJar(str(self.path))
        if self.path.exists():
            try:
                jar.load(ignore_discard=True, ignore_expires=True)
            except OSError as e:
                logger.warning("Unreadable cookie jar %s: %s", self.path, e)
        return jar

    def _save(self, jar: MozillaCookieJar) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        jar.save(ignore_discard=True, ignore_expires=True)

    def _make_cookie(self, key: str, value: str, expires: int | None) -> Cookie:
        return Cookie(
            version=0,
            name=key,
            value=quote(value, safe=""),
            port=None,
            port_specified=False,
            domain=COOKIE_DOMAIN,
            domain_specified=False,
            domain_initial_dot=False,
            path="/",
            path_specified=True,
            secure=True,
            expires=expires,
            discard=expires is None,
            comment=None,
            comment_url=None,
            rest={"SameSite": "Strict"},
        )

    def get(self, key: str) -> str | None:
        for cookie in self._jar():
            if cookie.name != key:
                continue
            if cookie.expires is not None and not self._is_live(cookie.expires):
                return None
            return unquote(cookie.value or "")
        return None

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        jar = self._jar()
        expires_at = self._expires_at(ttl)
        jar.set_cookie(self._make_cookie(key, value, int(expires_at) if expires_at else None))
        self._save(jar)

    def delete(self, key: str) -> None:
        jar = self._jar()
        try:
            jar.clear(COOKIE_DOMAIN, "/", key)
        except KeyError:
            return
        self._save(jar)


def default_backends() -> list[TokenBackend]:
    """Local file first, then session memory, then cookies."""
    settings = get_settings()
    return [
        FileTokenBackend(TOKEN_STORE_FILE),
        MemoryTokenBackend(ttl=settings.session_ttl),
        CookieTokenBackend(COOKIE_FILE, ttl=settings.cookie_ttl),
    ]


class TokenStore:
    """Writes token values to every backend and reads from the first that has one."""

    def __init__(self, backends: list[TokenBackend] | None = None):
        self.backends = backends if backends is not None else default_backends()

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        for backend in self.backends:
            try:
                backend.set(key, value, ttl)
            except OSError as e:
                logger.warning("Token backend %s rejected %s: %s", backend.name, key, e)

    def get(self, key: str) -> str | None:
        for backend in self.backends:
            try:
                value = backend.get(key)
            except OSError as e:
                logger.warning("Token backend %s unreadable: %s", backend.name, e)
                continue
            if value is not None:
                return value
        return None

    def delete(self, key: str) -> None:
        for backend in self.backends:
            try:
                backend.delete(key)
            except OSError as e:
                logger.warning("Token backend %s could not delete %s: %s", backend.name, key, e)

    def clear(self) -> None:
        for backend in self.backends:
            try:
                backend.clear()
            except OSError as e:
                logger.warning("Token backend %s could not be cleared: %s", backend.name, e)

    def save_token(self, token: AuthToken) -> None:
        """Replace the stored triplet; values the new token lacks are removed."""
        self.set(ACCESS_TOKEN_KEY, token.access_token)
        if token.id_token:
            self.set(ID_TOKEN_KEY, token.id_token)
        else:
            self.delete(ID_TOKEN_KEY)
        if token.expires_at is not None:
            self.set(TOKEN_EXPIRY_KEY, str(token.expires_at))
        else:
            self.delete(TOKEN_EXPIRY_KEY)

    def load_token(self) -> AuthToken | None:
        access_token = self.get(ACCESS_TOKEN_KEY)
        if not access_token:
            return None

        expires_at = None
        raw_expiry = self.get(TOKEN_EXPIRY_KEY)
        if raw_expiry:
            try:
                expires_at = float(raw_expiry)
            except ValueError:
                logger.warning("Ignoring malformed token expiry: %r", raw_expiry)

        return AuthToken(
            access_token=access_token,
            id_token=self.get(ID_TOKEN_KEY),
            expires_at=expires_at,
        )

    def save_user_info(self, user_info: dict[str, Any]) -> None:
        self.set(USER_INFO_KEY, json.dumps(user_info))

    def load_user_info(self) -> dict[str, Any] | None:
        raw = self.get(USER_INFO_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Error parsing user info: %s", e)
            return None
