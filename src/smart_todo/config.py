"""Centralized configuration.

All local state is stored in the smart-todo repo root:
    .env                    - settings (SMART_TODO_API_GATEWAY_URL, AWS_REGION, etc.)
    google/credentials.json - Google OAuth client credentials
    google/token.json       - Google OAuth tokens
    data/token_store.json   - persistent copy of the auth token triplet
    data/cookies.txt        - cookie-jar copy of the auth token triplet
    data/categories.json    - client-only task categories

This module auto-loads the .env file on import, so settings are available
to every smart_todo module without additional configuration.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Repository root (where this package is installed from)
# __file__ is src/smart_todo/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent
GOOGLE_DIR = REPO_ROOT / "google"
DATA_DIR = REPO_ROOT / "data"

ENV_FILE = REPO_ROOT / ".env"
GOOGLE_CREDENTIALS = GOOGLE_DIR / "credentials.json"
GOOGLE_TOKEN = GOOGLE_DIR / "token.json"
TOKEN_STORE_FILE = DATA_DIR / "token_store.json"
COOKIE_FILE = DATA_DIR / "cookies.txt"
CATEGORIES_FILE = DATA_DIR / "categories.json"

GOOGLE_TASKS_BASE_URL = "https://tasks.googleapis.com"
API_PREFIX = "/api/tasks"


@dataclass
class Settings:
    """Runtime settings read from the environment."""

    api_gateway_url: str = ""
    aws_region: str = "us-east-1"
    task_lists_table: str = "SmartTodo-TaskLists"
    tasks_table: str = "SmartTodo-Tasks"
    starred_table: str = "SmartTodoStarredTasks"
    sync_retry_delay: float = 1.0
    fetch_interval: float = 300.0
    session_ttl: int = 3600
    cookie_ttl: int = 7 * 24 * 3600

    @property
    def api_base_url(self) -> str:
        """Base URL of the proxy, including the /api/tasks prefix."""
        return f"{self.api_gateway_url.rstrip('/')}{API_PREFIX}"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Environment wins over .env
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_settings() -> Settings:
    """Build settings from the current environment.

    Returns:
        Settings with environment overrides applied.
    """
    return Settings(
        api_gateway_url=os.environ.get("SMART_TODO_API_GATEWAY_URL", ""),
        aws_region=os.environ.get("AWS_REGION", "us-east-1"),
        task_lists_table=os.environ.get("SMART_TODO_TASK_LISTS_TABLE", "SmartTodo-TaskLists"),
        tasks_table=os.environ.get("SMART_TODO_TASKS_TABLE", "SmartTodo-Tasks"),
        starred_table=os.environ.get("SMART_TODO_STARRED_TABLE", "SmartTodoStarredTasks"),
        sync_retry_delay=_env_float("SMART_TODO_SYNC_RETRY_DELAY", 1.0),
        fetch_interval=_env_float("SMART_TODO_FETCH_INTERVAL", 300.0),
        session_ttl=_env_int("SMART_TODO_SESSION_TTL", 3600),
        cookie_ttl=_env_int("SMART_TODO_COOKIE_TTL", 7 * 24 * 3600),
    )


def ensure_google_dir() -> Path:
    """Create google credentials directory if it doesn't exist.

    Returns:
        Path to google directory.
    """
    GOOGLE_DIR.mkdir(parents=True, exist_ok=True)
    return GOOGLE_DIR


def ensure_data_dir() -> Path:
    """Create the local data directory if it doesn't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR


def get_credential_status() -> dict:
    """Get status of all configured credentials and local state.

    Returns:
        Dictionary with credential status.
    """
    settings = get_settings()
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "google": {
            "credentials": GOOGLE_CREDENTIALS.exists(),
            "token": GOOGLE_TOKEN.exists(),
        },
        "local": {
            "token_store": TOKEN_STORE_FILE.exists(),
            "cookies": COOKIE_FILE.exists(),
            "categories": CATEGORIES_FILE.exists(),
        },
        "proxy": {
            "api_gateway_url": bool(settings.api_gateway_url),
        },
        "aws": {
            "region": settings.aws_region,
            "credentials": bool(
                os.environ.get("AWS_ACCESS_KEY_ID") or os.environ.get("AWS_PROFILE")
            ),
        },
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
