"""CLI for smart-todo.

Usage:
    smart-todo init                          # Create directories, show setup instructions
    smart-todo status                        # Show credential and local state status
    smart-todo google login                  # Interactive OAuth login
    smart-todo google status                 # Show OAuth token status
    smart-todo google refresh                # Refresh OAuth token
    smart-todo google revoke                 # Revoke OAuth token and sign out
    smart-todo google import <path>          # Import OAuth credentials
    smart-todo lists                         # Show task lists
    smart-todo tasks [--list ID] [--filter]  # Show tasks, optionally filtered
    smart-todo tasks --search <text>         # Search titles and notes
    smart-todo add <title> --list ID         # Create a task
    smart-todo complete <task_id>            # Toggle completion
    smart-todo star <task_id>                # Toggle star
    smart-todo delete <task_id>              # Delete a task
    smart-todo sync                          # Full fetch through the sync queue
    smart-todo categories [add|delete]       # Manage local categories

Task commands accept --backend google|proxy|dynamodb (default: google).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
import webbrowser
from pathlib import Path

DEFAULT_SCOPES = "tasks,userinfo_email,userinfo_profile"
BACKENDS = ("google", "proxy", "dynamodb")


def cmd_init() -> int:
    """Initialize smart-todo directory structure."""
    from smart_todo.config import (
        DATA_DIR,
        ENV_FILE,
        GOOGLE_CREDENTIALS,
        GOOGLE_DIR,
        GOOGLE_TOKEN,
        REPO_ROOT,
        ensure_data_dir,
        ensure_google_dir,
    )

    print("=" * 60)
    print("SMART-TODO SETUP")
    print("=" * 60)
    print()
    print(f"Repository: {REPO_ROOT}")
    print()

    ensure_google_dir()
    ensure_data_dir()
    print(f"Created: {GOOGLE_DIR}/")
    print(f"Created: {DATA_DIR}/")
    print()

    print("Configuration locations:")
    print()
    print(f"  {ENV_FILE}")
    print("    Proxy:    SMART_TODO_API_GATEWAY_URL")
    print("    AWS:      AWS_REGION, SMART_TODO_TASKS_TABLE, SMART_TODO_STARRED_TABLE")
    print()
    print(f"  {GOOGLE_CREDENTIALS}")
    print("    OAuth client credentials from Google Cloud Console")
    print()
    print(f"  {GOOGLE_TOKEN}")
    print("    OAuth tokens (created by 'smart-todo google login')")
    print()
    print("-" * 60)
    print()

    status = _check_status()

    if status["env_file"]:
        print(".env exists")
    else:
        print("Create .env with your settings:")
        print()
        print(f"  cat > {ENV_FILE} << 'EOF'")
        print("  SMART_TODO_API_GATEWAY_URL=https://abc.execute-api.us-east-1.amazonaws.com/prod")
        print("  AWS_REGION=us-east-1")
        print("  EOF")
        print()

    if status["google"]["credentials"]:
        print("Google credentials.json exists")
    else:
        print("For Google OAuth, download credentials from:")
        print("  https://console.cloud.google.com/apis/credentials")
        print(f"  Save as: {GOOGLE_CREDENTIALS}")
        print()

    return 0


def cmd_status() -> int:
    """Show status of credentials and local state."""
    from smart_todo.config import REPO_ROOT

    status = _check_status()

    def mark(value: bool) -> str:
        return "[x]" if value else "[ ]"

    print("=" * 60)
    print("SMART-TODO STATUS")
    print("=" * 60)
    print()
    print(f"Repository: {REPO_ROOT}")
    print()

    print("Google:")
    print(f"  credentials.json:  {mark(status['google']['credentials'])}")
    print(f"  token.json:        {mark(status['google']['token'])}")
    print()

    print("Local state:")
    print(f"  token store:       {mark(status['local']['token_store'])}")
    print(f"  cookies:           {mark(status['local']['cookies'])}")
    print(f"  categories:        {mark(status['local']['categories'])}")
    print()

    print("Proxy:")
    print(f"  API Gateway URL:   {mark(status['proxy']['api_gateway_url'])}")
    print()

    print("AWS:")
    print(f"  region:            {status['aws']['region']}")
    print(f"  credentials:       {mark(status['aws']['credentials'])}")
    print()

    return 0


def _check_status() -> dict:
    """Get credential status."""
    from smart_todo.config import get_credential_status

    return get_credential_status()


def google_login(scopes: list[str], no_browser: bool = False) -> int:
    """Interactive Google OAuth login."""
    from smart_todo.auth import AuthService
    from smart_todo.google import CredentialsNotFoundError, GoogleOAuth

    print("=" * 60)
    print("SMART-TODO GOOGLE LOGIN")
    print("=" * 60)

    try:
        oauth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"\nError: {e}")
        print("Run 'smart-todo init' for setup instructions")
        return 1

    auth = AuthService(oauth=oauth)

    info = oauth.get_token_info()
    if oauth.is_authorized() and info["status"] == "valid":
        print("\nAlready authorized with valid token")
        auth.sync_from_oauth()
        return google_status(scopes)

    if info["status"] == "expired":
        print("\nToken expired, attempting refresh...")
        if auth.refresh_token():
            print("Token refreshed successfully!")
            return google_status(scopes)
        print("Refresh failed, starting new authorization flow...")

    print(f"\nScopes: {', '.join(scopes)}")
    print("\nA browser window will open for Google consent.")
    print("After granting access, copy the redirect URL back here.\n")

    url = oauth.get_authorization_url()
    print(f"Authorization URL:\n{url}\n")

    if not no_browser:
        webbrowser.open(url)

    redirect_url = input("Paste redirect URL: ").strip()
    if not redirect_url:
        print("No URL provided; aborting.")
        return 1

    try:
        oauth.fetch_token(redirect_url)
        auth.sync_from_oauth()
        print("\nToken saved successfully!")
        return google_status(scopes)
    except Exception as e:
        print(f"\nError: {e}")
        return 1


def google_status(scopes: list[str]) -> int:
    """Show Google OAuth token status."""
    from smart_todo.auth import AuthService
    from smart_todo.google import CredentialsNotFoundError, GoogleOAuth

    try:
        oauth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'smart-todo init' for setup instructions")
        return 1

    info = oauth.get_token_info()

    if info["status"] == "no_token":
        print("No token found - run 'smart-todo google login'")
        return 1

    user = AuthService().get_user_info() or {}
    print(f"Status     : {info['status']}")
    print(f"User       : {user.get('email', 'unknown')}")
    print(f"Scopes     : {', '.join(info.get('scopes', []))}")
    print(f"Expires in : {info.get('expires_in', 'unknown')}")
    print(f"Refreshed  : {info.get('last_refresh', 'never')}")
    return 0


def google_refresh(scopes: list[str]) -> int:
    """Refresh Google OAuth token."""
    from smart_todo.auth import AuthService
    from smart_todo.google import CredentialsNotFoundError, GoogleOAuth

    print("=" * 60)
    print("REFRESHING OAUTH TOKEN")
    print("=" * 60)

    try:
        oauth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'smart-todo init' for setup instructions")
        return 1

    if not oauth.is_authorized():
        print("No valid token - run 'smart-todo google login'")
        return 1

    if not AuthService(oauth=oauth).refresh_token():
        print("\nRefresh failed")
        print("You may need to re-authenticate: smart-todo google login")
        return 1

    print("\nToken refreshed successfully!")
    return google_status(scopes)


def google_revoke(scopes: list[str]) -> int:
    """Revoke Google OAuth token and clear every token store."""
    from smart_todo.auth import AuthService
    from smart_todo.google import CredentialsNotFoundError, GoogleOAuth

    try:
        oauth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError:
        print("No credentials to revoke")
        AuthService().sign_out()
        return 0

    oauth.revoke_token()
    AuthService(oauth=oauth).sign_out()
    print("Token revoked and local cache cleared")
    return 0


def google_import(source_path: str) -> int:
    """Import OAuth credentials from a file."""
    from smart_todo.config import GOOGLE_CREDENTIALS, ensure_google_dir

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)

        if "installed" not in data and "web" not in data:
            print("Error: Invalid OAuth credentials format")
            print("Expected 'installed' or 'web' key in JSON")
            return 1

        key = "installed" if "installed" in data else "web"
        client_id = data[key].get("client_id", "unknown")

    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_CREDENTIALS)

    print("Imported OAuth credentials")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_CREDENTIALS}")
    print(f"  Client ID: {client_id[:40]}...")
    print()
    print("Next: Run 'smart-todo google login' to authorize")
    return 0


def parse_scopes(scope_str: str | None) -> list[str]:
    """Parse comma-separated scopes."""
    if not scope_str:
        scope_str = DEFAULT_SCOPES
    return [s.strip() for s in scope_str.split(",")]


# =============================================================================
# Task commands
# =============================================================================


def build_backend(name: str, user_id: str | None = None):
    """Create the task backend selected on the command line."""
    if name == "google":
        from smart_todo.tasks import TasksClient

        return TasksClient(scopes=parse_scopes(None))

    from smart_todo.auth import AuthService

    if name == "proxy":
        from smart_todo.google import GoogleOAuth
        from smart_todo.tasks import ProxyTasksClient

        auth = AuthService(oauth=GoogleOAuth(scopes=parse_scopes(None)))
        if auth.get_access_token() is None:
            auth.sync_from_oauth()
        return ProxyTasksClient(token_provider=auth.get_access_token)

    if name == "dynamodb":
        from smart_todo.dynamodb import DynamoTasksRepository

        user_id = user_id or AuthService().get_user_id()
        if not user_id:
            raise ValueError("No user id: sign in with 'smart-todo google login' or pass --user")
        return DynamoTasksRepository(user_id=user_id)

    raise ValueError(f"Unknown backend: {name}. Available: {', '.join(BACKENDS)}")


def _load_store(args: argparse.Namespace):
    from smart_todo.todo import TodoStore

    store = TodoStore(build_backend(args.backend, args.user))
    if getattr(args, "list", None):
        store.fetch_task_lists()
        store.select_list(args.list)
        store.fetch_tasks(args.list)
    else:
        store.fetch_all()
    return store


def _format_task(task) -> str:
    done = "[x]" if task.is_completed else "[ ]"
    star = "*" if task.starred else " "
    due = f"  (due {task.due.isoformat()})" if task.due else ""
    return f"  {done} {star} {task.title}{due}  [{task.id}]"


def _store_result(store, result) -> int:
    if result is None or result is False:
        print(f"Error: {store.error}")
        return 1
    return 0


def cmd_lists(args: argparse.Namespace) -> int:
    store = _load_store(args)
    if store.error:
        print(f"Error: {store.error}")
        return 1

    print("=" * 60)
    print(f"TASK LISTS ({args.backend})")
    print("=" * 60)
    for task_list in store.task_lists:
        count = sum(1 for task in store.all_tasks if task.list_id == task_list.id)
        print(f"  {task_list.title:<30} {count:>4} tasks  [{task_list.id}]")
    return 0


def cmd_tasks(args: argparse.Namespace) -> int:
    store = _load_store(args)
    if store.error:
        print(f"Error: {store.error}")
        return 1

    store.set_filter(args.filter)
    tasks = store.search(args.search)

    print("=" * 60)
    print(f"TASKS ({args.filter})")
    print("=" * 60)
    if not tasks:
        print("  No tasks")
    for task in tasks:
        print(_format_task(task))
    print()
    counts = store.count_by_filter()
    print("  " + "  ".join(f"{name}: {count}" for name, count in counts.items()))
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    store = _load_store(args)
    task = store.create_task(
        args.title,
        list_id=args.list,
        notes=args.notes,
        due=args.due,
        starred=args.star,
    )
    if task is not None:
        print("Created:")
        print(_format_task(task))
    return _store_result(store, task)


def cmd_complete(args: argparse.Namespace) -> int:
    store = _load_store(args)
    task = store.toggle_completion(args.task_id)
    if task is not None:
        print(_format_task(task))
    return _store_result(store, task)


def cmd_star(args: argparse.Namespace) -> int:
    store = _load_store(args)
    task = store.toggle_star(args.task_id)
    if task is not None:
        print(_format_task(task))
    return _store_result(store, task)


def cmd_delete(args: argparse.Namespace) -> int:
    store = _load_store(args)
    deleted = store.delete_task(args.task_id)
    if deleted:
        print(f"Deleted {args.task_id}")
    return _store_result(store, deleted)


def cmd_sync(args: argparse.Namespace) -> int:
    """Fetch everything through the sync queue and print the sync status."""
    from smart_todo.sync import SyncQueue

    queue = SyncQueue(build_backend(args.backend, args.user))
    result = asyncio.run(queue.initial_sync())

    print("=" * 60)
    print("SYNC")
    print("=" * 60)
    print(f"Task lists : {len(result.task_lists)}")
    print(f"Tasks      : {len(result.tasks)}")
    status = queue.get_sync_status()
    print(f"Queue      : {status['queue_length']}")
    print(f"Last sync  : {status['last_sync_time']}")
    return 0


def cmd_categories(args: argparse.Namespace) -> int:
    from smart_todo.todo import CategoryStore

    store = CategoryStore()

    if args.categories_command == "add":
        category = store.add_category(args.name, args.color)
        print(f"Added {category.name} [{category.id}]")
        return 0

    if args.categories_command == "delete":
        if not store.delete_category(args.category_id):
            print(f"Error: Category not found: {args.category_id}")
            return 1
        print(f"Deleted {args.category_id}")
        return 0

    for category in store.categories:
        print(f"  {category.name:<20} {category.color}  [{category.id}]")
    return 0


def _add_backend_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="google",
        help="Task backend (default: google)",
    )
    parser.add_argument("--user", help="User id for the dynamodb backend")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    from smart_todo.todo.filters import FILTERS

    parser = argparse.ArgumentParser(
        prog="smart-todo",
        description="Todo lists mirrored with Google Tasks and DynamoDB",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init", help="Initialize directories")
    subparsers.add_parser("status", help="Show credential status")

    # Google subcommand
    google_parser = subparsers.add_parser("google", help="Google OAuth management")
    google_subparsers = google_parser.add_subparsers(dest="google_command", help="Command")
    for name, help_text in (
        ("login", "Interactive OAuth login"),
        ("status", "Show token status"),
        ("refresh", "Refresh token"),
        ("revoke", "Revoke token"),
    ):
        sub = google_subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--scopes",
            type=str,
            default=DEFAULT_SCOPES,
            help=f"Comma-separated scopes (default: {DEFAULT_SCOPES})",
        )
        if name == "login":
            sub.add_argument(
                "--no-browser",
                action="store_true",
                help="Don't open browser automatically",
            )
    import_parser = google_subparsers.add_parser("import", help="Import OAuth credentials")
    import_parser.add_argument("path", help="Path to credentials.json file")

    # Task commands
    lists_parser = subparsers.add_parser("lists", help="Show task lists")
    _add_backend_args(lists_parser)

    tasks_parser = subparsers.add_parser("tasks", help="Show tasks")
    _add_backend_args(tasks_parser)
    tasks_parser.add_argument("--list", help="Task list id")
    tasks_parser.add_argument("--filter", choices=FILTERS, default="all", help="Date filter")
    tasks_parser.add_argument("--search", help="Only tasks whose title or notes contain this text")

    add_parser = subparsers.add_parser("add", help="Create a task")
    _add_backend_args(add_parser)
    add_parser.add_argument("title", help="Task title")
    add_parser.add_argument("--list", required=True, help="Task list id")
    add_parser.add_argument("--notes", help="Task notes")
    add_parser.add_argument("--due", help="Due date (YYYY-MM-DD)")
    add_parser.add_argument("--star", action="store_true", help="Star the task")

    for name, help_text in (
        ("complete", "Toggle task completion"),
        ("star", "Toggle task star"),
        ("delete", "Delete a task"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        _add_backend_args(sub)
        sub.add_argument("task_id", help="Task id")
        sub.add_argument("--list", help="Task list id (speeds up lookup)")

    sync_parser = subparsers.add_parser("sync", help="Fetch everything through the sync queue")
    _add_backend_args(sync_parser)

    categories_parser = subparsers.add_parser("categories", help="Manage local categories")
    categories_subparsers = categories_parser.add_subparsers(
        dest="categories_command", help="Command"
    )
    cat_add = categories_subparsers.add_parser("add", help="Add a category")
    cat_add.add_argument("name", help="Category name")
    cat_add.add_argument("--color", default="#1976d2", help="Color (default: #1976d2)")
    cat_delete = categories_subparsers.add_parser("delete", help="Delete a category")
    cat_delete.add_argument("category_id", help="Category id")

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "init":
        return cmd_init()

    if args.command == "status":
        return cmd_status()

    if args.command == "categories":
        return cmd_categories(args)

    if args.command == "google":
        scopes = parse_scopes(getattr(args, "scopes", None))

        if args.google_command == "login":
            return google_login(scopes, args.no_browser)
        elif args.google_command == "status":
            return google_status(scopes)
        elif args.google_command == "refresh":
            return google_refresh(scopes)
        elif args.google_command == "revoke":
            return google_revoke(scopes)
        elif args.google_command == "import":
            return google_import(args.path)
        else:
            google_parser.print_help()
            return 0

    from smart_todo.google.exceptions import GoogleAuthError
    from smart_todo.tasks.exceptions import TasksError

    handlers = {
        "lists": cmd_lists,
        "tasks": cmd_tasks,
        "add": cmd_add,
        "complete": cmd_complete,
        "star": cmd_star,
        "delete": cmd_delete,
        "sync": cmd_sync,
    }
    try:
        return handlers[args.command](args)
    except (GoogleAuthError, TasksError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
