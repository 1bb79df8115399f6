"""Date-range, starred and free-text filters for the visible task list.

Weeks run Sunday to Saturday. Tasks without a due date only match
``all`` (and ``starred`` when starred).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, timedelta

from smart_todo.tasks.models import Task

FILTER_ALL = "all"
FILTER_TODAY = "today"
FILTER_TOMORROW = "tomorrow"
FILTER_AFTER_TOMORROW = "after-tomorrow"
FILTER_PAST = "past"
FILTER_STARRED = "starred"

FILTERS = (
    FILTER_ALL,
    FILTER_TODAY,
    FILTER_TOMORROW,
    FILTER_AFTER_TOMORROW,
    FILTER_PAST,
    FILTER_STARRED,
)

TodayProvider = Callable[[], date]


def week_bounds(today: date) -> tuple[date, date]:
    """Return the Sunday and Saturday of the week containing ``today``."""
    # date.weekday(): Monday=0 ... Sunday=6
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def matches_filter(task: Task, filter_name: str, today: date | None = None) -> bool:
    """Check whether a task belongs under ``filter_name``.

    Raises:
        ValueError: If the filter name is unknown.
    """
    if filter_name not in FILTERS:
        raise ValueError(f"Unknown filter: {filter_name}. Available: {', '.join(FILTERS)}")
    if filter_name == FILTER_ALL:
        return True
    if filter_name == FILTER_STARRED:
        return task.starred
    if task.due is None:
        return False

    today = today or date.today()
    if filter_name == FILTER_TODAY:
        return task.due == today
    if filter_name == FILTER_TOMORROW:
        return task.due == today + timedelta(days=1)
    if filter_name == FILTER_PAST:
        return task.due < today

    start, end = week_bounds(today)
    return start <= task.due <= end


def filter_tasks(
    tasks: Iterable[Task],
    filter_name: str = FILTER_ALL,
    today: date | None = None,
    list_id: str | None = None,
) -> list[Task]:
    """Return tasks matching a filter, optionally restricted to one list."""
    today = today or date.today()
    return [
        task
        for task in tasks
        if (list_id is None or task.list_id == list_id)
        and matches_filter(task, filter_name, today)
    ]


def count_by_filter(tasks: Iterable[Task], today: date | None = None) -> dict[str, int]:
    """Count tasks under every filter."""
    tasks = list(tasks)
    today = today or date.today()
    return {name: len(filter_tasks(tasks, name, today)) for name in FILTERS}



def matches_search(task: Task, query: str) -> bool:
    """Case-insensitive substring match on title and notes. A blank query matches."""
    needle = query.strip().casefold()
    if not needle:
        return True
    return needle in (task.title or "").casefold() or needle in (task.notes or "").casefold()


def search_tasks(tasks: Iterable[Task], query: str) -> list[Task]:
    return [task for task in tasks if matches_search(task, query)]
