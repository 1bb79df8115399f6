"""Client-side todo state: task store, filters and categories."""

from smart_todo.todo.categories import DEFAULT_CATEGORIES, Category, CategoryStore
from smart_todo.todo.filters import (
    FILTERS,
    count_by_filter,
    filter_tasks,
    matches_filter,
    search_tasks,
)
from smart_todo.todo.store import TodoStore

__all__ = [
    "TodoStore",
    "CategoryStore",
    "Category",
    "DEFAULT_CATEGORIES",
    "FILTERS",
    "filter_tasks",
    "matches_filter",
    "count_by_filter",
    "search_tasks",
]
