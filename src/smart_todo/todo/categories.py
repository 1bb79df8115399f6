"""Client-only task categories, persisted to a local JSON file."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from smart_todo.config import CATEGORIES_FILE

logger = logging.getLogger(__name__)


@dataclass
class Category:
    id: str
    name: str
    color: str


DEFAULT_CATEGORIES = (
    Category(id="default", name="Default", color="#1976d2"),
    Category(id="work", name="Work", color="#f44336"),
    Category(id="personal", name="Personal", color="#4caf50"),
    Category(id="shopping", name="Shopping", color="#ff9800"),
)


class CategoryStore:
    """Categories kept in memory and written back to ``path`` on every change.

    Example:
        >>> store = CategoryStore()
        >>> errands = store.add_category("Errands", "#9c27b0")
        >>> store.delete_category(errands.id)
    """

    def __init__(self, path: Path | None = None):
        self.path = path or CATEGORIES_FILE
        self.categories: list[Category] = self._load()

    def _load(self) -> list[Category]:
        defaults = [Category(**asdict(category)) for category in DEFAULT_CATEGORIES]
        if not self.path.exists():
            return defaults
        try:
            with open(self.path) as f:
                data = json.load(f)
            return [
                Category(id=item["id"], name=item["name"], color=item["color"]) for item in data
            ]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to load categories from %s: %s", self.path, e)
            return defaults

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([asdict(category) for category in self.categories], f, indent=2)

    def get_category(self, category_id: str) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def add_category(self, name: str, color: str) -> Category:
        """Add a category; its id is the current time in milliseconds."""
        category = Category(id=str(int(time.time() * 1000)), name=name, color=color)
        self.categories.append(category)
        self._save()
        return category

    def update_category(self, category_id: str, **updates: Any) -> Category | None:
        category = self.get_category(category_id)
        if category is None:
            return None
        if updates.get("name") is not None:
            category.name = updates["name"]
        if updates.get("color") is not None:
            category.color = updates["color"]
        self._save()
        return category

    def delete_category(self, category_id: str) -> bool:
        before = len(self.categories)
        self.categories = [c for c in self.categories if c.id != category_id]
        if len(self.categories) == before:
            return False
        self._save()
        return True
