"""Tests for the local category store."""

import json

import pytest

from smart_todo.todo import DEFAULT_CATEGORIES, CategoryStore


@pytest.fixture
def path(tmp_path):
    return tmp_path / "data" / "categories.json"


class TestCategoryStore:
    """CRUD and persistence."""

    def test_defaults_when_missing(self, path):
        """Should start with the four default categories."""
        store = CategoryStore(path)

        assert [c.id for c in store.categories] == ["default", "work", "personal", "shopping"]
        assert store.get_category("work").color == "#f44336"
        assert not path.exists()

    def test_defaults_are_copies(self, path):
        """Should not mutate the module defaults."""
        CategoryStore(path).update_category("work", name="Office")

        assert DEFAULT_CATEGORIES[1].name == "Work"

    def test_add_persists(self, path):
        store = CategoryStore(path)

        category = store.add_category("Errands", "#9c27b0")

        assert category.id.isdigit()
        saved = json.loads(path.read_text())
        assert saved[-1] == {"id": category.id, "name": "Errands", "color": "#9c27b0"}
        assert CategoryStore(path).get_category(category.id).name == "Errands"

    def test_update(self, path):
        store = CategoryStore(path)

        updated = store.update_category("personal", color="#000000")

        assert updated.name == "Personal"
        assert updated.color == "#000000"
        assert CategoryStore(path).get_category("personal").color == "#000000"

    def test_update_unknown(self, path):
        assert CategoryStore(path).update_category("nope", name="x") is None

    def test_delete(self, path):
        store = CategoryStore(path)

        assert store.delete_category("shopping") is True
        assert store.delete_category("shopping") is False
        assert CategoryStore(path).get_category("shopping") is None

    def test_corrupt_file_falls_back(self, path):
        """Should use defaults when the file cannot be parsed."""
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        store = CategoryStore(path)

        assert len(store.categories) == len(DEFAULT_CATEGORIES)
