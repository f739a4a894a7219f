"""Unit tests for document and index persistence."""

import json

import pytest

from stagedo.errors import ListNotFoundError
from stagedo.models import ListRecord
from stagedo.storage import JsonFileStore, ListIndex, MemoryStore, read_json, write_json_atomic


class TestJsonFileStore:
    """Test cases for JsonFileStore."""

    def test_save_and_load(self, tmp_path):
        store = JsonFileStore(tmp_path / "lists")
        store.save("abc", {"draft": "ノート", "stage": 2})

        assert store.load("abc") == {"draft": "ノート", "stage": 2}
        assert "ノート" in store.path_for("abc").read_text(encoding="utf-8")

    def test_missing_document(self, tmp_path):
        assert JsonFileStore(tmp_path).load("nope") is None

    def test_invalid_json_is_ignored(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.path_for("abc").write_text("{not json", encoding="utf-8")
        assert store.load("abc") is None

    def test_non_object_is_ignored(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.path_for("abc").write_text("[1, 2]", encoding="utf-8")
        assert store.load("abc") is None

    def test_delete(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.save("abc", {})
        assert store.delete("abc") is True
        assert store.delete("abc") is False
        assert store.load("abc") is None

    @pytest.mark.parametrize("bad_id", ["", "../escape", "a/b", "with space"])
    def test_rejects_unsafe_ids(self, tmp_path, bad_id):
        with pytest.raises(ValueError):
            JsonFileStore(tmp_path).path_for(bad_id)

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.save("abc", {"stage": 1})
        store.save("abc", {"stage": 2})

        assert [p.name for p in tmp_path.iterdir()] == ["abc.json"]
        assert store.load("abc") == {"stage": 2}


class TestJsonHelpers:
    """Test cases for the atomic write helpers."""

    def test_write_creates_parent(self, tmp_path):
        target = tmp_path / "nested" / "doc.json"
        write_json_atomic(target, {"a": 1})
        assert json.loads(target.read_text(encoding="utf-8")) == {"a": 1}

    def test_read_missing(self, tmp_path):
        assert read_json(tmp_path / "missing.json") is None


class TestMemoryStore:
    """Test cases for MemoryStore."""

    def test_loads_are_independent_copies(self):
        store = MemoryStore()
        doc = {"goals": ["Ship"]}
        store.save("abc", doc)
        doc["goals"].append("Mutated")

        loaded = store.load("abc")
        loaded["goals"].append("Again")

        assert store.load("abc") == {"goals": ["Ship"]}

    def test_delete(self):
        store = MemoryStore()
        store.save("abc", {})
        assert store.delete("abc") is True
        assert store.delete("abc") is False


class TestListIndex:
    """Test cases for ListIndex, file backed and in memory."""

    @pytest.fixture(params=["file", "memory"])
    def index(self, request, tmp_path):
        if request.param == "file":
            return ListIndex(tmp_path / "lists.json")
        return ListIndex()

    def test_add_puts_newest_first(self, index):
        index.add(ListRecord(list_id="one", title="First"))
        index.add(ListRecord(list_id="two", title="Second"))
        assert [r.list_id for r in index.all()] == ["two", "one"]

    def test_get_and_missing(self, index):
        index.add(ListRecord(list_id="one", title="First"))
        assert index.get("one").title == "First"
        with pytest.raises(ListNotFoundError):
            index.get("nope")

    def test_touch_updates_timestamp(self, index):
        index.add(ListRecord(list_id="one", title="First", updated_at="2000-01-01T00:00:00Z"))
        index.touch("one")
        assert index.get("one").updated_at != "2000-01-01T00:00:00Z"

    def test_remove(self, index):
        index.add(ListRecord(list_id="one", title="First"))
        assert index.remove("one") is True
        assert index.remove("one") is False
        assert index.all() == []

    def test_corrupt_index_reads_empty(self, tmp_path):
        path = tmp_path / "lists.json"
        path.write_text('{"not": "a list"}', encoding="utf-8")
        assert ListIndex(path).all() == []

    def test_skips_unusable_rows(self, tmp_path):
        path = tmp_path / "lists.json"
        path.write_text(json.dumps([{"id": "legacy", "title": "Old"}, {"title": "no id"}, 3]), encoding="utf-8")
        assert [r.list_id for r in ListIndex(path).all()] == ["legacy"]
