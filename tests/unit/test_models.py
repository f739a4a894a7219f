"""Unit tests for StageDo models.

This module tests the document data structures, their serialization and the
coercion rules applied to malformed or legacy persisted data.
"""

import pytest

from stagedo.models import (
    GROUP,
    LATER,
    NORMAL,
    TASK,
    UNCATEGORIZED,
    ChecklistItem,
    ListDocument,
    ListRecord,
    ParkedItem,
    StageSnapshot,
    park_key,
)


class TestChecklistItem:
    """Test cases for ChecklistItem model."""

    def test_new_task_defaults(self):
        item = ChecklistItem.new_task("Buy tools")

        assert item.id
        assert item.text == "Buy tools"
        assert item.done is False
        assert item.category == UNCATEGORIZED
        assert item.type == TASK
        assert item.depth == 0
        assert item.status == NORMAL
        assert item.created_at is not None

    def test_ids_are_unique(self):
        assert ChecklistItem.new_task("a").id != ChecklistItem.new_task("a").id

    def test_round_trip(self):
        item = ChecklistItem.new_task("Buy tools", "Prep", depth=2)
        item.status = LATER

        assert ChecklistItem.from_dict(item.to_dict()) == item

    def test_to_dict_omits_missing_created_at(self):
        item = ChecklistItem(id="x", text="t")
        assert "created_at" not in item.to_dict()

    def test_from_dict_coerces_bad_fields(self):
        item = ChecklistItem.from_dict({
            "id": "a1",
            "text": "Buy tools",
            "depth": -3,
            "status": "urgent",
            "type": "folder",
            "createdAt": "2024-01-01T00:00:00Z",
        })

        assert item.depth == 0
        assert item.status == NORMAL
        assert item.type == TASK
        assert item.category == UNCATEGORIZED
        assert item.created_at == "2024-01-01T00:00:00Z"

    @pytest.mark.parametrize("raw, expected", [
        (True, True),
        (False, False),
        ("true", True),
        (" True ", True),
        ("false", False),
        ("yes", False),
        (1, False),
        (None, False),
        ([True], False),
    ])
    def test_from_dict_done_flag(self, raw, expected):
        assert ChecklistItem.from_dict({"text": "t", "done": raw}).done is expected

    def test_from_dict_generates_missing_id(self):
        assert ChecklistItem.from_dict({"text": "t"}).id

    def test_key_ignores_case_and_spacing(self):
        a = ChecklistItem.new_task("Buy  tools", "Prep")
        b = ChecklistItem.new_task("buy tools", "PREP")
        assert a.key == b.key
        assert a.key == park_key("prep", "buy tools")

    def test_key_depends_on_category(self):
        assert park_key("Prep", "Buy tools") != park_key("Budget", "Buy tools")


class TestParkedItem:
    """Test cases for ParkedItem model."""

    def test_round_trip(self):
        entry = ParkedItem(
            key="k",
            text="Buy tools",
            category="Prep",
            status=LATER,
            stage=2,
            created_at="2024-01-01T00:00:00Z",
            updated_at="2024-01-02T00:00:00Z",
            resolved_at="2024-01-03T00:00:00Z",
            resolution="done",
        )
        assert ParkedItem.from_dict(entry.to_dict()) == entry
        assert entry.is_resolved

    def test_without_text_is_dropped(self):
        assert ParkedItem.from_dict({"key": "k"}) is None

    def test_resolution_needs_timestamp(self):
        entry = ParkedItem.from_dict({"text": "t", "resolution": "done"})
        assert entry.resolution is None
        assert not entry.is_resolved

    def test_missing_key_is_derived(self):
        entry = ParkedItem.from_dict({"text": "Buy tools", "category": "Prep", "status": "unknown"})
        assert entry.key == park_key("Prep", "Buy tools")
        assert entry.status == "unknown"


class TestStageSnapshot:
    """Test cases for StageSnapshot model."""

    def test_stage_zero_is_kept(self):
        snap = StageSnapshot.from_dict({"stage": 0, "created_at": "2024-01-01T00:00:00Z"})
        assert snap is not None
        assert snap.stage == 0

    def test_missing_timestamp_is_dropped(self):
        assert StageSnapshot.from_dict({"stage": 3}) is None

    def test_legacy_keys(self):
        snap = StageSnapshot.from_dict({
            "stage": 2,
            "createdAt": "2024-01-01T00:00:00Z",
            "items": [{"id": "a", "text": "Buy tools"}],
            "aiResult": "- Buy tools",
        })
        assert [it.text for it in snap.checklist] == ["Buy tools"]
        assert snap.analysis == "- Buy tools"

    def test_summary(self):
        snap = StageSnapshot(
            stage=2,
            created_at="2024-01-01T00:00:00Z",
            checklist=[ChecklistItem(id="g", text="g", type=GROUP), ChecklistItem(id="t", text="t", depth=1)],
            goals=["ship"],
        )
        assert snap.summary() == {"stage": 2, "created_at": "2024-01-01T00:00:00Z", "tasks": 1, "goals": 1}


class TestListDocument:
    """Test cases for ListDocument model."""

    @pytest.mark.parametrize("raw", [None, "garbage", 42, ["a"]])
    def test_unusable_input_gives_default(self, raw):
        doc = ListDocument.from_dict(raw)
        assert doc.checklist == []
        assert doc.stage == 0
        assert doc.parked == []

    def test_fields_are_coerced_independently(self):
        doc = ListDocument.from_dict({
            "draft": "notes",
            "stage": "3",
            "goals": "not a list",
            "checklist": [{"id": "a", "text": "Buy tools"}, {"id": "b"}, "junk"],
            "archivedCreated": -5,
            "archivedDone": "2",
            "parked": [{"text": "Later thing"}, {"key": "k"}],
            "stageHistory": [{"stage": 1}, {"stage": 1, "createdAt": "2024-01-01T00:00:00Z"}],
        })

        assert doc.draft == "notes"
        assert doc.stage == 3
        assert doc.goals == []
        assert [it.id for it in doc.checklist] == ["a"]
        assert doc.archived_created == 0
        assert doc.archived_done == 2
        assert [p.text for p in doc.parked] == ["Later thing"]
        assert len(doc.stage_history) == 1

    def test_legacy_camel_case_keys(self):
        doc = ListDocument.from_dict({
            "aiResult": "- a",
            "usedActionKeys": ["a"],
            "issuedPrompt": "p",
            "updatedAt": "2024-01-01T00:00:00Z",
        })
        assert doc.analysis == "- a"
        assert doc.used_action_keys == ["a"]
        assert doc.issued_prompt == "p"
        assert doc.updated_at == "2024-01-01T00:00:00Z"

    def test_round_trip(self):
        doc = ListDocument(draft="d", analysis="- a", goals=["g"], stage=2, used_action_keys=["a"])
        doc.checklist = [ChecklistItem.new_task("a", "Prep")]
        assert ListDocument.from_dict(doc.to_dict()) == doc

    def test_register_actions_is_idempotent(self):
        doc = ListDocument()

        assert doc.register_actions(["Buy tools", "Get quotes"]) == 2
        assert doc.register_actions(["buy  TOOLS", "Get quotes", ""]) == 0
        assert doc.used_action_keys == ["Buy tools", "Get quotes"]
        assert doc.is_used("BUY TOOLS")
        assert not doc.is_used("Book venue")

    def test_tasks_excludes_groups(self):
        doc = ListDocument(checklist=[
            ChecklistItem(id="g", text="g", type=GROUP),
            ChecklistItem(id="t", text="t", depth=1),
        ])
        assert [it.id for it in doc.tasks()] == ["t"]
        assert doc.find_item("g").is_group
        assert doc.find_item("zzz") is None


class TestListRecord:
    """Test cases for ListRecord model."""

    def test_round_trip(self):
        record = ListRecord(list_id="abc", title="Move house")
        assert ListRecord.from_dict(record.to_dict()) == record

    def test_accepts_id_key(self):
        record = ListRecord.from_dict({"id": "abc", "title": "Move house", "createdAt": "2024-01-01T00:00:00Z"})
        assert record.list_id == "abc"
        assert record.updated_at == "2024-01-01T00:00:00Z"

    def test_requires_id_and_title(self):
        assert ListRecord.from_dict({"id": "abc"}) is None
        assert ListRecord.from_dict({"title": "Move house"}) is None
