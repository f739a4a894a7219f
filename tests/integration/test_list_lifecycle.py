"""
Integration tests for the full StageDo list lifecycle.

These tests drive the workflow manager and the MCP tool functions against a
real on-disk workspace, with the generation service replaced by canned text.
"""

import asyncio

import pytest

import main
from stagedo.generation import GenerationResult
from stagedo.normalizer import PlainCanonicalizer
from stagedo.prompt import ACKNOWLEDGMENT_LINE
from stagedo.workflow import WorkflowManager, register_list_root

ANALYSIS = """
【Completion criteria (goals)】
- [ ] Workshop is held
- [ ] Everyone got an invite

【Breakdown (L1 -> L2 -> L3)】
L1: Prep
L3: Buy tools
L3: Clean desk
L1: Budget
L2: Quotes
L3: Get quotes
L3: Is this worth it?
L1: Plan
- Book venue
- Invite friends
- Send reminders
- Print badges
""".strip()

DECOMPOSITION = "- Call venues\n- Compare prices\n- Sign contract"


class ScriptedGenerator:
    """Returns the queued texts in order."""

    def __init__(self, *texts):
        self.texts = list(texts)
        self.calls = 0

    def generate(self, prompt):
        self.calls += 1
        return GenerationResult(text=self.texts.pop(0))


def item_id_by_text(state, text):
    return next(it["id"] for it in state["document"]["checklist"] if it["text"] == text)


class TestListLifecycle:
    """Integration tests for create, analyze, work, advance and hand off."""

    @pytest.fixture
    def manager(self, tmp_path):
        return WorkflowManager(
            tmp_path,
            generator=ScriptedGenerator(ANALYSIS, DECOMPOSITION),
            canonicalizer=PlainCanonicalizer(),
        )

    def test_complete_workflow(self, manager, tmp_path):
        """Test the complete workflow from draft to a second stage and hand-off."""
        list_id = manager.create_list("Run a workshop", draft="Need a venue, tools, people")["list"]["list_id"]

        # Stage 1 from the analysis
        analyzed = manager.analyze(list_id)
        assert analyzed["stage"] == 1
        assert analyzed["goals"] == ["Workshop is held", "Everyone got an invite"]
        assert [it["text"] for it in analyzed["issued"]] == [
            "Buy tools", "Get quotes", "Book venue", "Clean desk", "Invite friends",
        ]
        assert analyzed["remaining_candidates"] == 2

        # Split one task
        state = manager.get_list(list_id)
        venue_id = item_id_by_text(state, "Book venue")
        split = manager.decompose_item(list_id, venue_id)
        assert [it["text"] for it in split["sub_tasks"]] == ["Call venues", "Compare prices", "Sign contract"]
        assert {it["category"] for it in split["sub_tasks"]} == {"decomposition:Plan"}

        # Work the stage
        state = manager.get_list(list_id)
        for text in ("Buy tools", "Get quotes", "Call venues"):
            result = manager.toggle_done(list_id, item_id_by_text(state, text))
        assert result["next_suggested_step"] == "advance_stage"
        manager.set_status(list_id, item_id_by_text(state, "Clean desk"), "later")

        # Stage 2
        advanced = manager.advance_stage(list_id)
        assert advanced["stage"] == 2
        assert [it["text"] for it in advanced["issued"]] == ["Send reminders", "Print badges"]
        assert {p["text"] for p in advanced["carried_over"]} == {
            "Clean desk", "Invite friends", "Compare prices", "Sign contract",
        }

        metrics = manager.metrics(list_id)["metrics"]
        assert metrics["archived_created"] == 7
        assert metrics["archived_done"] == 3
        assert metrics["lifetime_progress"] == 33
        assert metrics["remaining_candidates"] == 0

        # Parking board
        parked = manager.parked(list_id)["parked"]
        clean = next(p for p in parked if p["text"] == "Clean desk")
        assert clean["status"] == "later"
        assert clean["stage"] == 1

        revived = manager.revive_parked(list_id, clean["key"])
        assert revived["item"]["text"] == "Clean desk"
        assert len(manager.parked(list_id)["parked"]) == 3

        # Undo the revive
        restored = manager.restore_snapshot(list_id, 0)
        assert [it["text"] for it in restored["checklist"]] == ["Send reminders", "Print badges"]
        assert len(manager.parked(list_id)["parked"]) == 4

        # Hand-off
        prompt = manager.issue_prompt(list_id, include_analysis=True)["prompt"]
        assert ACKNOWLEDGMENT_LINE in prompt
        assert "## Current checklist (Stage 2)" in prompt
        assert "L3: Buy tools" in prompt
        assert manager.export_text(list_id)["text"].startswith(prompt)

        # A fresh manager reads the same state from disk
        reloaded = WorkflowManager(tmp_path).get_list(list_id)
        assert reloaded["document"]["stage"] == 2
        assert reloaded["document"]["issued_prompt"] == prompt

    def test_generation_failure_is_reported(self, tmp_path):
        """Test that a failed analysis leaves the list untouched."""

        class FailingGenerator:
            def generate(self, prompt):
                return GenerationResult(error="service unavailable")

        manager = WorkflowManager(tmp_path, generator=FailingGenerator())
        list_id = manager.create_list("Run a workshop", draft="notes")["list"]["list_id"]

        result = manager.analyze(list_id)

        assert result["error_type"] == "UpstreamError"
        assert "Retry" in result["suggestion"]
        assert manager.get_list(list_id)["document"]["checklist"] == []


class TestMcpTools:
    """Integration tests calling the MCP tool functions directly."""

    @pytest.fixture
    def project(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STAGEDO_PROJECT_ROOT", str(tmp_path))
        manager = WorkflowManager(
            tmp_path,
            generator=ScriptedGenerator(ANALYSIS, DECOMPOSITION),
            canonicalizer=PlainCanonicalizer(),
        )
        monkeypatch.setitem(main._MANAGERS, tmp_path.resolve(), manager)
        return manager

    def test_tools_share_one_manager(self, project):
        list_id = main.create_list("Run a workshop", draft="notes")["list"]["list_id"]

        analyzed = asyncio.run(main.analyze(list_id))
        assert analyzed["issued_count"] == 5

        state = main.get_list(list_id)
        venue_id = item_id_by_text(state, "Book venue")
        split = asyncio.run(main.decompose_item(list_id, venue_id))
        assert len(split["sub_tasks"]) == 3
        assert project.workspace.generator.calls == 2

        assert main.get_metrics(list_id)["metrics"]["busy_items"] == []
        assert "Run a workshop" in main.resource_lists()

    def test_tool_errors_are_dictionaries(self, project):
        result = main.set_item_status("missing", "item", "later")

        assert result["error_type"] == "ListNotFoundError"
        assert "suggestion" in result

    def test_workflow_guide(self):
        guide = main.get_workflow_guide()
        assert [step["step"] for step in guide["steps"]] == [1, 2, 3, 4, 5, 6]


class TestRootResolution:
    """Integration tests for project root discovery."""

    def test_explicit_root_must_exist(self, tmp_path):
        with pytest.raises(ValueError, match="does not exist"):
            main._resolve_root(str(tmp_path / "missing"))

    def test_env_root(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STAGEDO_PROJECT_ROOT", str(tmp_path))
        assert main._resolve_root(None) == tmp_path.resolve()

    def test_registered_list_root(self, tmp_path):
        register_list_root("registered-list", tmp_path)
        assert main._resolve_root(None, list_id="registered-list") == tmp_path.resolve()

    def test_marker_directory(self, tmp_path, monkeypatch):
        (tmp_path / ".stagedo").mkdir()
        monkeypatch.chdir(tmp_path)
        assert main._resolve_root(None) == tmp_path.resolve()

    def test_nothing_found(self, monkeypatch):
        monkeypatch.setattr(main, "_locate_workspace_root", lambda: None)
        with pytest.raises(ValueError, match="Unable to determine project root"):
            main._resolve_root(None)
