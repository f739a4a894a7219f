"""Unit tests for the hand-off prompt composer."""

from stagedo.models import GROUP, LATER, UNKNOWN, ChecklistItem
from stagedo.prompt import (
    ACKNOWLEDGMENT_LINE,
    NONE_PLACEHOLDER,
    checklist_to_markdown,
    compose_export,
    compose_handoff,
    goals_to_markdown,
)


def sample_checklist():
    group = ChecklistItem(id="g", text="Plan trip", category="Travel", type=GROUP, done=True)
    booked = ChecklistItem(id="a", text="Book hotel", category="decomposition:Travel", depth=1, done=True)
    later = ChecklistItem(id="b", text="Pack bags", category="decomposition:Travel", depth=1, status=LATER)
    unsure = ChecklistItem(id="c", text="Ask for leave", category="Work", status=UNKNOWN)
    return [group, booked, later, unsure]


class TestComposeHandoff:
    """Test cases for compose_handoff."""

    def test_preamble_and_rules(self):
        text = compose_handoff("", "", [], [], 1)

        lines = text.splitlines()
        assert ACKNOWLEDGMENT_LINE in lines
        assert "15 minutes" in text
        assert "at most 2 questions" in text
        assert "tentative plan" in text

    def test_empty_sections_render_placeholder(self):
        text = compose_handoff("", "", [], [], 0)

        assert "## Goals (completion criteria)" in text
        assert "## Current checklist (Stage 0)" in text
        assert text.count(NONE_PLACEHOLDER) == 2

    def test_optional_blocks(self):
        without = compose_handoff("my notes", "- Buy tools", [], [], 1)
        assert "Draft (reference)" not in without
        assert "Analysis (reference)" not in without

        with_blocks = compose_handoff("my notes", "", [], [], 1, include_draft=True, include_analysis=True)
        assert "## Draft (reference)\n\n```markdown\nmy notes\n```" in with_blocks
        assert f"## Analysis (reference)\n\n{NONE_PLACEHOLDER}" in with_blocks

    def test_checklist_rendering(self):
        text = compose_handoff("", "", ["Trip booked"], sample_checklist(), 3)

        assert "## Current checklist (Stage 3)" in text
        assert "- Trip booked" in text
        assert "- ▸ [Travel] Plan trip" in text
        assert "  - [x] [decomposition:Travel] Book hotel" in text
        assert "  - [ ] [decomposition:Travel] Pack bags (later)" in text
        assert "- [ ] [Work] Ask for leave (unknown)" in text

    def test_pure(self):
        args = ("d", "a", ["g"], sample_checklist(), 2)
        assert compose_handoff(*args) == compose_handoff(*args)


class TestMarkdownHelpers:
    """Test cases for the list renderers."""

    def test_goals(self):
        assert goals_to_markdown(["a", "b"]) == "- a\n- b"
        assert goals_to_markdown([]) == f"- {NONE_PLACEHOLDER}"

    def test_checklist_indentation_follows_depth(self):
        lines = checklist_to_markdown(sample_checklist()).splitlines()
        assert [len(line) - len(line.lstrip(" ")) for line in lines] == [0, 2, 2, 0]


class TestComposeExport:
    """Test cases for compose_export."""

    def test_prompt_then_lists(self):
        text = compose_export("  PROMPT  ", ["Trip booked"], sample_checklist())

        assert text.startswith("PROMPT\n\n---\n\n## Goals\n- Trip booked\n\n## Checklist\n")
        assert text.endswith("- [ ] [Work] Ask for leave (unknown)")
