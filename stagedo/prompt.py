"""Render a list into a hand-off prompt for another assistant.

Every section is always present; an empty one renders ``(none)`` so the
receiving side can rely on a stable layout.
"""

from __future__ import annotations

from typing import List, Sequence

from .models import LATER, UNCATEGORIZED, UNKNOWN, ChecklistItem

ACKNOWLEDGMENT_LINE = "OK, baton received from StageDo. I'll take it from here."
NONE_PLACEHOLDER = "(none)"

GROUP_GLYPH = "▸"
TASK_OPEN = "[ ]"
TASK_DONE = "[x]"
INDENT = "  "

_STATUS_NOTES = {UNKNOWN: "(unknown)", LATER: "(later)"}

PREAMBLE = [
    "# StageDo -> Baton Pass",
    "",
    "You are an execution-focused assistant. Help the user reach the goals below",
    "by turning the checklist into concrete, trackable work.",
    "",
    "## Your first reply (required, start with exactly this line)",
    ACKNOWLEDGMENT_LINE,
    "",
    "## Rules",
    "- Do not stop at abstractions. Always land on concrete actions.",
    "- First propose three Next Actions that each fit in the next 15 minutes.",
    "- Then reshape the checklist into smaller steps that are harder to get stuck on.",
    "- Ask at most 2 questions, and only after proposing a tentative plan.",
]


def _fenced(body: str) -> str:
    return f"```markdown\n{body}\n```"


def goals_to_markdown(goals: Sequence[str]) -> str:
    if not goals:
        return f"- {NONE_PLACEHOLDER}"
    return "\n".join(f"- {g}" for g in goals)


def checklist_line(item: ChecklistItem) -> str:
    """One rendered node: indentation by depth, glyph, category and annotations."""
    indent = INDENT * max(item.depth, 0)
    category = item.category or UNCATEGORIZED
    if item.is_group:
        return f"{indent}- {GROUP_GLYPH} [{category}] {item.text}"
    mark = TASK_DONE if item.done else TASK_OPEN
    line = f"{indent}- {mark} [{category}] {item.text}"
    note = _STATUS_NOTES.get(item.status)
    if note:
        line = f"{line} {note}"
    return line


def checklist_to_markdown(checklist: Sequence[ChecklistItem]) -> str:
    if not checklist:
        return f"- {TASK_OPEN} {NONE_PLACEHOLDER}"
    return "\n".join(checklist_line(item) for item in checklist)


def _optional_block(title: str, body: str) -> str:
    text = (body or "").strip()
    if not text:
        return f"## {title}\n\n{NONE_PLACEHOLDER}"
    return f"## {title}\n\n{_fenced(text)}"


def compose_handoff(
    draft: str,
    analysis: str,
    goals: Sequence[str],
    checklist: Sequence[ChecklistItem],
    stage: int,
    include_draft: bool = False,
    include_analysis: bool = False,
) -> str:
    """Build the hand-off document. Pure; the same inputs give the same text."""
    sections: List[str] = [
        f"## Goals (completion criteria)\n\n{_fenced(goals_to_markdown(goals))}",
        f"## Current checklist (Stage {stage or 0})\n\n{_fenced(checklist_to_markdown(checklist))}",
    ]
    if include_draft:
        sections.append(_optional_block("Draft (reference)", draft))
    if include_analysis:
        sections.append(_optional_block("Analysis (reference)", analysis))

    return "\n".join(PREAMBLE + [""]) + "\n" + "\n\n".join(sections)


def compose_export(
    prompt: str,
    goals: Sequence[str],
    checklist: Sequence[ChecklistItem],
) -> str:
    """Prompt followed by plain goal and checklist lists, for copying in one go."""
    return "\n".join(
        [
            prompt.strip(),
            "",
            "---",
            "",
            "## Goals",
            goals_to_markdown(goals),
            "",
            "## Checklist",
            checklist_to_markdown(checklist),
        ]
    )
