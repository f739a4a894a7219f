"""MCP server exposing StageDo staged checklist tools."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from stagedo import WorkflowManager, lookup_list_root
from stagedo.stagedo_logging import setup_logging

mcp = FastMCP("stagedo")


PROJECT_MARKER_DIRECTORIES = (".stagedo",)
SERVER_ROOT = Path(__file__).resolve().parent

# One manager per root so busy-item tracking spans tool calls
_MANAGERS: Dict[Path, WorkflowManager] = {}


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _locate_workspace_root() -> Optional[Path]:
    for base in _candidate_bases():
        for marker in PROJECT_MARKER_DIRECTORIES:
            if (base / marker).exists():
                return base
    return None


def _resolve_root(root: Optional[str], *, list_id: Optional[str] = None) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv("STAGEDO_PROJECT_ROOT")
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable STAGEDO_PROJECT_ROOT points to '{env_root}', which does not exist."
            )
        return env_path

    if list_id:
        registered = lookup_list_root(list_id)
        if registered:
            return registered

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the STAGEDO_PROJECT_ROOT environment variable."
    )


def _manager(root: Optional[str], *, list_id: Optional[str] = None) -> WorkflowManager:
    resolved = _resolve_root(root, list_id=list_id)
    manager = _MANAGERS.get(resolved)
    if manager is None:
        manager = WorkflowManager(resolved)
        _MANAGERS[resolved] = manager
    return manager


# ----------------------------------------------------------------------
# Lists
# ----------------------------------------------------------------------

@mcp.tool()
def create_list(title: str, draft: str = "", root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Create a list whose title is the goal to reach. An optional rough draft can be given now
    or later with set_draft."""

    return _manager(root).create_list(title, draft)


@mcp.tool()
def list_lists(root: Optional[str] = None) -> Dict[str, Any]:
    """Enumerate lists in the workspace with their stage and lifetime progress."""

    return _manager(root).list_lists()


@mcp.tool()
def get_list(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return the full state of a list: draft, goals, checklist, parking board and metrics."""

    return _manager(root, list_id=list_id).get_list(list_id)


@mcp.tool()
def delete_list(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete a list and its stored document."""

    return _manager(root, list_id=list_id).delete_list(list_id)


@mcp.resource("stagedo://lists")
def resource_lists() -> str:
    """Resource view of the lists in the detected workspace."""

    try:
        manager = _manager(None)
    except ValueError:
        return "No project root detected. Launch tools with a 'root' argument or set STAGEDO_PROJECT_ROOT."

    lists = manager.list_lists().get("lists", [])
    if not lists:
        return "No lists have been created yet."

    lines = ["StageDo Lists"]
    for row in lists:
        lines.append("")
        lines.append(f"- {row['list_id']}: {row['title']}")
        lines.append(f"  Stage {row['stage']}, lifetime progress {row['lifetime_progress']}%")
    return "\n".join(lines)


@mcp.tool()
def set_draft(list_id: str, draft: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 2: Replace the list's rough draft. The draft is what analyze works from."""

    return _manager(root, list_id=list_id).set_draft(list_id, draft)


# ----------------------------------------------------------------------
# Generation
# ----------------------------------------------------------------------

@mcp.tool()
async def analyze(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Analyze the draft into goals and a categorized breakdown, then issue the first
    stage of at most 5 tasks. Nothing changes if the generation call fails."""

    manager = _manager(root, list_id=list_id)
    return await asyncio.to_thread(manager.analyze, list_id)


@mcp.tool()
async def decompose_item(list_id: str, item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Split one task into 1-7 generated sub-tasks. The task becomes a group; the item is busy
    until the call resolves."""

    manager = _manager(root, list_id=list_id)
    return await asyncio.to_thread(manager.decompose_item, list_id, item_id)


# ----------------------------------------------------------------------
# Checklist
# ----------------------------------------------------------------------

@mcp.tool()
def add_task(list_id: str, text: str, category: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Add a task at the top of the checklist."""

    return _manager(root, list_id=list_id).add_task(list_id, text, category)


@mcp.tool()
def update_item(
    list_id: str,
    item_id: str,
    text: Optional[str] = None,
    category: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Change the text and/or category of a checklist item."""

    return _manager(root, list_id=list_id).update_item(list_id, item_id, text=text, category=category)


@mcp.tool()
def toggle_done(list_id: str, item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 4: Mark a task done, or not done again. Groups are left unchanged."""

    return _manager(root, list_id=list_id).toggle_done(list_id, item_id)


@mcp.tool()
def delete_item(list_id: str, item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete an item together with its sub-tasks. A snapshot is taken first."""

    return _manager(root, list_id=list_id).delete_item(list_id, item_id)


@mcp.tool()
def set_item_status(list_id: str, item_id: str, status: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Toggle 'unknown' or 'later' on a task. Both park the task; 'later' also moves it to the end
    of its level."""

    return _manager(root, list_id=list_id).set_status(list_id, item_id, status)


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------

@mcp.tool()
def advance_stage(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 5: Archive the current stage and issue up to 5 new tasks. Allowed once 3 tasks are done
    or at most 2 remain; unfinished tasks are parked."""

    return _manager(root, list_id=list_id).advance_stage(list_id)


@mcp.tool()
def get_metrics(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Stage and lifetime progress, remaining candidates and advance eligibility."""

    return _manager(root, list_id=list_id).metrics(list_id)


@mcp.tool()
def list_parked(list_id: str, include_resolved: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Show the parking board."""

    return _manager(root, list_id=list_id).parked(list_id, include_resolved)


@mcp.tool()
def revive_parked(list_id: str, key: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Bring a parked task back to the top of the checklist."""

    return _manager(root, list_id=list_id).revive_parked(list_id, key)


@mcp.tool()
def clear_parked(list_id: str, key: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Dismiss a parked task without returning it."""

    return _manager(root, list_id=list_id).clear_parked(list_id, key)


@mcp.tool()
def list_snapshots(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """List the undo history, newest first."""

    return _manager(root, list_id=list_id).snapshots(list_id)


@mcp.tool()
def capture_snapshot(list_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Save the current state of the list to the undo history."""

    return _manager(root, list_id=list_id).capture_snapshot(list_id)


@mcp.tool()
def restore_snapshot(list_id: str, index: int = 0, root: Optional[str] = None) -> Dict[str, Any]:
    """Restore a snapshot (0 is the newest). The restored entry leaves the history."""

    return _manager(root, list_id=list_id).restore_snapshot(list_id, index)


# ----------------------------------------------------------------------
# Hand-off
# ----------------------------------------------------------------------

@mcp.tool()
def issue_prompt(
    list_id: str,
    include_draft: bool = False,
    include_analysis: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 6: Compose the hand-off prompt for another assistant and store it on the list."""

    return _manager(root, list_id=list_id).issue_prompt(list_id, include_draft, include_analysis)


@mcp.tool()
def export_text(
    list_id: str,
    include_draft: bool = False,
    include_analysis: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """The issued prompt followed by plain goal and checklist lists."""

    return _manager(root, list_id=list_id).export_text(list_id, include_draft, include_analysis)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get guidance on the recommended StageDo workflow."""
    return {
        "workflow_overview": "Turn a rough draft into small stages of concrete tasks",
        "steps": [
            {"step": 1, "tool": "create_list", "description": "Create a list titled with the goal"},
            {"step": 2, "tool": "set_draft", "description": "Write down everything on your mind"},
            {"step": 3, "tool": "analyze", "description": "Extract goals and the first 5 tasks"},
            {
                "step": 4,
                "tools": ["toggle_done", "set_item_status", "decompose_item"],
                "description": "Work the stage: finish, park or split tasks",
            },
            {"step": 5, "tool": "advance_stage", "description": "Issue the next stage when ready"},
            {"step": 6, "tools": ["issue_prompt", "export_text"], "description": "Hand off to another assistant"},
        ],
        "tips": [
            "A stage never holds more than 5 fresh tasks",
            "Parked tasks are not lost; revive_parked brings them back",
            "delete_item, decompose_item and advance_stage take a snapshot first",
        ],
    }


if __name__ == "__main__":
    log_file = os.getenv("STAGEDO_LOG_FILE")
    setup_logging(os.getenv("STAGEDO_LOG_LEVEL", "INFO").upper(), Path(log_file) if log_file else None)
    mcp.run(transport="stdio")
