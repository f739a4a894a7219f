"""Workflow management for StageDo.

``WorkflowManager`` is the boundary between the workspace and its callers.
Each method runs one workspace operation and returns a plain dictionary:
the serialised result plus ``message`` and ``next_suggested_step`` on success,
or ``error``, ``suggestion`` and ``message`` on failure. Nothing raises out of
this layer.
"""

from __future__ import annotations

import logging as std_logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import StageDoError
from .generation import TextGenerator
from .normalizer import Canonicalizer
from .stagedo_logging import log_error_with_context
from .storage import DocumentStore
from .workspace import Workspace

logger = std_logging.getLogger("stagedo.workflow")

UNEXPECTED_SUGGESTION = "Unexpected failure. Check the server log for details."


# Global registry for list roots
_LIST_ROOT_REGISTRY: Dict[str, Path] = {}


def register_list_root(list_id: str, root: Path | str) -> Path:
    """Record the project root that stores a list."""
    resolved = Path(root).resolve()
    _LIST_ROOT_REGISTRY[list_id] = resolved
    return resolved


def lookup_list_root(list_id: str) -> Optional[Path]:
    """Return the registered project root for the list, if any."""
    return _LIST_ROOT_REGISTRY.get(list_id)


def _failure(operation: str, error: Exception, **context: Any) -> Dict[str, Any]:
    if isinstance(error, StageDoError):
        logger.info(f"{operation} refused: {error}")
        suggestion = error.suggestion
    elif isinstance(error, ValueError):
        logger.info(f"{operation} rejected input: {error}")
        suggestion = "Check the arguments and retry."
    else:
        logger.error(f"{operation} failed: {error}")
        log_error_with_context(error, {"operation": operation, **context})
        suggestion = UNEXPECTED_SUGGESTION
    return {
        "error": str(error),
        "error_type": type(error).__name__,
        "suggestion": suggestion,
        "message": f"Error: {error}",
    }


class WorkflowManager:
    """Manages StageDo lists on behalf of tool callers."""

    def __init__(
        self,
        root: Path | str,
        store: Optional[DocumentStore] = None,
        generator: Optional[TextGenerator] = None,
        canonicalizer: Optional[Canonicalizer] = None,
    ):
        self.workspace = Workspace(root, store=store, generator=generator, canonicalizer=canonicalizer)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def create_list(self, title: str, draft: str = "") -> Dict[str, Any]:
        try:
            record = self.workspace.create_list(title, draft)
            register_list_root(record.list_id, self.workspace.root)
            return {
                "list": record.to_dict(),
                "next_suggested_step": "analyze" if draft.strip() else "set_draft",
                "message": f"List '{record.title}' created.",
            }
        except Exception as e:
            return _failure("create_list", e, title=title)

    def list_lists(self) -> Dict[str, Any]:
        try:
            lists = self.workspace.list_lists()
            return {
                "lists": lists,
                "message": f"{len(lists)} list(s) found." if lists else "No lists yet. Use create_list to start one.",
            }
        except Exception as e:
            return _failure("list_lists", e)

    def get_list(self, list_id: str) -> Dict[str, Any]:
        try:
            state = self.workspace.get_list(list_id)
            state["message"] = f"List '{state['list']['title']}' at stage {state['document']['stage']}."
            state["next_suggested_step"] = self._next_step(state["metrics"], state["document"])
            return state
        except Exception as e:
            return _failure("get_list", e, list_id=list_id)

    def delete_list(self, list_id: str) -> Dict[str, Any]:
        try:
            self.workspace.delete_list(list_id)
            _LIST_ROOT_REGISTRY.pop(list_id, None)
            return {"list_id": list_id, "deleted": True, "message": f"List '{list_id}' deleted."}
        except Exception as e:
            return _failure("delete_list", e, list_id=list_id)

    def set_draft(self, list_id: str, draft: str) -> Dict[str, Any]:
        try:
            doc = self.workspace.set_draft(list_id, draft)
            return {
                "list_id": list_id,
                "draft_length": len(doc.draft),
                "next_suggested_step": "analyze",
                "message": "Draft saved.",
            }
        except Exception as e:
            return _failure("set_draft", e, list_id=list_id)

    # ------------------------------------------------------------------
    # Checklist
    # ------------------------------------------------------------------

    def _item_result(self, list_id: str, item, message: str) -> Dict[str, Any]:
        return {
            "list_id": list_id,
            "item": item.to_dict(),
            "metrics": self.workspace.metrics(list_id),
            "message": message,
        }

    def add_task(self, list_id: str, text: str, category: Optional[str] = None) -> Dict[str, Any]:
        try:
            item = self.workspace.add_task(list_id, text, category)
            return self._item_result(list_id, item, f"Added '{item.text}'.")
        except Exception as e:
            return _failure("add_task", e, list_id=list_id)

    def update_item(
        self,
        list_id: str,
        item_id: str,
        text: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            item = self.workspace.update_item(list_id, item_id, text=text, category=category)
            return self._item_result(list_id, item, "Item updated.")
        except Exception as e:
            return _failure("update_item", e, list_id=list_id, item_id=item_id)

    def toggle_done(self, list_id: str, item_id: str) -> Dict[str, Any]:
        try:
            item = self.workspace.toggle_done(list_id, item_id)
            result = self._item_result(
                list_id, item, f"Marked '{item.text}' as {'done' if item.done else 'not done'}."
            )
            if result["metrics"]["can_advance"]:
                result["next_suggested_step"] = "advance_stage"
            return result
        except Exception as e:
            return _failure("toggle_done", e, list_id=list_id, item_id=item_id)

    def delete_item(self, list_id: str, item_id: str) -> Dict[str, Any]:
        try:
            removed = self.workspace.delete_item(list_id, item_id)
            return {
                "list_id": list_id,
                "removed": [it.to_dict() for it in removed],
                "message": f"Removed {len(removed)} item(s). Use restore_snapshot to undo.",
            }
        except Exception as e:
            return _failure("delete_item", e, list_id=list_id, item_id=item_id)

    def set_status(self, list_id: str, item_id: str, status: str) -> Dict[str, Any]:
        """Toggle ``unknown`` or ``later`` on an item."""
        try:
            if status == "unknown":
                item = self.workspace.set_unknown(list_id, item_id)
            elif status == "later":
                item = self.workspace.set_later(list_id, item_id)
            else:
                raise ValueError("Status must be 'unknown' or 'later'")
            return self._item_result(list_id, item, f"'{item.text}' is now {item.status}.")
        except Exception as e:
            return _failure("set_status", e, list_id=list_id, item_id=item_id, status=status)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def analyze(self, list_id: str) -> Dict[str, Any]:
        try:
            advance = self.workspace.analyze(list_id)
            doc = self.workspace.load(list_id)
            return {
                "list_id": list_id,
                **advance.to_dict(),
                "goals": list(doc.goals),
                "next_suggested_step": "toggle_done",
                "message": f"Analysis stored; {len(advance.issued)} task(s) issued for stage {advance.stage}.",
            }
        except Exception as e:
            return _failure("analyze", e, list_id=list_id)

    def decompose_item(self, list_id: str, item_id: str) -> Dict[str, Any]:
        try:
            children = self.workspace.decompose_item(list_id, item_id)
            return {
                "list_id": list_id,
                "item_id": item_id,
                "sub_tasks": [it.to_dict() for it in children],
                "message": f"Split into {len(children)} sub-task(s).",
            }
        except Exception as e:
            return _failure("decompose_item", e, list_id=list_id, item_id=item_id)

    # ------------------------------------------------------------------
    # Stages, parking and snapshots
    # ------------------------------------------------------------------

    def advance_stage(self, list_id: str) -> Dict[str, Any]:
        try:
            advance = self.workspace.advance_stage(list_id)
            return {
                "list_id": list_id,
                **advance.to_dict(),
                "message": (
                    f"Stage {advance.stage}: {len(advance.issued)} task(s) issued, "
                    f"{advance.remaining} candidate(s) left, {len(advance.carried_over)} parked."
                ),
            }
        except Exception as e:
            return _failure("advance_stage", e, list_id=list_id)

    def metrics(self, list_id: str) -> Dict[str, Any]:
        try:
            metrics = self.workspace.metrics(list_id)
            return {"list_id": list_id, "metrics": metrics, "message": f"Stage {metrics['stage']}."}
        except Exception as e:
            return _failure("metrics", e, list_id=list_id)

    def parked(self, list_id: str, include_resolved: bool = False) -> Dict[str, Any]:
        try:
            entries = self.workspace.parked(list_id, include_resolved)
            return {
                "list_id": list_id,
                "parked": [p.to_dict() for p in entries],
                "message": f"{len(entries)} parked item(s).",
            }
        except Exception as e:
            return _failure("parked", e, list_id=list_id)

    def revive_parked(self, list_id: str, key: str) -> Dict[str, Any]:
        try:
            item = self.workspace.revive_parked(list_id, key)
            return {
                "list_id": list_id,
                "key": key,
                "item": item.to_dict() if item else None,
                "message": "Returned to the checklist." if item else "Already on the checklist; parked entry resolved.",
            }
        except Exception as e:
            return _failure("revive_parked", e, list_id=list_id, key=key)

    def clear_parked(self, list_id: str, key: str) -> Dict[str, Any]:
        try:
            changed = self.workspace.clear_parked(list_id, key)
            return {
                "list_id": list_id,
                "key": key,
                "cleared": changed,
                "message": "Parked item cleared." if changed else "Parked item was already resolved.",
            }
        except Exception as e:
            return _failure("clear_parked", e, list_id=list_id, key=key)

    def snapshots(self, list_id: str) -> Dict[str, Any]:
        try:
            entries = self.workspace.snapshots(list_id)
            return {"list_id": list_id, "snapshots": entries, "message": f"{len(entries)} snapshot(s)."}
        except Exception as e:
            return _failure("snapshots", e, list_id=list_id)

    def capture_snapshot(self, list_id: str) -> Dict[str, Any]:
        try:
            summary = self.workspace.capture_snapshot(list_id)
            return {"list_id": list_id, "snapshot": summary, "message": "Snapshot captured."}
        except Exception as e:
            return _failure("capture_snapshot", e, list_id=list_id)

    def restore_snapshot(self, list_id: str, index: int = 0) -> Dict[str, Any]:
        try:
            doc = self.workspace.restore_snapshot(list_id, index)
            return {
                "list_id": list_id,
                "stage": doc.stage,
                "checklist": [it.to_dict() for it in doc.checklist],
                "message": f"Restored snapshot {index}; now at stage {doc.stage}.",
            }
        except Exception as e:
            return _failure("restore_snapshot", e, list_id=list_id, index=index)

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def issue_prompt(self, list_id: str, include_draft: bool = False, include_analysis: bool = False) -> Dict[str, Any]:
        try:
            prompt = self.workspace.issue_prompt(list_id, include_draft, include_analysis)
            return {"list_id": list_id, "prompt": prompt, "message": "Hand-off prompt issued."}
        except Exception as e:
            return _failure("issue_prompt", e, list_id=list_id)

    def export_text(self, list_id: str, include_draft: bool = False, include_analysis: bool = False) -> Dict[str, Any]:
        try:
            text = self.workspace.export_text(list_id, include_draft, include_analysis)
            return {"list_id": list_id, "text": text, "message": "Prompt, goals and checklist exported."}
        except Exception as e:
            return _failure("export_text", e, list_id=list_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _next_step(metrics: Dict[str, Any], document: Dict[str, Any]) -> str:
        if not document.get("analysis"):
            return "analyze" if document.get("draft", "").strip() else "set_draft"
        if metrics.get("can_advance") and metrics.get("remaining_candidates"):
            return "advance_stage"
        if metrics.get("tasks", {}).get("remaining"):
            return "toggle_done"
        return "issue_prompt"
