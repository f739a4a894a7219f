"""Workspace management for StageDo lists.

A workspace owns a storage directory under a project root. Every mutation
follows the same path: load the whole list document, apply the change in
memory, write the whole document back. A change that raises is never written.
"""

from __future__ import annotations

import logging as std_logging
import os
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from .checklist import ChecklistEditor
from .errors import (
    EmptyResultError,
    ExtractionError,
    InputEmptyError,
    ItemBusyError,
    ItemNotFoundError,
    ItemStateError,
    UpstreamError,
)
from .extractor import extract_sub_tasks
from .generation import (
    GenerationResult,
    TextGenerator,
    build_analysis_prompt,
    build_decompose_prompt,
    generator_from_env,
)
from .models import NORMAL, ChecklistItem, ListDocument, ListRecord, ParkedItem, utc_timestamp
from .normalizer import Canonicalizer, normalize_line
from .prompt import compose_export, compose_handoff
from .stage import StageAdvance, StageEngine, lifetime_progress
from .stagedo_logging import (
    log_decomposition,
    log_error_with_context,
    log_operation,
    log_parking_event,
    log_performance,
    log_snapshot_event,
    log_stage_advance,
    observability_hooks,
)
from .storage import INDEX_FILE, DocumentStore, JsonFileStore, ListIndex

logger = std_logging.getLogger("stagedo.workspace")


class Workspace:
    """Manage StageDo lists within a project root."""

    STORAGE_DIR_ENV = "STAGEDO_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".stagedo"

    def __init__(
        self,
        root: Path | str,
        store: Optional[DocumentStore] = None,
        generator: Optional[TextGenerator] = None,
        canonicalizer: Optional[Canonicalizer] = None,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.root = Path(root).resolve()
        self.base_dir = self.root / (os.getenv(self.STORAGE_DIR_ENV, "").strip() or self.DEFAULT_STORAGE_DIR)
        self.clock = clock
        self.canonicalizer = canonicalizer
        self._generator = generator
        self._busy: Dict[str, Set[str]] = {}
        self._busy_lock = threading.Lock()
        self._list_locks: Dict[str, threading.Lock] = {}
        self._list_locks_guard = threading.Lock()

        if store is None:
            try:
                self.store: DocumentStore = JsonFileStore(self.base_dir / "lists")
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise RuntimeError(f"Could not initialize workspace at {self.root}: {e}")
            self.index = ListIndex(self.base_dir / INDEX_FILE)
        else:
            self.store = store
            self.index = ListIndex()

        logger.info(f"Workspace initialized at {self.root}")
        observability_hooks.log_list_event("workspace_initialized", root=str(self.root))

    @property
    def generator(self) -> TextGenerator:
        if self._generator is None:
            self._generator = generator_from_env()
        return self._generator

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def create_list(self, title: str, draft: str = "") -> ListRecord:
        cleaned = normalize_line(title)
        if not cleaned:
            raise InputEmptyError("List title cannot be empty", suggestion="Give the list a goal as its title.")

        record = ListRecord(list_id=uuid.uuid4().hex[:12], title=cleaned)
        doc = ListDocument(draft=draft or "")
        self.store.save(record.list_id, doc.to_dict())
        self.index.add(record)
        observability_hooks.log_list_event("list_created", record.list_id, title=cleaned)
        return record

    def list_lists(self) -> List[Dict[str, Any]]:
        rows = []
        for record in self.index.all():
            doc = self._load_document(record.list_id)
            rows.append({
                **record.to_dict(),
                "stage": doc.stage,
                "lifetime_progress": lifetime_progress(doc),
            })
        return rows

    def get_list(self, list_id: str) -> Dict[str, Any]:
        record = self.index.get(list_id)
        doc = self.load(list_id)
        return {
            "list": record.to_dict(),
            "document": doc.to_dict(),
            "metrics": self._metrics_for(list_id, doc),
        }

    def delete_list(self, list_id: str) -> bool:
        self.index.get(list_id)
        with self._list_lock(list_id):
            self.store.delete(list_id)
            self.index.remove(list_id)
        with self._busy_lock:
            self._busy.pop(list_id, None)
        observability_hooks.log_list_event("list_deleted", list_id)
        return True

    # ------------------------------------------------------------------
    # Document plumbing
    # ------------------------------------------------------------------

    def _load_document(self, list_id: str) -> ListDocument:
        data = self.store.load(list_id)
        if data is None:
            logger.warning(f"No readable document for list {list_id}, using an empty one")
        return ListDocument.from_dict(data)

    def load(self, list_id: str) -> ListDocument:
        """Current document of a listed list; raises ``ListNotFoundError`` otherwise."""
        self.index.get(list_id)
        return self._load_document(list_id)

    def _save(self, list_id: str, doc: ListDocument) -> None:
        doc.touch()
        self.store.save(list_id, doc.to_dict())
        self.index.touch(list_id)

    def _list_lock(self, list_id: str) -> threading.Lock:
        with self._list_locks_guard:
            return self._list_locks.setdefault(list_id, threading.Lock())

    @contextmanager
    def _editing(self, list_id: str, operation: str) -> Iterator[ListDocument]:
        """Load, mutate and save one document while holding that list's lock."""
        with self._list_lock(list_id), log_operation(operation, list_id=list_id):
            doc = self.load(list_id)
            yield doc
            self._save(list_id, doc)

    def _log_captured(self, list_id: str, doc: ListDocument, reason: str) -> None:
        log_snapshot_event(list_id, "captured", doc.stage_history[0].stage, reason=reason)

    def _editor(self, doc: ListDocument) -> ChecklistEditor:
        return ChecklistEditor(doc, self.clock)

    def _engine(self, doc: ListDocument) -> StageEngine:
        return StageEngine(doc, self.clock, self.canonicalizer)

    # ------------------------------------------------------------------
    # Draft and checklist
    # ------------------------------------------------------------------

    def set_draft(self, list_id: str, draft: str) -> ListDocument:
        with self._editing(list_id, "set_draft") as doc:
            doc.draft = draft or ""
        return doc

    def add_task(self, list_id: str, text: str, category: Optional[str] = None) -> ChecklistItem:
        with self._editing(list_id, "add_task") as doc:
            item = self._editor(doc).add_root_task(text, category)
        return item

    def update_item(
        self,
        list_id: str,
        item_id: str,
        *,
        text: Optional[str] = None,
        category: Optional[str] = None,
    ) -> ChecklistItem:
        with self._editing(list_id, "update_item") as doc:
            item = self._editor(doc).update_item(item_id, text=text, category=category)
        return item

    def toggle_done(self, list_id: str, item_id: str) -> ChecklistItem:
        with self._editing(list_id, "toggle_done") as doc:
            item = self._editor(doc).toggle_done(item_id)
        return item

    def delete_item(self, list_id: str, item_id: str) -> List[ChecklistItem]:
        with self._editing(list_id, "delete_item") as doc:
            removed = self._editor(doc).delete_item(item_id)
        self._log_captured(list_id, doc, "delete_item")
        return removed

    def set_unknown(self, list_id: str, item_id: str) -> ChecklistItem:
        with self._editing(list_id, "set_unknown") as doc:
            item = self._editor(doc).set_unknown(item_id)
        log_parking_event(list_id, "parked" if item.status != NORMAL else "cleared", item.key, status=item.status)
        return item

    def set_later(self, list_id: str, item_id: str) -> ChecklistItem:
        with self._editing(list_id, "set_later") as doc:
            item = self._editor(doc).set_later(item_id)
        log_parking_event(list_id, "parked" if item.status != NORMAL else "cleared", item.key, status=item.status)
        return item

    # ------------------------------------------------------------------
    # Parking board
    # ------------------------------------------------------------------

    def parked(self, list_id: str, include_resolved: bool = False) -> List[ParkedItem]:
        board = self._editor(self.load(list_id)).parking
        return list(board.doc.parked) if include_resolved else board.active()

    def revive_parked(self, list_id: str, key: str) -> Optional[ChecklistItem]:
        with self._editing(list_id, "revive_parked") as doc:
            item = self._editor(doc).revive(key)
        self._log_captured(list_id, doc, "revive_parked")
        log_parking_event(list_id, "revived", key, created=item is not None)
        return item

    def clear_parked(self, list_id: str, key: str) -> bool:
        with self._editing(list_id, "clear_parked") as doc:
            changed = self._editor(doc).clear_parked(key)
        if changed:
            log_parking_event(list_id, "resolved", key, resolution="cleared")
        return changed

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshots(self, list_id: str) -> List[Dict[str, Any]]:
        return self._editor(self.load(list_id)).snapshots.entries()

    def capture_snapshot(self, list_id: str) -> Dict[str, Any]:
        with self._editing(list_id, "capture_snapshot") as doc:
            snap = self._editor(doc).snapshots.capture()
        log_snapshot_event(list_id, "captured", snap.stage, reason="capture_snapshot")
        return snap.summary()

    def restore_snapshot(self, list_id: str, index: int = 0) -> ListDocument:
        with self._editing(list_id, "restore_snapshot") as doc:
            snap = self._editor(doc).snapshots.restore(index)
        log_snapshot_event(list_id, "restored", snap.stage, position=index)
        return doc

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def metrics(self, list_id: str) -> Dict[str, Any]:
        return self._metrics_for(list_id, self.load(list_id))

    def _metrics_for(self, list_id: str, doc: ListDocument) -> Dict[str, Any]:
        metrics = self._engine(doc).metrics()
        metrics["busy_items"] = self.busy_items(list_id)
        return metrics

    @log_performance("advance_stage")
    def advance_stage(self, list_id: str) -> StageAdvance:
        with self._editing(list_id, "advance_stage") as doc:
            advance = self._engine(doc).generate_next_stage()
        self._log_captured(list_id, doc, "advance_stage")
        log_stage_advance(list_id, advance.stage, len(advance.issued), len(advance.carried_over))
        return advance

    def _generate(self, prompt: str, operation: str) -> str:
        """Run one generation call and return non-empty text, or raise."""
        try:
            result: GenerationResult = self.generator.generate(prompt)
        except Exception as e:
            log_error_with_context(e, {"operation": operation})
            raise UpstreamError(f"Generation failed: {e}") from e

        if not result.ok:
            raise UpstreamError(f"Generation failed: {result.error}")
        if not (result.text or "").strip():
            raise EmptyResultError("The generation result was empty.")
        return result.text

    @log_performance("analyze")
    def analyze(self, list_id: str) -> StageAdvance:
        """Generate an analysis of the draft and seed stage 1 from it.

        Nothing is written unless the call succeeds and yields candidates.
        """
        record = self.index.get(list_id)
        draft = self._load_document(list_id).draft
        if not draft.strip():
            raise InputEmptyError("The draft is empty; nothing to analyze.")

        text = self._generate(build_analysis_prompt(record.title, draft), "analyze")

        with self._editing(list_id, "analyze") as doc:
            advance = self._engine(doc).start_from_analysis(text)
        self._log_captured(list_id, doc, "analyze")
        log_stage_advance(list_id, advance.stage, len(advance.issued), len(advance.carried_over), source="analyze")
        return advance

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    def busy_items(self, list_id: str) -> List[str]:
        with self._busy_lock:
            return sorted(self._busy.get(list_id, ()))

    def _mark_busy(self, list_id: str, item_id: str) -> None:
        with self._busy_lock:
            busy = self._busy.setdefault(list_id, set())
            if item_id in busy:
                raise ItemBusyError(f"Item '{item_id}' is already being decomposed.")
            busy.add(item_id)

    def _clear_busy(self, list_id: str, item_id: str) -> None:
        with self._busy_lock:
            busy = self._busy.get(list_id)
            if busy is not None:
                busy.discard(item_id)
                if not busy:
                    del self._busy[list_id]

    @log_performance("decompose_item")
    def decompose_item(self, list_id: str, item_id: str) -> List[ChecklistItem]:
        """Split one task into generated sub-tasks.

        The item stays busy until the call resolves. The result is applied to
        whatever the document holds at that point.
        """
        doc = self.load(list_id)
        item = doc.find_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Checklist item '{item_id}' not found.")
        if item.is_group:
            raise ItemStateError(f"Item '{item_id}' is already decomposed.")
        if not item.text.strip():
            raise InputEmptyError("The item has no text to decompose.")

        self._mark_busy(list_id, item_id)
        try:
            prompt = build_decompose_prompt(item.text, doc.goals, doc.draft)
            text = self._generate(prompt, "decompose_item")
            sub_tasks = extract_sub_tasks(text, self.canonicalizer)
            if not sub_tasks:
                raise ExtractionError("Could not extract sub-tasks from the result.")

            with self._editing(list_id, "decompose_item") as doc:
                children = self._editor(doc).decompose(item_id, sub_tasks)
        finally:
            self._clear_busy(list_id, item_id)

        self._log_captured(list_id, doc, "decompose_item")
        log_decomposition(list_id, item_id, len(children))
        return children

    # ------------------------------------------------------------------
    # Hand-off prompt
    # ------------------------------------------------------------------

    def issue_prompt(self, list_id: str, include_draft: bool = False, include_analysis: bool = False) -> str:
        with self._editing(list_id, "issue_prompt") as doc:
            doc.issued_prompt = compose_handoff(
                doc.draft,
                doc.analysis,
                doc.goals,
                doc.checklist,
                doc.stage,
                include_draft=include_draft,
                include_analysis=include_analysis,
            )
        return doc.issued_prompt

    def export_text(self, list_id: str, include_draft: bool = False, include_analysis: bool = False) -> str:
        """Issued prompt (or a fresh one) followed by plain goals and checklist."""
        doc = self.load(list_id)
        prompt = doc.issued_prompt
        if not prompt.strip():
            prompt = compose_handoff(
                doc.draft,
                doc.analysis,
                doc.goals,
                doc.checklist,
                doc.stage,
                include_draft=include_draft,
                include_analysis=include_analysis,
            )
        return compose_export(prompt, doc.goals, doc.checklist)
