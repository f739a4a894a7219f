"""Bounded undo history of whole-list captures."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List

from .errors import ItemNotFoundError
from .models import ListDocument, StageSnapshot, utc_timestamp

MAX_SNAPSHOTS = 20


class SnapshotLog:
    """Newest-first log stored in ``ListDocument.stage_history``."""

    def __init__(
        self,
        doc: ListDocument,
        clock: Callable[[], str] = utc_timestamp,
        max_entries: int = MAX_SNAPSHOTS,
    ):
        self.doc = doc
        self.clock = clock
        self.max_entries = max_entries

    def __len__(self) -> int:
        return len(self.doc.stage_history)

    def capture(self) -> StageSnapshot:
        doc = self.doc
        snap = StageSnapshot(
            stage=doc.stage,
            created_at=self.clock(),
            checklist=copy.deepcopy(doc.checklist),
            goals=list(doc.goals),
            draft=doc.draft,
            analysis=doc.analysis,
            archived_created=doc.archived_created,
            archived_done=doc.archived_done,
            parked=copy.deepcopy(doc.parked),
            used_action_keys=list(doc.used_action_keys),
            issued_prompt=doc.issued_prompt,
        )
        doc.stage_history.insert(0, snap)
        del doc.stage_history[self.max_entries:]
        return snap

    def restore(self, index: int = 0) -> StageSnapshot:
        """Replace live state with entry ``index`` and drop that entry from the log."""
        history = self.doc.stage_history
        if not 0 <= index < len(history):
            raise ItemNotFoundError(f"No snapshot at position {index} (log holds {len(history)}).")

        snap = history.pop(index)
        doc = self.doc
        doc.stage = snap.stage
        doc.checklist = copy.deepcopy(snap.checklist)
        doc.goals = list(snap.goals)
        doc.draft = snap.draft
        doc.analysis = snap.analysis
        doc.archived_created = snap.archived_created
        doc.archived_done = snap.archived_done
        doc.parked = copy.deepcopy(snap.parked)
        doc.used_action_keys = list(snap.used_action_keys)
        doc.issued_prompt = snap.issued_prompt
        return snap

    def entries(self) -> List[Dict[str, Any]]:
        return [dict(position=i, **snap.summary()) for i, snap in enumerate(self.doc.stage_history)]
