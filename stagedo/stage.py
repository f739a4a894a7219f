"""Stage engine: when and how a list moves to its next batch of tasks.

A stage is a batch of at most ``MAX_STAGE_TASKS`` root tasks. Advancing
archives the current batch (unfinished tasks go to the parking board, counts
fold into the lifetime counters) and issues the next batch from candidates in
the analysis text that were never issued before.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .checklist import ChecklistEditor
from .errors import EmptyResultError, ExtractionError, IneligibleTransitionError, NoCandidatesError
from .extractor import Candidate, extract_candidates, extract_goals
from .models import ChecklistItem, ListDocument, ParkedItem, utc_timestamp
from .normalizer import Canonicalizer, action_key

MAX_STAGE_TASKS = 5
ADVANCE_DONE_THRESHOLD = 3
ADVANCE_REMAINING_THRESHOLD = 2
FIRST_STAGE = 1


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def stage_counts(doc: ListDocument) -> Dict[str, int]:
    """Task counts of the live checklist; groups are not counted."""
    tasks = doc.tasks()
    done = sum(1 for t in tasks if t.done)
    return {"total": len(tasks), "done": done, "remaining": len(tasks) - done}


def can_advance(doc: ListDocument) -> bool:
    counts = stage_counts(doc)
    return counts["done"] >= ADVANCE_DONE_THRESHOLD or counts["remaining"] <= ADVANCE_REMAINING_THRESHOLD


def stage_progress(doc: ListDocument) -> int:
    counts = stage_counts(doc)
    return _percent(counts["done"], counts["total"])


def lifetime_progress(doc: ListDocument) -> int:
    counts = stage_counts(doc)
    return _percent(doc.archived_done + counts["done"], doc.archived_created + counts["total"])


def eligible_candidates(
    doc: ListDocument,
    text: Optional[str] = None,
    canonicalizer: Optional[Canonicalizer] = None,
) -> List[Candidate]:
    """Candidates of ``text`` (default: the stored analysis) never issued before, first occurrence wins."""
    source = doc.analysis if text is None else text
    used = {action_key(x) for x in doc.used_action_keys}
    seen = set()
    out: List[Candidate] = []
    for cand in extract_candidates(source, canonicalizer):
        key = action_key(cand.action)
        if not key or key in used or key in seen:
            continue
        seen.add(key)
        out.append(cand)
    return out


def select_candidates(candidates: Sequence[Candidate], limit: int = MAX_STAGE_TASKS) -> List[Candidate]:
    """Two-pass greedy pick: one per category first, then fill in candidate order."""
    picked: List[Candidate] = []
    categories = set()
    for cand in candidates:
        if len(picked) >= limit:
            break
        if cand.category in categories:
            continue
        categories.add(cand.category)
        picked.append(cand)

    picked_actions = {cand.action for cand in picked}
    for cand in candidates:
        if len(picked) >= limit:
            break
        if cand in picked or cand.action in picked_actions:
            continue
        picked_actions.add(cand.action)
        picked.append(cand)
    return picked


@dataclass(slots=True)
class StageAdvance:
    """Outcome of a stage transition."""

    stage: int
    issued: List[ChecklistItem] = field(default_factory=list)
    carried_over: List[ParkedItem] = field(default_factory=list)
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "issued": [it.to_dict() for it in self.issued],
            "issued_count": len(self.issued),
            "carried_over": [p.to_dict() for p in self.carried_over],
            "remaining_candidates": self.remaining,
        }


class StageEngine:
    """Drive stage transitions for one list document."""

    def __init__(
        self,
        doc: ListDocument,
        clock: Callable[[], str] = utc_timestamp,
        canonicalizer: Optional[Canonicalizer] = None,
    ):
        self.doc = doc
        self.clock = clock
        self.canonicalizer = canonicalizer
        self.editor = ChecklistEditor(doc, clock)

    def can_advance(self) -> bool:
        return can_advance(self.doc)

    def remaining_candidates(self) -> int:
        return len(eligible_candidates(self.doc, canonicalizer=self.canonicalizer))

    def metrics(self) -> Dict[str, Any]:
        counts = stage_counts(self.doc)
        return {
            "stage": self.doc.stage,
            "tasks": counts,
            "stage_progress": stage_progress(self.doc),
            "lifetime_progress": lifetime_progress(self.doc),
            "archived_created": self.doc.archived_created,
            "archived_done": self.doc.archived_done,
            "remaining_candidates": self.remaining_candidates(),
            "can_advance": self.can_advance(),
            "parked_active": len(self.editor.parking.active()),
        }

    def generate_next_stage(self) -> StageAdvance:
        """Archive the current batch and issue the next one.

        Refusals raise before anything is touched.
        """
        if not self.can_advance():
            counts = stage_counts(self.doc)
            raise IneligibleTransitionError(
                f"Not ready for the next stage: {counts['done']} done, {counts['remaining']} remaining."
            )
        if not self.doc.analysis.strip():
            raise IneligibleTransitionError(
                "No analysis yet.", suggestion="Run analyze on the draft first."
            )

        candidates = eligible_candidates(self.doc, canonicalizer=self.canonicalizer)
        if not candidates:
            raise NoCandidatesError("No further candidates in the current analysis.")

        self.editor.snapshots.capture()
        carried = self._archive_current_stage()
        picked = select_candidates(candidates)
        issued = self._issue(picked)
        self.doc.stage = max(2, self.doc.stage + 1)
        return StageAdvance(
            stage=self.doc.stage,
            issued=issued,
            carried_over=carried,
            remaining=len(candidates) - len(picked),
        )

    def start_from_analysis(self, text: str) -> StageAdvance:
        """Store a fresh analysis, take its goals and seed stage 1 from it."""
        if not (text or "").strip():
            raise EmptyResultError("The analysis result was empty.")

        if not extract_candidates(text, self.canonicalizer):
            raise ExtractionError(
                "Could not extract any actions from the analysis.",
                suggestion="Retry analyze or add more detail to the draft.",
            )
        candidates = eligible_candidates(self.doc, text, self.canonicalizer)
        if not candidates:
            raise NoCandidatesError("Every action in this analysis was already issued.")

        self.editor.snapshots.capture()
        carried = self._archive_current_stage()
        self.doc.analysis = text
        self.doc.goals = extract_goals(text)
        picked = select_candidates(candidates)
        issued = self._issue(picked)
        self.doc.stage = FIRST_STAGE
        return StageAdvance(
            stage=self.doc.stage,
            issued=issued,
            carried_over=carried,
            remaining=len(candidates) - len(picked),
        )

    def _archive_current_stage(self) -> List[ParkedItem]:
        tasks = self.doc.tasks()
        carried = [
            self.editor.parking.carry_over(task, self.doc.stage)
            for task in tasks
            if not task.done
        ]
        self.doc.archived_created += len(tasks)
        self.doc.archived_done += sum(1 for t in tasks if t.done)
        return carried

    def _issue(self, picked: Sequence[Candidate]) -> List[ChecklistItem]:
        issued = [ChecklistItem.new_task(c.action, c.category, depth=0) for c in picked]
        self.doc.checklist = issued
        self.doc.register_actions([it.text for it in issued])
        return issued
