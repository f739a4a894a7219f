"""Checklist tree stored as a flat pre-order list with depths.

A node's descendants are the maximal contiguous run right after it whose depth
is strictly greater than its own. ``block_end`` is the one place that computes
that run; delete, relocation, decomposition and rendering all go through it.

``ChecklistEditor`` holds the mutation entry points that keep the checklist,
the parking board and the used-action registry consistent.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

from .errors import InputEmptyError, ItemNotFoundError, ItemStateError
from .models import (
    CLEARED,
    DECOMPOSITION_PREFIX,
    DELETED,
    GROUP,
    LATER,
    NORMAL,
    RESOLVED_DONE,
    UNCATEGORIZED,
    UNKNOWN,
    ChecklistItem,
    ListDocument,
    utc_timestamp,
)
from .normalizer import normalize_line
from .parking import ParkingBoard
from .snapshots import SnapshotLog

MAX_SUB_TASKS = 7


# ----------------------------------------------------------------------
# Scope helpers
# ----------------------------------------------------------------------

def block_end(items: Sequence[ChecklistItem], index: int) -> int:
    """Exclusive end of the block formed by ``items[index]`` and its descendants."""
    depth = items[index].depth
    end = index + 1
    while end < len(items) and items[end].depth > depth:
        end += 1
    return end


def scope_end(items: Sequence[ChecklistItem], index: int) -> int:
    """Exclusive end of the sibling scope that contains ``items[index]``.

    The scope runs until the first node shallower than ``items[index]``.
    """
    depth = items[index].depth
    end = block_end(items, index)
    while end < len(items) and items[end].depth >= depth:
        end += 1
    return end


def descendants(items: Sequence[ChecklistItem], index: int) -> List[ChecklistItem]:
    return list(items[index + 1:block_end(items, index)])


def remove_with_descendants(
    items: Sequence[ChecklistItem], index: int
) -> Tuple[List[ChecklistItem], List[ChecklistItem]]:
    """Return ``(remaining, removed)`` after cutting the block at ``index``."""
    end = block_end(items, index)
    return list(items[:index]) + list(items[end:]), list(items[index:end])


def move_block_to_scope_end(items: Sequence[ChecklistItem], index: int) -> List[ChecklistItem]:
    """Move the block at ``index`` behind its last sibling, keeping depths."""
    end = block_end(items, index)
    last = scope_end(items, index)
    if last == end:
        return list(items)
    return list(items[:index]) + list(items[end:last]) + list(items[index:end]) + list(items[last:])


def splice_after(
    items: Sequence[ChecklistItem], index: int, new_items: Sequence[ChecklistItem]
) -> List[ChecklistItem]:
    return list(items[:index + 1]) + list(new_items) + list(items[index + 1:])


def check_preorder(items: Sequence[ChecklistItem]) -> List[str]:
    """Validate the flattened-forest shape and return any issues."""
    issues: List[str] = []
    seen_ids = set()
    previous_depth = -1
    for position, item in enumerate(items):
        if item.depth < 0:
            issues.append(f"Item {position} has negative depth {item.depth}")
        if item.depth > previous_depth + 1:
            issues.append(
                f"Item {position} jumps from depth {previous_depth} to {item.depth}"
            )
        if item.id in seen_ids:
            issues.append(f"Duplicate item id {item.id}")
        seen_ids.add(item.id)
        previous_depth = item.depth
    return issues


# ----------------------------------------------------------------------
# Mutation entry points
# ----------------------------------------------------------------------

class ChecklistEditor:
    """Apply checklist operations to one list document."""

    def __init__(self, doc: ListDocument, clock: Callable[[], str] = utc_timestamp):
        self.doc = doc
        self.parking = ParkingBoard(doc, clock)
        self.snapshots = SnapshotLog(doc, clock)

    def index_of(self, item_id: str) -> int:
        for index, item in enumerate(self.doc.checklist):
            if item.id == item_id:
                return index
        raise ItemNotFoundError(f"Checklist item '{item_id}' not found.")

    def get(self, item_id: str) -> ChecklistItem:
        return self.doc.checklist[self.index_of(item_id)]

    def add_root_task(self, text: str, category: Optional[str] = None) -> ChecklistItem:
        cleaned = normalize_line(text)
        if not cleaned:
            raise InputEmptyError("Task text cannot be empty")
        item = ChecklistItem.new_task(cleaned, normalize_line(category or "") or UNCATEGORIZED)
        self.doc.checklist.insert(0, item)
        return item

    def update_item(self, item_id: str, *, text: Optional[str] = None, category: Optional[str] = None) -> ChecklistItem:
        item = self.get(item_id)
        if text is not None:
            cleaned = normalize_line(text)
            if not cleaned:
                raise InputEmptyError("Task text cannot be empty")
            item.text = cleaned
        if category is not None:
            item.category = normalize_line(category) or UNCATEGORIZED
        return item

    def toggle_done(self, item_id: str) -> ChecklistItem:
        """Flip ``done`` on a task; groups are left alone."""
        item = self.get(item_id)
        if not item.is_task:
            return item

        item.done = not item.done
        if item.done:
            item.status = NORMAL
            self.parking.resolve(item.key, RESOLVED_DONE)
        else:
            self.parking.reopen_if_done_resolved(item)
        return item

    def delete_item(self, item_id: str) -> List[ChecklistItem]:
        """Remove an item with its descendants; returns the removed block."""
        index = self.index_of(item_id)
        self.snapshots.capture()
        remaining, removed = remove_with_descendants(self.doc.checklist, index)
        self.doc.checklist = remaining
        for item in removed:
            if item.is_task:
                self.parking.resolve(item.key, DELETED)
        return removed

    def set_unknown(self, item_id: str) -> ChecklistItem:
        return self._toggle_status(item_id, UNKNOWN)

    def set_later(self, item_id: str) -> ChecklistItem:
        return self._toggle_status(item_id, LATER)

    def _toggle_status(self, item_id: str, status: str) -> ChecklistItem:
        index = self.index_of(item_id)
        item = self.doc.checklist[index]
        if not item.is_task:
            return item

        if item.status == status:
            item.status = NORMAL
            self.parking.resolve(item.key, CLEARED)
            return item

        item.status = status
        item.done = False
        self.parking.upsert(item, status, self.doc.stage)
        if status == LATER:
            self.doc.checklist = move_block_to_scope_end(self.doc.checklist, index)
        return item

    def decompose(self, item_id: str, sub_tasks: Sequence[str]) -> List[ChecklistItem]:
        """Turn a task into a group followed by its sub-tasks."""
        index = self.index_of(item_id)
        parent = self.doc.checklist[index]
        if not parent.is_task:
            raise ItemStateError(f"Item '{item_id}' is already decomposed")

        texts = [t for t in (normalize_line(s) for s in sub_tasks) if t][:MAX_SUB_TASKS]
        if not texts:
            raise InputEmptyError("No sub-tasks to insert")

        self.snapshots.capture()
        parent.type = GROUP
        parent.done = True
        parent.status = NORMAL

        category = DECOMPOSITION_PREFIX + (parent.category or UNCATEGORIZED)
        children = [ChecklistItem.new_task(t, category, depth=parent.depth + 1) for t in texts]
        self.doc.checklist = splice_after(self.doc.checklist, index, children)
        self.doc.register_actions(texts)
        return children

    def revive(self, key: str) -> Optional[ChecklistItem]:
        entry = self.parking.get(key)
        if entry is None or entry.is_resolved:
            raise ItemNotFoundError(f"No active parked item '{key}'.")
        self.snapshots.capture()
        return self.parking.revive(key)

    def clear_parked(self, key: str) -> bool:
        if self.parking.get(key) is None:
            raise ItemNotFoundError(f"Parked item '{key}' not found.")
        return self.parking.resolve(key, CLEARED)
