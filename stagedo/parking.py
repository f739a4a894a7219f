"""Parking board for deferred and uncertain tasks.

Entries are keyed by ``park_key(category, text)`` so the same task parked from
different stages lands on one entry. Resolution never deletes an entry; it only
stamps ``resolved_at`` and ``resolution``.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from .errors import ItemNotFoundError
from .models import (
    LATER,
    NORMAL,
    PARK_STATUSES,
    RESOLUTIONS,
    RESOLVED_DONE,
    RETURNED,
    UNKNOWN,
    ChecklistItem,
    ListDocument,
    ParkedItem,
    utc_timestamp,
)


class ParkingBoard:
    """View over ``ListDocument.parked`` with the parking lifecycle rules."""

    def __init__(self, doc: ListDocument, clock: Callable[[], str] = utc_timestamp):
        self.doc = doc
        self.clock = clock

    def get(self, key: str) -> Optional[ParkedItem]:
        for entry in self.doc.parked:
            if entry.key == key:
                return entry
        return None

    def active(self) -> List[ParkedItem]:
        return [p for p in self.doc.parked if not p.is_resolved]

    def resolved(self) -> List[ParkedItem]:
        return [p for p in self.doc.parked if p.is_resolved]

    def upsert(self, item: ChecklistItem, status: str, stage: int) -> ParkedItem:
        """Insert or refresh the entry for ``item``; an update reopens a resolved entry."""
        if status not in PARK_STATUSES:
            raise ValueError(f"Parking status must be one of {PARK_STATUSES}, got: {status}")

        now = self.clock()
        entry = self.get(item.key)
        if entry is None:
            entry = ParkedItem(
                key=item.key,
                text=item.text,
                category=item.category,
                status=status,
                stage=stage,
                created_at=now,
                updated_at=now,
            )
            self.doc.parked.append(entry)
            return entry

        entry.status = status
        entry.text = item.text
        entry.category = item.category
        entry.updated_at = now
        entry.resolved_at = None
        entry.resolution = None
        if entry.stage == 0:
            entry.stage = stage
        return entry

    def carry_over(self, item: ChecklistItem, stage: int) -> ParkedItem:
        """Park an unfinished task at a stage boundary.

        An unresolved ``unknown`` entry keeps its status; everything else is ``later``.
        """
        entry = self.get(item.key)
        status = LATER
        if entry is not None and not entry.is_resolved and entry.status == UNKNOWN:
            status = UNKNOWN
        return self.upsert(item, status, stage)

    def resolve(self, key: str, resolution: str) -> bool:
        """Resolve the entry for ``key``; no-op when missing or already resolved."""
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Resolution must be one of {RESOLUTIONS}, got: {resolution}")
        entry = self.get(key)
        if entry is None or entry.is_resolved:
            return False
        entry.resolved_at = self.clock()
        entry.resolution = resolution
        return True

    def reopen_if_done_resolved(self, item: ChecklistItem) -> bool:
        """Undo a ``done`` resolution; every other resolution stays."""
        entry = self.get(item.key)
        if entry is None or entry.resolution != RESOLVED_DONE:
            return False
        entry.resolved_at = None
        entry.resolution = None
        entry.updated_at = self.clock()
        return True

    def revive(self, key: str) -> Optional[ChecklistItem]:
        """Bring a parked entry back as a root task and resolve it as ``returned``.

        Returns the new checklist item, or ``None`` when a node with the same
        key, task or group, is already on the checklist. Callers capture a
        snapshot first.
        """
        entry = self.get(key)
        if entry is None or entry.is_resolved:
            raise ItemNotFoundError(f"No active parked item '{key}'.")

        created: Optional[ChecklistItem] = None
        if not any(it.key == key for it in self.doc.checklist):
            created = ChecklistItem.new_task(entry.text, entry.category, depth=0)
            created.status = NORMAL
            self.doc.checklist.insert(0, created)
            self.doc.register_actions([created.text])
        self.resolve(key, RETURNED)
        return created
