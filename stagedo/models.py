"""Data models for StageDo lists.

This module contains the persisted shapes: checklist items, parked items,
stage snapshots, the list document that owns all of them, and the list index
record. ``from_dict`` constructors are forgiving: every field is coerced to a
safe default so that legacy or corrupted documents load without raising.
"""

from __future__ import annotations

import hashlib
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .normalizer import normalize_line

UNCATEGORIZED = "uncategorized"
DECOMPOSITION_PREFIX = "decomposition:"

TASK = "task"
GROUP = "group"
ITEM_TYPES = (TASK, GROUP)

NORMAL = "normal"
UNKNOWN = "unknown"
LATER = "later"
ITEM_STATUSES = (NORMAL, UNKNOWN, LATER)
PARK_STATUSES = (UNKNOWN, LATER)

RETURNED = "returned"
RESOLVED_DONE = "done"
DELETED = "deleted"
CLEARED = "cleared"
RESOLUTIONS = (RETURNED, RESOLVED_DONE, DELETED, CLEARED)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_item_id() -> str:
    return uuid.uuid4().hex


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value if x is not None]


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def park_key(category: str, text: str) -> str:
    """Derive the parking key from normalised ``(category, text)``."""
    material = f"{normalize_line(category).lower()}\x1f{normalize_line(text).lower()}"
    return hashlib.sha1(material.encode("utf-8")).hexdigest()[:16]


@dataclass(slots=True)
class ChecklistItem:
    """A node of the flattened checklist forest.

    Fields:
        id: Opaque identifier, fixed at creation.
        text: Action text in imperative form.
        done: Completion flag; only meaningful for tasks.
        category: Free-text label, ``"decomposition:<parent>"`` for sub-tasks.
        type: ``task`` or ``group``; a task becomes a group when decomposed.
        depth: 0 for roots, parent depth + 1 for decomposition children.
        status: ``normal``, ``unknown`` or ``later``.
    """

    id: str
    text: str
    done: bool = False
    category: str = UNCATEGORIZED
    type: str = TASK
    depth: int = 0
    status: str = NORMAL
    created_at: Optional[str] = None

    @classmethod
    def new_task(cls, text: str, category: str = UNCATEGORIZED, depth: int = 0) -> "ChecklistItem":
        return cls(
            id=new_item_id(),
            text=text,
            category=category or UNCATEGORIZED,
            depth=depth,
            created_at=utc_timestamp(),
        )

    @property
    def is_task(self) -> bool:
        return self.type == TASK

    @property
    def is_group(self) -> bool:
        return self.type == GROUP

    @property
    def key(self) -> str:
        return park_key(self.category, self.text)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "done": self.done,
            "category": self.category,
            "type": self.type,
            "depth": self.depth,
            "status": self.status,
        }
        if self.created_at:
            data["created_at"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChecklistItem":
        status = _str(data.get("status"), NORMAL)
        created_at = _pick(data, "created_at", "createdAt")
        return cls(
            id=_str(data.get("id")) or new_item_id(),
            text=_str(data.get("text")),
            done=_bool(data.get("done")),
            category=_str(data.get("category")) or UNCATEGORIZED,
            type=GROUP if data.get("type") == GROUP else TASK,
            depth=max(0, _int(data.get("depth"), 0)),
            status=status if status in ITEM_STATUSES else NORMAL,
            created_at=_str(created_at) if created_at else None,
        )


@dataclass(slots=True)
class ParkedItem:
    """A deferred or uncertain task tracked apart from the checklist."""

    key: str
    text: str
    category: str
    status: str
    stage: int
    created_at: str
    updated_at: str
    resolved_at: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "text": self.text,
            "category": self.category,
            "status": self.status,
            "stage": self.stage,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "resolved_at": self.resolved_at,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["ParkedItem"]:
        """Return ``None`` for entries without text."""
        text = _str(data.get("text"))
        if not text:
            return None
        category = _str(data.get("category")) or UNCATEGORIZED
        status = _str(data.get("status"), LATER)
        resolution = data.get("resolution")
        resolved_at = _pick(data, "resolved_at", "resolvedAt")
        created_at = _str(_pick(data, "created_at", "createdAt")) or utc_timestamp()
        return cls(
            key=_str(data.get("key")) or park_key(category, text),
            text=text,
            category=category,
            status=status if status in PARK_STATUSES else LATER,
            stage=max(0, _int(data.get("stage"), 0)),
            created_at=created_at,
            updated_at=_str(_pick(data, "updated_at", "updatedAt")) or created_at,
            resolved_at=_str(resolved_at) if resolved_at else None,
            resolution=resolution if resolution in RESOLUTIONS and resolved_at else None,
        )


@dataclass(slots=True)
class StageSnapshot:
    """Point-in-time capture of a list's mutable state."""

    stage: int
    created_at: str
    checklist: List[ChecklistItem] = field(default_factory=list)
    goals: List[str] = field(default_factory=list)
    draft: str = ""
    analysis: str = ""
    archived_created: int = 0
    archived_done: int = 0
    parked: List[ParkedItem] = field(default_factory=list)
    used_action_keys: List[str] = field(default_factory=list)
    issued_prompt: str = ""

    def summary(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "created_at": self.created_at,
            "tasks": sum(1 for it in self.checklist if it.is_task),
            "goals": len(self.goals),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "created_at": self.created_at,
            "checklist": [it.to_dict() for it in self.checklist],
            "goals": list(self.goals),
            "draft": self.draft,
            "analysis": self.analysis,
            "archived_created": self.archived_created,
            "archived_done": self.archived_done,
            "parked": [p.to_dict() for p in self.parked],
            "used_action_keys": list(self.used_action_keys),
            "issued_prompt": self.issued_prompt,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["StageSnapshot"]:
        """Return ``None`` when the timestamp is missing."""
        stage = max(0, _int(data.get("stage"), 0))
        created_at = _str(_pick(data, "created_at", "createdAt"))
        if not created_at:
            return None
        return cls(
            stage=stage,
            created_at=created_at,
            checklist=_checklist_from(_pick(data, "checklist", "items")),
            goals=_str_list(data.get("goals")),
            draft=_str(data.get("draft")),
            analysis=_str(_pick(data, "analysis", "aiResult")),
            archived_created=max(0, _int(_pick(data, "archived_created", "archivedCreated"), 0)),
            archived_done=max(0, _int(_pick(data, "archived_done", "archivedDone"), 0)),
            parked=_parked_from(data.get("parked")),
            used_action_keys=_str_list(_pick(data, "used_action_keys", "usedActionKeys")),
            issued_prompt=_str(_pick(data, "issued_prompt", "issuedPrompt")),
        )


def _checklist_from(value: Any) -> List[ChecklistItem]:
    if not isinstance(value, list):
        return []
    items = [ChecklistItem.from_dict(x) for x in value if isinstance(x, Mapping)]
    return [it for it in items if it.text]


def _parked_from(value: Any) -> List[ParkedItem]:
    if not isinstance(value, list):
        return []
    parked = [ParkedItem.from_dict(x) for x in value if isinstance(x, Mapping)]
    return [p for p in parked if p is not None]


@dataclass(slots=True)
class ListDocument:
    """The whole persisted state of one list."""

    draft: str = ""
    analysis: str = ""
    goals: List[str] = field(default_factory=list)
    checklist: List[ChecklistItem] = field(default_factory=list)
    stage: int = 0
    used_action_keys: List[str] = field(default_factory=list)
    stage_history: List[StageSnapshot] = field(default_factory=list)
    issued_prompt: str = ""
    archived_created: int = 0
    archived_done: int = 0
    parked: List[ParkedItem] = field(default_factory=list)
    updated_at: str = field(default_factory=utc_timestamp)

    def tasks(self) -> List[ChecklistItem]:
        return [it for it in self.checklist if it.is_task]

    def find_item(self, item_id: str) -> Optional[ChecklistItem]:
        for item in self.checklist:
            if item.id == item_id:
                return item
        return None

    def touch(self) -> None:
        self.updated_at = utc_timestamp()

    def is_used(self, text: str) -> bool:
        key = normalize_line(text).lower()
        return any(normalize_line(x).lower() == key for x in self.used_action_keys)

    def register_actions(self, texts: List[str]) -> int:
        """Append unseen actions to the used-action registry; returns how many were new."""
        seen = {normalize_line(x).lower() for x in self.used_action_keys}
        added = 0
        for text in texts:
            key = normalize_line(text).lower()
            if not key or key in seen:
                continue
            seen.add(key)
            self.used_action_keys.append(text)
            added += 1
        return added

    def to_dict(self) -> Dict[str, Any]:
        return {
            "draft": self.draft,
            "analysis": self.analysis,
            "goals": list(self.goals),
            "checklist": [it.to_dict() for it in self.checklist],
            "stage": self.stage,
            "used_action_keys": list(self.used_action_keys),
            "stage_history": [s.to_dict() for s in self.stage_history],
            "issued_prompt": self.issued_prompt,
            "archived_created": self.archived_created,
            "archived_done": self.archived_done,
            "parked": [p.to_dict() for p in self.parked],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ListDocument":
        """Build a document from anything; unusable input yields the empty default."""
        if not isinstance(data, Mapping):
            return cls()

        history_raw = _pick(data, "stage_history", "stageHistory")
        history: List[StageSnapshot] = []
        if isinstance(history_raw, list):
            for entry in history_raw:
                if isinstance(entry, Mapping):
                    snap = StageSnapshot.from_dict(entry)
                    if snap is not None:
                        history.append(snap)

        return cls(
            draft=_str(data.get("draft")),
            analysis=_str(_pick(data, "analysis", "aiResult")),
            goals=_str_list(data.get("goals")),
            checklist=_checklist_from(data.get("checklist")),
            stage=max(0, _int(data.get("stage"), 0)),
            used_action_keys=_str_list(_pick(data, "used_action_keys", "usedActionKeys")),
            stage_history=history,
            issued_prompt=_str(_pick(data, "issued_prompt", "issuedPrompt")),
            archived_created=max(0, _int(_pick(data, "archived_created", "archivedCreated"), 0)),
            archived_done=max(0, _int(_pick(data, "archived_done", "archivedDone"), 0)),
            parked=_parked_from(data.get("parked")),
            updated_at=_str(_pick(data, "updated_at", "updatedAt")) or utc_timestamp(),
        )


@dataclass(slots=True)
class ListRecord:
    """Index row for one list; ``title`` is the goal the list works towards."""

    list_id: str
    title: str
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, str]:
        return {
            "list_id": self.list_id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["ListRecord"]:
        list_id = _str(_pick(data, "list_id", "id"))
        title = _str(data.get("title"))
        if not list_id or not title:
            return None
        created_at = _str(_pick(data, "created_at", "createdAt")) or utc_timestamp()
        return cls(
            list_id=list_id,
            title=title,
            created_at=created_at,
            updated_at=_str(_pick(data, "updated_at", "updatedAt")) or created_at,
        )
