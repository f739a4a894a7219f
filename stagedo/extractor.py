"""Parse generated text into checklist candidates, sub-tasks and goals.

Analysis text is markdown-ish. Category labels come either as a bracketed line
(``[Budget]``) or an ``L1:`` line; actions come as bullet lines or ``L3:``
lines. Lines carrying a question mark are never candidates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import UNCATEGORIZED
from .normalizer import Canonicalizer, is_interrogative, normalize_line, to_imperative_form

MAX_SUB_TASKS = 7
MAX_FALLBACK_GOALS = 5
MIN_FALLBACK_LINE_LENGTH = 3

_BRACKET_LABEL = re.compile(r"^\[(?P<label>[^\[\]]+)\]$")
_L1_LINE = re.compile(r"^L1[:：]\s*(?P<label>.+)$")
_L2_LINE = re.compile(r"^L2[:：]")
_L3_LINE = re.compile(r"^L3[:：]\s*(?P<action>.+)$")
_BULLET_LINE = re.compile(r"^(?:[-*•]|\d{1,3}[.)])\s+(?P<body>.+)$")
_CHECKBOX_LINE = re.compile(r"^-+\s*\[\s*[xX ]?\s*\]\s*(?P<body>.+)$")
_GOAL_HEADINGS = ("完了条件", "completion", "goal")


@dataclass(frozen=True, slots=True)
class Candidate:
    """A (category, action) pair proposed by generated text."""

    category: str
    action: str

    def to_dict(self) -> Dict[str, str]:
        return {"category": self.category, "action": self.action}


def _unique_push(out: List[str], value: str) -> None:
    key = value.lower()
    if any(existing.lower() == key for existing in out):
        return
    out.append(value)


def _label_of(line: str) -> Optional[str]:
    match = _BRACKET_LABEL.match(line) or _L1_LINE.match(line)
    if not match:
        return None
    return normalize_line(match.group("label")) or UNCATEGORIZED


def _action_of(line: str) -> Optional[str]:
    """Return the raw action text of a bullet or ``L3:`` line."""
    if _CHECKBOX_LINE.match(line):
        return None
    bullet = _BULLET_LINE.match(line)
    body = bullet.group("body").strip() if bullet else line
    l3 = _L3_LINE.match(body)
    if l3:
        return l3.group("action")
    if bullet and not _L2_LINE.match(body) and not _L1_LINE.match(body):
        return body
    return None


def extract_candidates(text: str, canonicalizer: Optional[Canonicalizer] = None) -> List[Candidate]:
    """Extract ordered candidates; duplicates are kept for the caller to resolve."""
    category = UNCATEGORIZED
    candidates: List[Candidate] = []

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue

        bullet = _BULLET_LINE.match(line)
        label = _label_of(bullet.group("body").strip() if bullet else line)
        if label is not None:
            category = label
            continue

        action = _action_of(line)
        if action is None:
            continue
        action = normalize_line(action)
        if not action or is_interrogative(action):
            continue
        candidates.append(Candidate(category=category, action=to_imperative_form(action, canonicalizer)))

    return candidates


def extract_sub_tasks(text: str, canonicalizer: Optional[Canonicalizer] = None) -> List[str]:
    """Extract a flat list of sub-task strings for single-item decomposition."""
    lines = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
    out: List[str] = []

    for line in lines:
        bullet = _BULLET_LINE.match(line)
        l3 = _L3_LINE.match(line)
        if bullet:
            body = bullet.group("body")
            inner = _L3_LINE.match(body.strip())
            raw = inner.group("action") if inner else body
        elif l3:
            raw = l3.group("action")
        else:
            continue
        t = normalize_line(raw)
        if not t or is_interrogative(t):
            continue
        _unique_push(out, to_imperative_form(t, canonicalizer))

    if not out:
        for line in lines:
            t = normalize_line(re.sub(r"^[-*•]", "", line))
            if not t or len(t) < MIN_FALLBACK_LINE_LENGTH or is_interrogative(t):
                continue
            _unique_push(out, to_imperative_form(t, canonicalizer))
            if len(out) >= MAX_SUB_TASKS:
                break

    return out[:MAX_SUB_TASKS]


def _is_goal_heading(line: str) -> bool:
    if not line.startswith(("【", "#")):
        return False
    lowered = line.lower()
    return any(marker in lowered for marker in _GOAL_HEADINGS)


def extract_goals(text: str) -> List[str]:
    """Collect checkbox lines of the completion-criteria section.

    Without such a section, the first few checkbox lines anywhere are used.
    """
    lines = [ln.strip() for ln in (text or "").splitlines()]
    goals: List[str] = []
    in_section = False

    for line in lines:
        if _is_goal_heading(line):
            in_section = True
            continue
        if in_section and line.startswith(("【", "#")):
            break
        if not in_section:
            continue
        match = _CHECKBOX_LINE.match(line)
        if match:
            t = normalize_line(match.group("body"))
            if t and not is_interrogative(t):
                _unique_push(goals, t)

    if goals:
        return goals

    for line in lines:
        match = _CHECKBOX_LINE.match(line)
        if not match:
            continue
        t = normalize_line(match.group("body"))
        if not t or is_interrogative(t):
            continue
        _unique_push(goals, t)
        if len(goals) >= MAX_FALLBACK_GOALS:
            break
    return goals
