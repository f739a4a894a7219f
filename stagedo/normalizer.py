"""Text normalisation for checklist lines.

``normalize_line`` canonicalises whitespace and bullet markers.
``to_imperative_form`` rewrites a phrase into the action form used for
checklist items through a pluggable ``Canonicalizer``. The default strategy
targets Japanese "~する" phrasing; ``PlainCanonicalizer`` only cleans up.
Both are best-effort heuristics and never raise.
"""

from __future__ import annotations

import os
import re
from typing import List, Optional, Protocol, Sequence, Tuple

_FULL_WIDTH_SPACE = "　"
_WHITESPACE = re.compile(r"\s+")
_LEADING_MARKER = re.compile(r"^(?:[-*•・]|\d{1,3}[.)）])\s+")
_TRAILING_PUNCT = re.compile(r"[。．.!！]+$")
_QUESTION_MARKS = ("?", "？")


def normalize_line(line: str) -> str:
    """Collapse whitespace, drop a leading bullet or numbering marker and trim."""
    s = (line or "").replace(_FULL_WIDTH_SPACE, " ")
    s = _WHITESPACE.sub(" ", s).strip()
    s = _LEADING_MARKER.sub("", s)
    return s.strip()


def is_interrogative(line: str) -> bool:
    return any(mark in line for mark in _QUESTION_MARKS)


def action_key(text: str) -> str:
    """Case-insensitive identity of an action string."""
    return normalize_line(text).lower()


class Canonicalizer(Protocol):
    name: str

    def canonicalize(self, line: str) -> str:
        ...


class PlainCanonicalizer:
    """Normalise and strip trailing sentence punctuation; no verb rewriting."""

    name = "plain"

    def canonicalize(self, line: str) -> str:
        return _TRAILING_PUNCT.sub("", normalize_line(line)).strip()


class SuruFormCanonicalizer:
    """Rewrite Japanese phrases into the "~する" action form.

    Rules are tried in order; the first matching suffix wins. Phrases ending in
    one of ``topic_nouns`` get the auxiliary appended, and so does anything else.
    """

    name = "suru"

    AUXILIARY = "する"
    POLITE_SUFFIX = "します"

    DEFAULT_RULES: Tuple[Tuple[str, str], ...] = (
        ("書き出す", "列挙する"),
        ("書く", "記載する"),
        ("作る", "作成する"),
        ("決める", "決定する"),
        ("入れる", "入力する"),
        ("まとめる", "整理する"),
        ("集める", "収集する"),
        ("選ぶ", "選定する"),
        ("直す", "修正する"),
        ("見る", "確認する"),
    )
    DEFAULT_TOPIC_NOUNS: Tuple[str, ...] = ("メモ", "整理", "作成", "設定", "確認", "調整", "検討", "共有", "記録")

    def __init__(
        self,
        rules: Optional[Sequence[Tuple[str, str]]] = None,
        topic_nouns: Optional[Sequence[str]] = None,
    ):
        self.rules: List[Tuple[re.Pattern[str], str]] = [
            (re.compile(re.escape(suffix) + "$"), replacement)
            for suffix, replacement in (rules if rules is not None else self.DEFAULT_RULES)
        ]
        self.topic_nouns = tuple(topic_nouns if topic_nouns is not None else self.DEFAULT_TOPIC_NOUNS)

    def canonicalize(self, line: str) -> str:
        s = normalize_line(line)
        s = re.sub(r"[。．]$", "", s).strip()
        if not s:
            return s

        if s.endswith(self.POLITE_SUFFIX):
            return s[: -len(self.POLITE_SUFFIX)] + self.AUXILIARY
        if s.endswith(self.AUXILIARY):
            return s

        for pattern, replacement in self.rules:
            if pattern.search(s):
                return pattern.sub(replacement, s)

        if s.endswith(self.topic_nouns):
            return s + self.AUXILIARY
        return s + self.AUXILIARY


CANONICALIZERS = {
    SuruFormCanonicalizer.name: SuruFormCanonicalizer,
    PlainCanonicalizer.name: PlainCanonicalizer,
}

_default: Optional[Canonicalizer] = None


def canonicalizer_from_env() -> Canonicalizer:
    """Build the strategy named by ``STAGEDO_CANONICALIZER`` (default ``suru``)."""
    name = os.getenv("STAGEDO_CANONICALIZER", SuruFormCanonicalizer.name).strip().lower()
    factory = CANONICALIZERS.get(name)
    if factory is None:
        raise ValueError(
            f"Unknown canonicalizer '{name}'. Expected one of: {', '.join(sorted(CANONICALIZERS))}"
        )
    return factory()


def get_default_canonicalizer() -> Canonicalizer:
    global _default
    if _default is None:
        _default = canonicalizer_from_env()
    return _default


def set_default_canonicalizer(canonicalizer: Optional[Canonicalizer]) -> None:
    """Replace the process-wide strategy; ``None`` re-reads the environment."""
    global _default
    _default = canonicalizer


def to_imperative_form(line: str, canonicalizer: Optional[Canonicalizer] = None) -> str:
    return (canonicalizer or get_default_canonicalizer()).canonicalize(line)
