"""Text generation adapter used by analyze and decompose.

The core only needs ``generate(prompt) -> GenerationResult``. ``OpenAIGenerator``
implements it with the OpenAI Responses API; tests pass any object with a
matching ``generate`` method.
"""

from __future__ import annotations

import logging as std_logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

from openai import OpenAI

logger = std_logging.getLogger("stagedo.generation")

DEFAULT_MODEL = "gpt-4o-mini"

ANALYSIS_INSTRUCTIONS = """
You are an execution-focused task decomposition coach.
Read the user's rough draft and structure it so that goals and a first batch
of concrete actions can be taken from it.

Category design (required):
- Use these L1 categories, adding others only when needed:
  1) Purpose (why, what should be achieved)
  2) Budget (money, cost, upper limits)
  3) Preparation (gather, prepare, check)
  4) Arrangement (order, who, by when, steps)

Output format (strict):
- Markdown, only these two sections, in this order:
  【Completion criteria (goals)】 3 to 5 checklist lines "- [ ] ..."
  【Breakdown (L1 -> L2 -> L3)】 one item per line, labelled L1: / L2: / L3:
- Every L3 line starts with "L3:" and is an action the user can do right now.
- No abstractions, no pep talk, no questions.
""".strip()

DECOMPOSE_INSTRUCTIONS = """
Break the following task into 3 to 7 sub-tasks that can be started right away.
- Output only a markdown bullet list, no headings or explanations.
- One task per line, each line a concrete action.
- No questions.
""".strip()


@dataclass(slots=True)
class GenerationResult:
    """Outcome of one generation call: either ``text`` or a human-readable ``error``."""

    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"text": self.text}
        return {"error": self.error}


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> GenerationResult:
        ...


def build_analysis_prompt(title: str, draft: str) -> str:
    return "\n".join(
        [
            ANALYSIS_INSTRUCTIONS,
            "",
            "【Title】",
            (title or "").strip() or "(untitled)",
            "",
            "【Draft】",
            draft.strip(),
        ]
    )


def build_decompose_prompt(todo: str, goals: Sequence[str] = (), draft: str = "") -> str:
    parts = [DECOMPOSE_INSTRUCTIONS, "", "【Task】", todo.strip()]
    if goals:
        parts += ["", "Reference goals:", *goals]
    if draft.strip():
        parts += ["", "Reference notes:", draft.strip()]
    return "\n".join(parts)


class OpenAIGenerator:
    """Responses API backed generator.

    The client is created on first use so that constructing a workspace never
    requires ``OPENAI_API_KEY``.
    """

    def __init__(self, model: str = DEFAULT_MODEL, timeout: Optional[float] = None, client: Any = None):
        self.model = model
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if self.timeout is not None:
                client_kwargs["timeout"] = self.timeout
            self._client = OpenAI(**client_kwargs)
        return self._client

    def generate(self, prompt: str) -> GenerationResult:
        try:
            resp = self._get_client().responses.create(model=self.model, input=prompt)
        except Exception as e:
            logger.warning(f"Generation call failed: {e}")
            return GenerationResult(error=str(e) or e.__class__.__name__)

        text = getattr(resp, "output_text", "") or ""
        return GenerationResult(text=text.strip())


def generator_from_env() -> OpenAIGenerator:
    """Build the default generator from ``STAGEDO_MODEL`` / ``STAGEDO_TIMEOUT``."""
    model = os.getenv("STAGEDO_MODEL", "").strip() or DEFAULT_MODEL
    timeout_raw = os.getenv("STAGEDO_TIMEOUT", "").strip()
    timeout = None
    if timeout_raw:
        try:
            timeout = float(timeout_raw)
        except ValueError:
            logger.warning(f"Ignoring invalid STAGEDO_TIMEOUT value: {timeout_raw!r}")
    return OpenAIGenerator(model=model, timeout=timeout)
