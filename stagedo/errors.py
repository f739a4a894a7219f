"""Exception types raised by the StageDo core and workspace.

The workflow layer catches every ``StageDoError`` at the boundary of a tool
call and turns it into a user-facing message; ``suggestion`` carries the hint
shown next to it.
"""

from __future__ import annotations


class StageDoError(Exception):
    """Base class for all expected StageDo failures."""

    suggestion = ""

    def __init__(self, message: str, *, suggestion: str | None = None):
        super().__init__(message)
        if suggestion is not None:
            self.suggestion = suggestion


class InputEmptyError(StageDoError, ValueError):
    """Analyze or decompose was requested without usable text."""

    suggestion = "Write something in the draft first."


class UpstreamError(StageDoError, RuntimeError):
    """The generation service failed or raised."""

    suggestion = "The generation service failed. Retry in a moment."


class EmptyResultError(StageDoError, RuntimeError):
    """The generation service succeeded but returned no text."""

    suggestion = "The result was empty. Retry the request."


class ExtractionError(StageDoError, ValueError):
    """Generated text contained nothing usable."""

    suggestion = "Could not extract sub-tasks. Rephrase the item and retry."


class IneligibleTransitionError(StageDoError, ValueError):
    """Stage advance was requested before the list is ready for it."""

    suggestion = "Complete 3 tasks, or get down to 2 or fewer remaining, before advancing."


class NoCandidatesError(StageDoError, ValueError):
    """Every candidate in the analysis has already been issued."""

    suggestion = "No further candidates. Add more draft text or re-run decomposition."


class ItemNotFoundError(StageDoError, KeyError):
    """No checklist item or parked entry with the requested identifier."""

    suggestion = "List the checklist to get current item ids."

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ItemBusyError(StageDoError, RuntimeError):
    """A decomposition for the same item is still in flight."""

    suggestion = "Wait for the running decomposition to finish."


class ListNotFoundError(StageDoError, KeyError):
    """No list with the requested identifier."""

    suggestion = "Create the list first or check the list id."

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ItemStateError(StageDoError, ValueError):
    """The item exists but cannot take this operation in its current shape."""

    suggestion = "Decomposed items are groups; decompose one of their sub-tasks instead."
