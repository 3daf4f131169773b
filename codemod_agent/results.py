"""Result types shared by steps, handlers and the dispatch loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .transcript import TranscriptItem


class StepResult(Enum):
    """Whether the conversation may go on after a step."""

    CONTINUE = "continue"
    BREAK = "break"


@dataclass
class ActionItem:
    """A matched assistant/user turn pair produced by a handler."""

    assistant: TranscriptItem
    user: TranscriptItem


@dataclass
class ActionResult:
    break_loop: bool
    items: list[ActionItem] = field(default_factory=list)
    step_result: StepResult = StepResult.CONTINUE

    @classmethod
    def stop(cls, *items: ActionItem) -> "ActionResult":
        return cls(True, list(items), StepResult.BREAK)

    @classmethod
    def proceed(cls, *items: ActionItem) -> "ActionResult":
        return cls(False, list(items), StepResult.CONTINUE)


__all__ = ["ActionItem", "ActionResult", "StepResult"]
