"""Action handler contract and registry."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..context import ConversationContext
from ..errors import UnknownActionTypeError
from ..function_defs import AskQuestionArgs
from ..results import ActionItem, ActionResult
from ..transcript import FunctionCall, FunctionResponse, Transcript, assistant, ensure_call_ids, user

logger = logging.getLogger(__name__)


@dataclass
class ActionHandlerProps:
    """Inputs of one handler invocation."""

    ask_call: FunctionCall
    args: AskQuestionArgs
    ctx: ConversationContext

    @property
    def transcript(self) -> Transcript:
        return self.ctx.transcript

    def reply(
        self,
        text: str | None = None,
        calls: list[FunctionCall] | None = None,
        contents: list[str | None] | None = None,
        cache: bool = False,
    ) -> ActionItem:
        """
        Pair the askQuestion turn (plus any extra calls) with a user answer.

        `contents` gives the response content per call, askQuestion first;
        missing entries answer with empty content.
        """
        all_calls = ensure_call_ids([self.ask_call, *(calls or [])])
        contents = list(contents or [])
        responses = [
            FunctionResponse(call.name, call.id, contents[i] if i < len(contents) else "")
            for i, call in enumerate(all_calls)
        ]
        return ActionItem(
            assistant=assistant(self.args.message, all_calls),
            user=user(text, responses, cache=cache),
        )

    def commit(self, *items: ActionItem) -> None:
        """Append items immediately, for handlers whose later steps must see them."""
        for item in items:
            self.ctx.transcript.append(item.assistant, item.user)


ActionHandler = Callable[[ActionHandlerProps], Awaitable[ActionResult]]


class ActionHandlerRegistry:
    """
    Map action types to handlers.

    Adding an action type is a registration:
        registry.register("sendMessage", handle_send_message)
    """

    def __init__(self):
        self._handlers: dict[str, ActionHandler] = {}

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register a handler for an action type."""
        if action_type in self._handlers:
            logger.debug(f"Replacing handler for {action_type}")
        self._handlers[action_type] = handler

    def get(self, action_type: str) -> ActionHandler:
        """Handler for `action_type`; unknown types are configuration errors."""
        handler = self._handlers.get(action_type)
        if handler is None:
            raise UnknownActionTypeError(action_type)
        return handler

    def list_action_types(self) -> list[str]:
        return list(self._handlers.keys())

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ["ActionHandler", "ActionHandlerProps", "ActionHandlerRegistry"]
