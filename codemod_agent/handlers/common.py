"""Helpers shared by action handlers."""

from __future__ import annotations

import logging
from typing import TypeVar

from pydantic import ValidationError

from ..function_defs import FunctionArgs, function_def
from ..prompts import ACTION_ARGS_PROMPT
from ..providers.base import ModelTier
from ..transcript import FunctionCall, assistant, ensure_call_ids, responses_for, user
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)

ArgsT = TypeVar("ArgsT", bound=FunctionArgs)


async def infer_action_args(
    props: ActionHandlerProps,
    function_name: str,
    model: type[ArgsT],
    prompt: str | None = None,
    temperature: float | None = None,
    model_tier: ModelTier = ModelTier.DEFAULT,
) -> tuple[FunctionCall, ArgsT] | None:
    """
    Ask the model for the arguments of the action it just announced.

    The request runs on a fork: the askQuestion turn and the follow-up
    prompt are not recorded in the conversation.
    """
    ctx = props.ctx
    ensure_call_ids([props.ask_call])
    transcript = ctx.transcript.fork(
        assistant(props.args.message, [props.ask_call]),
        user(prompt or ACTION_ARGS_PROMPT.format(tool=function_name), responses_for([props.ask_call])),
    )
    calls = await ctx.request(
        function_name,
        transcript=transcript,
        function_defs=[function_def(function_name)],
        temperature=temperature,
        model_tier=model_tier,
    )
    if not calls:
        ctx.transcript.notice(f"Could not obtain {function_name} arguments")
        return None
    try:
        return calls[0], model.model_validate(calls[0].args or {})
    except ValidationError as e:
        logger.warning(f"Unusable {function_name} arguments: {e}")
        ctx.transcript.notice(f"Could not obtain valid {function_name} arguments")
        return None


__all__ = ["infer_action_args"]
