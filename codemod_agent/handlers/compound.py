"""
compoundAction: several file operations planned and executed together.

Arguments of independent actions are inferred concurrently, one dependency
layer at a time. A failure inside a layer does not cancel its siblings but
stops the next layer from being scheduled.
"""

from __future__ import annotations

import asyncio
import logging

from ..errors import AbortedError, AgentError
from ..file_mutation import FileMutationExecutor, plan_update_layers
from ..function_defs import FUNCTION_ARGS, CompoundActionItem, CompoundActionListArgs
from ..prompts import COMPOUND_ACTION_ITEM_PROMPT, COMPOUND_ACTION_PROMPT
from ..results import ActionResult
from ..transcript import FunctionCall
from .common import infer_action_args
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)


async def _infer_action(props: ActionHandlerProps, action: CompoundActionItem) -> FunctionCall:
    prompt = COMPOUND_ACTION_ITEM_PROMPT.format(id=action.id, tool=action.name, prompt=action.prompt)
    inferred = await infer_action_args(props, action.name, FUNCTION_ARGS[action.name], prompt=prompt)
    if inferred is None:
        raise AgentError(f"Could not infer arguments for action {action.id} ({action.name})")
    return inferred[0]


async def handle_compound_action(props: ActionHandlerProps) -> ActionResult:
    ctx = props.ctx
    inferred = await infer_action_args(props, "compoundActionList", CompoundActionListArgs, prompt=COMPOUND_ACTION_PROMPT)
    if inferred is None:
        return ActionResult.proceed(props.reply("Failed to plan the compound action."))
    list_call, plan = inferred

    layers, errors = plan_update_layers(plan.actions)
    for error in errors:
        ctx.transcript.notice(str(error), {"action_ids": error.update_ids})
    if not layers:
        return ActionResult.proceed(props.reply("The compound action has no executable actions.", calls=[list_call]))

    description = "\n".join(f"- [{a.id}] {a.name}: {a.prompt}" for layer in layers for a in layer)
    if not await ctx.interaction.ask_user_for_confirmation(f"{plan.summary}\n\n{description}\n\nPrepare these actions?", False):
        return ActionResult.proceed(props.reply("Declining compound action.", calls=[list_call]))

    calls: list[FunctionCall] = []
    for number, layer in enumerate(layers, 1):
        await ctx.checkpoint()
        results = await asyncio.gather(*(_infer_action(props, a) for a in layer), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        calls.extend(r for r in results if isinstance(r, FunctionCall))
        if failures:
            for failure in failures:
                if isinstance(failure, AbortedError) or not isinstance(failure, Exception):
                    raise failure
                ctx.transcript.notice(f"Compound action layer {number} failed: {failure}")
            break

    if not calls:
        return ActionResult.proceed(props.reply("No actions could be prepared.", calls=[list_call]))

    decision = await ctx.interaction.ask_user_for_confirmation_with_answer(
        f"Execute {len(calls)} prepared actions?", "Execute actions", "Cancel actions", False
    )
    if not decision.confirmed:
        return ActionResult.proceed(props.reply("Rejecting compound action.", calls=[list_call, *calls]))

    errors_applied = await FileMutationExecutor(ctx).apply(calls)
    text = "Compound action executed." if not errors_applied else "Compound action partially failed: " + "; ".join(errors_applied)
    return ActionResult.proceed(props.reply(text, calls=[list_call, *calls]))


__all__ = ["handle_compound_action"]
