"""confirmCodeGeneration: gate, then run the code generation steps."""

from __future__ import annotations

import logging

from ..codegen import run_code_generation
from ..results import ActionResult, StepResult
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)


async def handle_confirm_code_generation(props: ActionHandlerProps) -> ActionResult:
    decision = await props.ctx.interaction.ask_user_for_confirmation_with_answer(
        props.args.message, "Start code generation", "Cancel code generation", False
    )
    if not decision.confirmed:
        props.ctx.transcript.notice("Code generation declined by the user")
        text = "Declining code generation." + (f" {decision.answer}" if decision.answer else "")
        return ActionResult.stop(props.reply(text))

    text = "Confirming code generation." + (f" {decision.answer}" if decision.answer else "")
    # Planning and summary requests must see the confirmation
    props.commit(props.reply(text))
    step = await run_code_generation(props.ctx)
    if step == StepResult.BREAK:
        return ActionResult(break_loop=True, step_result=StepResult.BREAK)
    return ActionResult.proceed()


__all__ = ["handle_confirm_code_generation"]
