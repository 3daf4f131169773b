"""
Code generation: planning, summary, update generation and application.

Each stage needs the user's go-ahead: the plan, the summary of file
updates, and finally the generated changes before anything is written.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .context import ConversationContext
from .file_mutation import FileMutationExecutor
from .function_defs import CodegenPlanningArgs, CodegenSummaryArgs, function_def
from .prompts import CODEGEN_PLANNING_PROMPT, CODEGEN_SUMMARY_PROMPT
from .results import StepResult
from .transcript import FunctionCall, assistant, ensure_call_ids, responses_for, user

logger = logging.getLogger(__name__)


async def _codegen_step(ctx: ConversationContext, prompt: str, function_name: str) -> FunctionCall | None:
    """Request one codegen stage and record it in the transcript."""
    calls = await ctx.request(
        function_name,
        transcript=ctx.transcript.fork(user(prompt)),
        function_defs=[function_def(function_name)],
    )
    if not calls:
        ctx.transcript.notice(f"Code generation failed: no valid {function_name} response")
        return None
    call = ensure_call_ids(calls[:1])[0]
    ctx.transcript.append(user(prompt), assistant(calls=[call]), user(responses=responses_for([call])))
    return call


async def generate_plan(ctx: ConversationContext) -> CodegenPlanningArgs | None:
    call = await _codegen_step(ctx, CODEGEN_PLANNING_PROMPT, "codegenPlanning")
    if call is None:
        return None
    try:
        return CodegenPlanningArgs.model_validate(call.args or {})
    except ValidationError as e:
        logger.warning(f"Unusable codegen plan: {e}")
        return None


async def generate_summary(ctx: ConversationContext) -> CodegenSummaryArgs | None:
    call = await _codegen_step(ctx, CODEGEN_SUMMARY_PROMPT, "codegenSummary")
    if call is None:
        return None
    try:
        return CodegenSummaryArgs.model_validate(call.args or {})
    except ValidationError as e:
        logger.warning(f"Unusable codegen summary: {e}")
        return None


def _describe_updates(summary: CodegenSummaryArgs) -> str:
    lines = [summary.explanation]
    lines.extend(f"- [{u.id}] {u.update_tool_name} {u.file_path}" for u in summary.file_updates)
    return "\n".join(lines)


async def run_code_generation(ctx: ConversationContext) -> StepResult:
    """
    Plan, summarize, generate and apply code changes.

    Returns BREAK when the user declines a stage or a stage fails.
    """
    interaction = ctx.interaction

    plan = await generate_plan(ctx)
    if plan is None:
        return StepResult.BREAK
    if not await interaction.ask_user_for_confirmation(f"{plan.codegen_planning}\n\nProceed with this plan?", False):
        ctx.transcript.notice("Code generation plan rejected by the user")
        return StepResult.BREAK

    summary = await generate_summary(ctx)
    if summary is None:
        return StepResult.BREAK
    if not summary.file_updates:
        ctx.transcript.notice("Code generation produced no file updates")
        return StepResult.CONTINUE
    if not await interaction.ask_user_for_confirmation(
        f"{_describe_updates(summary)}\n\nGenerate these file updates?", False
    ):
        ctx.transcript.notice("Code generation summary rejected by the user")
        return StepResult.BREAK

    executor = FileMutationExecutor(ctx)
    calls = await executor.generate(summary.file_updates)
    if not calls:
        ctx.transcript.notice("No file updates were generated")
        return StepResult.CONTINUE

    if not await interaction.ask_user_for_confirmation(f"Apply {len(calls)} generated changes?", False):
        ctx.transcript.notice("Generated changes were not applied")
        return StepResult.BREAK

    errors = await executor.apply(calls)
    ctx.transcript.notice(
        f"Applied {len(calls) - len(errors)} of {len(calls)} changes",
        {"errors": errors, "order": executor.processed_order},
    )
    return StepResult.CONTINUE


__all__ = ["generate_plan", "generate_summary", "run_code_generation"]
