"""
Single-file handlers: createFile, updateFile and generateImage.

Each passes two confirmation gates: before content is generated and before
it is written.
"""

from __future__ import annotations

import logging
import os

from ..file_mutation import FileMutationExecutor, image_download_call
from ..function_defs import CreateFileArgs, GenerateImageArgs, UpdateFileArgs
from ..prompts import IMAGE_GENERATION_PROMPT, UPDATE_FILE_PROMPT
from ..providers.base import ModelTier
from ..results import ActionResult
from ..transcript import FunctionCall
from .common import infer_action_args
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)

ACCEPT_LABEL = "Accept file update"
REJECT_LABEL = "Reject file update"


def _with_answer(text: str, answer: str | None) -> str:
    return f"{text} {answer}" if answer else text


async def _apply(props: ActionHandlerProps, call: FunctionCall) -> str | None:
    """Run one file operation; returns an error message on failure."""
    errors = await FileMutationExecutor(props.ctx).apply([call])
    return errors[0] if errors else None


async def _handle_file_update(props: ActionHandlerProps, tool: str) -> ActionResult:
    ctx = props.ctx
    if tool == "createFile" and not ctx.permissions.allow_file_create:
        ctx.transcript.notice("File creation is not permitted (allow_file_create is disabled)")
        return ActionResult.proceed(props.reply("File creation is not permitted."))

    if not await ctx.interaction.ask_user_for_confirmation(f"{props.args.message}\n\nGenerate this change?", False):
        return ActionResult.proceed(props.reply("Declining file update."))

    model = CreateFileArgs if tool == "createFile" else UpdateFileArgs
    inferred = await infer_action_args(props, tool, model, prompt=UPDATE_FILE_PROMPT.format(tool=tool))
    if inferred is None:
        return ActionResult.proceed(props.reply("Failed to generate file update."))
    call, args = inferred

    exists = os.path.exists(args.file_path)
    if tool == "createFile" and exists:
        ctx.transcript.notice(f"Refusing to create {args.file_path}: file already exists")
        return ActionResult.proceed(props.reply("File already exists.", calls=[call]))
    if tool == "updateFile" and not exists:
        ctx.transcript.notice(f"Refusing to update {args.file_path}: file does not exist")
        return ActionResult.proceed(props.reply("File does not exist.", calls=[call]))

    decision = await ctx.interaction.ask_user_for_confirmation_with_answer(
        f"{args.explanation or props.args.message}\n\n{args.file_path}", ACCEPT_LABEL, REJECT_LABEL, False
    )
    if not decision.confirmed:
        return ActionResult.proceed(props.reply(_with_answer("Rejecting file update.", decision.answer), calls=[call]))

    error = await _apply(props, call)
    text = "Accepting file update." if error is None else f"File update failed: {error}"
    return ActionResult.proceed(props.reply(_with_answer(text, decision.answer), calls=[call]))


async def handle_create_file(props: ActionHandlerProps) -> ActionResult:
    return await _handle_file_update(props, "createFile")


async def handle_update_file(props: ActionHandlerProps) -> ActionResult:
    return await _handle_file_update(props, "updateFile")


async def handle_generate_image(props: ActionHandlerProps) -> ActionResult:
    ctx = props.ctx
    if not ctx.permissions.imagen or ctx.image_backend is None:
        ctx.transcript.notice("Image generation is not enabled")
        return ActionResult.proceed(props.reply("Image generation is not enabled."))

    inferred = await infer_action_args(props, "generateImage", GenerateImageArgs, prompt=IMAGE_GENERATION_PROMPT)
    if inferred is None:
        return ActionResult.proceed(props.reply("Failed to prepare image generation."))
    call, args = inferred

    if not await ctx.interaction.ask_user_for_confirmation(f"Generate image for {args.file_path}?\n\n{args.prompt}", False):
        return ActionResult.proceed(props.reply("Declining image generation.", calls=[call]))

    await ctx.checkpoint()
    result = await ctx.image_backend.generate_image(
        args.prompt,
        args.context_image_path,
        (args.width, args.height),
        ModelTier.CHEAP if args.cheap else ModelTier.DEFAULT,
    )
    download = image_download_call(args.file_path, result)

    decision = await ctx.interaction.ask_user_for_confirmation_with_answer(
        f"Save generated image to {args.file_path}?", ACCEPT_LABEL, REJECT_LABEL, False
    )
    if not decision.confirmed:
        return ActionResult.proceed(
            props.reply(_with_answer("Rejecting generated image.", decision.answer), calls=[call, download])
        )

    error = await _apply(props, download)
    text = "Image saved." if error is None else f"Saving image failed: {error}"
    return ActionResult.proceed(props.reply(_with_answer(text, decision.answer), calls=[call, download]))


__all__ = ["handle_create_file", "handle_generate_image", "handle_update_file"]
