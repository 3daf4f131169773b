"""Handlers that change what source code the model sees."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from ..context_optimizer import optimize_context
from ..function_defs import (
    ExtractFileFragmentsArgs,
    RemoveFilesFromContextArgs,
    RequestFilesContentArgs,
    RequestFilesFragmentsArgs,
)
from ..prompts import FRAGMENTS_PROMPT
from ..providers.base import ModelTier
from ..results import ActionResult, StepResult
from ..source_map import source_map_to_json
from ..transcript import SOURCE_CODE_FUNCTION, FunctionCall, Transcript, user
from ..validation import path_error
from .common import infer_action_args
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)

FRAGMENTS_TEMPERATURE = 0.2


def split_legitimate(props: ActionHandlerProps, paths: list[str]) -> tuple[list[str], list[str]]:
    """Separate readable project files from everything else."""
    project_files = set(props.ctx.files.refresh())
    legitimate, illegitimate = [], []
    for path in dict.fromkeys(paths):
        if path_error(path, props.ctx.root_dir) is None and path in project_files:
            legitimate.append(path)
        else:
            illegitimate.append(path)
    return legitimate, illegitimate


async def handle_request_files_content(props: ActionHandlerProps) -> ActionResult:
    """Answer with a getSourceCode response carrying the requested contents."""
    paths = props.args.request_files_content
    if not paths:
        inferred = await infer_action_args(props, "requestFilesContent", RequestFilesContentArgs)
        paths = inferred[1].file_paths if inferred else []

    legitimate, illegitimate = split_legitimate(props, paths)
    if illegitimate:
        props.ctx.transcript.notice(f"Ignoring requests for unknown files: {', '.join(illegitimate)}")

    source_map = props.ctx.source_map(filter_paths=legitimate, content_paths=legitimate)
    source_call = FunctionCall(SOURCE_CODE_FUNCTION, {"filePaths": legitimate}, id=f"{props.ask_call.id}_source")
    text = "Here is the requested content."
    if illegitimate:
        text += f" These files do not exist or are outside the project: {', '.join(illegitimate)}"
    return ActionResult.proceed(
        props.reply(
            text,
            calls=[source_call],
            contents=[
                json.dumps({"filePaths": legitimate, "illegitimateFiles": illegitimate}),
                json.dumps(source_map_to_json(source_map)),
            ],
            cache=True,
        )
    )


async def handle_request_files_fragments(props: ActionHandlerProps) -> ActionResult:
    """Extract only the fragments of files relevant to a question."""
    ctx = props.ctx
    inferred = await infer_action_args(props, "requestFilesFragments", RequestFilesFragmentsArgs)
    if inferred is None:
        return ActionResult.proceed(props.reply("Could not determine which fragments to extract."))
    args = inferred[1]

    legitimate, illegitimate = split_legitimate(props, args.file_paths)
    contents = ctx.files.read_contents(legitimate)
    transcript = Transcript(ctx.transcript.system_prompt, notices=ctx.transcript.notices)
    transcript.append(
        user(FRAGMENTS_PROMPT.format(fragment_prompt=args.fragment_prompt, files=json.dumps(contents, indent=1)))
    )
    calls = await ctx.request(
        "extractFileFragments",
        transcript=transcript,
        temperature=FRAGMENTS_TEMPERATURE,
        model_tier=ModelTier.CHEAP,
    )
    if not calls:
        return ActionResult.proceed(props.reply("Fragment extraction failed."))

    try:
        fragments = ExtractFileFragmentsArgs.model_validate(calls[0].args or {})
    except ValidationError as e:
        logger.warning(f"Unusable extractFileFragments arguments: {e}")
        return ActionResult.proceed(props.reply("Fragment extraction failed."))
    payload = {
        "fragments": {f.file_path: f.fragments for f in fragments.file_fragments if f.file_path in contents},
        "illegitimateFiles": illegitimate,
    }
    return ActionResult.proceed(props.reply("Here are the requested fragments.", contents=[json.dumps(payload)]))


async def handle_remove_files_from_context(props: ActionHandlerProps) -> ActionResult:
    ctx = props.ctx
    paths = props.args.remove_files_from_context
    if not paths:
        inferred = await infer_action_args(props, "removeFilesFromContext", RemoveFilesFromContextArgs)
        paths = inferred[1].file_paths if inferred else []

    removed = ctx.transcript.strip_file_contents(set(paths), keep=ctx.important_files)
    ctx.transcript.notice(f"Removed {removed} file contents from context")
    return ActionResult.proceed(props.reply("Files removed from context.", contents=[json.dumps({"filePaths": paths})]))


async def handle_context_optimization(props: ActionHandlerProps) -> ActionResult:
    result = await optimize_context(props.ctx)
    if result.step == StepResult.BREAK:
        return ActionResult.stop(props.reply("Context optimization failed."))
    return ActionResult.proceed(props.reply("Context optimized."))


__all__ = [
    "handle_context_optimization",
    "handle_remove_files_from_context",
    "handle_request_files_content",
    "handle_request_files_fragments",
    "split_legitimate",
]
