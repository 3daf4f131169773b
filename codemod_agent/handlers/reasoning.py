"""reasoningInference: delegate a hard question to the reasoning tier."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from ..function_defs import ReasoningInferenceArgs, ReasoningInferenceResponseArgs, function_def
from ..prompts import REASONING_PROMPT
from ..providers.base import ModelTier
from ..results import ActionResult
from ..source_map import expand_context, source_map_to_json
from ..transcript import Transcript, user
from .common import infer_action_args
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)


async def handle_reasoning_inference(props: ActionHandlerProps) -> ActionResult:
    ctx = props.ctx
    inferred = await infer_action_args(props, "reasoningInference", ReasoningInferenceArgs)
    if inferred is None:
        return ActionResult.proceed(props.reply("Failed to prepare reasoning inference."))
    call, args = inferred

    full_map = ctx.source_map()
    context_map = expand_context(args.context_paths, full_map, ctx.registry)
    transcript = Transcript(ctx.transcript.system_prompt, notices=ctx.transcript.notices)
    transcript.append(
        user(REASONING_PROMPT.format(prompt=args.prompt, source_code=json.dumps(source_map_to_json(context_map))))
    )
    calls = await ctx.request(
        "reasoningInferenceResponse",
        transcript=transcript,
        function_defs=[function_def("reasoningInferenceResponse")],
        model_tier=ModelTier.REASONING,
    )
    if not calls:
        return ActionResult.proceed(props.reply("Reasoning inference failed.", calls=[call]))

    try:
        response = ReasoningInferenceResponseArgs.model_validate(calls[0].args or {})
    except ValidationError as e:
        logger.warning(f"Unusable reasoningInferenceResponse arguments: {e}")
        return ActionResult.proceed(props.reply("Reasoning inference failed.", calls=[call]))
    logger.info(f"Reasoning inference used {len(context_map)} context files")
    return ActionResult.proceed(
        props.reply(
            "Reasoning inference completed.",
            calls=[call],
            contents=["", response.model_dump_json(by_alias=True, exclude_none=True)],
        )
    )


__all__ = ["handle_reasoning_inference"]
