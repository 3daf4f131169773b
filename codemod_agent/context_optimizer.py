"""
Context window optimizer.

When the project is too large to send in full, the cheap model rates each
disclosed file's relevance to the current prompt. Files are admitted with
full content in descending relevance order under a soft token budget that
only highly relevant files may exceed; everything else is represented by
its cached summary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field

from pydantic import ValidationError

from .config import OptimizerConfig
from .context import ConversationContext
from .function_defs import OptimizeContextArgs, OptimizedContextItem
from .prompts import OPTIMIZATION_PROMPT, OPTIMIZATION_TRIGGER_PROMPT
from .providers.base import ModelTier
from .results import StepResult
from .source_map import SourceCodeMap, source_map_to_json
from .token_estimator import estimate_json_tokens, estimate_token_count
from .transcript import FunctionCall, FunctionResponse, assistant, user

logger = logging.getLogger(__name__)


@dataclass
class OptimizationReport:
    tokens_before: int
    tokens_after: int
    content_token_count: int
    summary_token_count: int

    @property
    def percentage_reduced(self) -> float:
        if not self.tokens_before:
            return 0.0
        return (self.tokens_before - self.tokens_after) / self.tokens_before * 100

    def to_dict(self) -> dict:
        data = asdict(self)
        data["percentage_reduced"] = f"{self.percentage_reduced:.2f}%"
        return data


@dataclass
class OptimizationResult:
    step: StepResult
    report: OptimizationReport | None = None
    admitted: list[tuple[str, float]] = field(default_factory=list)


def select_context(
    ratings: list[OptimizedContextItem],
    source_map: SourceCodeMap,
    disclosed: set[str],
    config: OptimizerConfig,
    important: set[str] | frozenset = frozenset(),
) -> list[tuple[str, float]]:
    """
    Pick the files that get full content.

    Ratings for paths never disclosed to the model are discarded. The rest
    are visited by descending relevance; admission stops at the first file
    below `admit_relevance`, or at the first file below `high_relevance`
    whose content would push the running total past `budget_tokens`.
    Important files are always kept and do not count against the budget.

    Returns:
        (path, relevance) pairs in admission order
    """
    best: dict[str, float] = {}
    for item in ratings:
        if item.file_path not in disclosed or item.file_path not in source_map:
            logger.debug(f"Discarding rating for undisclosed file {item.file_path}")
            continue
        best[item.file_path] = max(item.relevance, best.get(item.file_path, 0.0))

    admitted: list[tuple[str, float]] = []
    total = 0
    for path, relevance in sorted(best.items(), key=lambda kv: kv[1], reverse=True):
        if relevance < config.admit_relevance:
            break
        if path in important:
            continue
        entry = source_map[path]
        cost = estimate_token_count(entry.content) if entry.content else 0
        if total + cost > config.budget_tokens and relevance < config.high_relevance:
            break
        total += cost
        admitted.append((path, relevance))
    return admitted


def build_optimized_map(
    full_map: SourceCodeMap,
    content_paths: set[str],
    summaries: dict[str, str],
) -> tuple[SourceCodeMap, int, int]:
    """
    Full content for `content_paths`, cached summaries for the rest.

    Files with neither admitted content nor a summary are left out.

    Returns:
        (optimized map, content token count, summary token count)
    """
    result: SourceCodeMap = {}
    content_tokens = 0
    summary_tokens = 0
    for path, entry in full_map.items():
        if path in content_paths and entry.content is not None:
            content_tokens += estimate_token_count(entry.content)
            result[path] = entry
        elif path in summaries:
            summary_tokens += estimate_token_count(summaries[path])
            result[path] = entry.as_summary(summaries[path])
    return result, content_tokens, summary_tokens


def _popular_paths(ctx: ConversationContext, full_map: SourceCodeMap) -> list[str]:
    config = ctx.config.summaries
    if not config.popular_dependencies_enabled:
        return []
    popular = ctx.cache.popular_dependencies(config.popular_threshold)
    return [p for p in ctx.registry.paths_of(popular) if p in full_map]


async def optimize_context(ctx: ConversationContext) -> OptimizationResult:
    """Run one optimization pass over the conversation's source context."""
    config = ctx.config.optimizer
    full_map = ctx.source_map()
    tokens_before = estimate_json_tokens(source_map_to_json(full_map))

    if tokens_before < config.trigger_tokens:
        ctx.transcript.notice("Context optimization is not needed, because the code base is small.")
        return OptimizationResult(StepResult.CONTINUE)

    ctx.transcript.notice("Context optimization is starting for large codebase")
    calls = await ctx.request(
        "optimizeContext",
        transcript=ctx.transcript.fork(assistant(OPTIMIZATION_TRIGGER_PROMPT), user(OPTIMIZATION_PROMPT)),
        temperature=config.temperature,
        model_tier=ModelTier.CHEAP,
    )
    try:
        args = OptimizeContextArgs.model_validate(calls[0].args or {}) if calls else None
    except ValidationError as e:
        logger.warning(f"Unusable optimizeContext arguments: {e}")
        args = None
    if args is None:
        ctx.transcript.notice("Warning: Context optimization failed. We need to abort.")
        return OptimizationResult(StepResult.BREAK)

    if not args.optimized_context:
        ctx.transcript.notice("Context optimization did not generate changes to current context.")
        return OptimizationResult(StepResult.CONTINUE)

    important = ctx.important_files
    admitted = select_context(
        args.optimized_context, full_map, ctx.transcript.disclosed_paths(), config, important
    )
    content_paths = {p for p, _ in admitted} | (important & set(full_map))

    # Popular dependencies only fill budget that relevance left unused
    used = sum(estimate_token_count(full_map[p].content or "") for p, _ in admitted)
    for path in _popular_paths(ctx, full_map):
        if path in content_paths:
            continue
        cost = estimate_token_count(full_map[path].content or "")
        if used + cost <= config.budget_tokens:
            content_paths.add(path)
            used += cost

    summaries = {path: entry.summary for path, entry in ctx.cache.items()}
    optimized_map, content_tokens, summary_tokens = build_optimized_map(full_map, content_paths, summaries)
    report = OptimizationReport(
        tokens_before=tokens_before,
        tokens_after=estimate_json_tokens(source_map_to_json(optimized_map)),
        content_token_count=content_tokens,
        summary_token_count=summary_tokens,
    )

    ctx.transcript.strip_file_contents(None, keep=important)
    paths = list(optimized_map)
    request_call = FunctionCall("requestFilesContent", {"filePaths": paths})
    source_call = FunctionCall("getSourceCode", {"filePaths": paths})
    ctx.transcript.append(assistant(calls=[request_call, source_call]))
    ctx.transcript.append(
        user(
            responses=[
                FunctionResponse("requestFilesContent", request_call.id, json.dumps({"filePaths": paths})),
                FunctionResponse("getSourceCode", source_call.id, json.dumps(source_map_to_json(optimized_map))),
            ],
            cache=True,
        )
    )

    ctx.transcript.notice(
        "Context optimization completed successfully.",
        {**report.to_dict(), "optimized_context": admitted},
    )
    return OptimizationResult(StepResult.CONTINUE, report, admitted)


__all__ = [
    "OptimizationReport",
    "OptimizationResult",
    "build_optimized_map",
    "optimize_context",
    "select_context",
]
