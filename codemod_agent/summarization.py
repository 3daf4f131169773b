"""
Source summarization and change-driven cache refresh.

Stale files are summarized in batches by the cheap model tier. Between
dispatch steps the project is re-snapshotted; files whose checksum changed,
appeared or disappeared lose their cache entries, get re-summarized, and
their stale content is nulled in earlier getSourceCode responses.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from .context import ConversationContext
from .function_defs import SetSummariesArgs, function_def
from .prompts import SUMMARIZATION_PROMPT
from .providers.base import ModelTier
from .summary_cache import SummaryEntry, checksum
from .token_estimator import estimate_token_count
from .transcript import Transcript, user

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.2


@dataclass
class RefreshReport:
    changed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.added or self.deleted)


def _batches(items: list[str], size: int) -> list[list[str]]:
    size = max(size, 1)
    return [items[i : i + size] for i in range(0, len(items), size)]


async def summarize_source_code(ctx: ConversationContext, paths: list[str] | None = None) -> list[str]:
    """
    Summarize every stale file among `paths` (default: the whole project).

    Returns:
        Paths whose cache entry was written
    """
    contents = ctx.files.read_contents(paths if paths is not None else ctx.files.source_files())
    stale = [p for p, c in contents.items() if ctx.cache.is_stale(p, c)]
    if not stale:
        return []

    batches = _batches(stale, ctx.config.summaries.batch_size)
    logger.info(f"Summarizing {len(stale)} files in {len(batches)} batches")
    results = await asyncio.gather(*(_summarize_batch(ctx, batch, contents) for batch in batches))
    return [path for batch_result in results for path in batch_result]


async def _summarize_batch(ctx: ConversationContext, batch: list[str], contents: dict[str, str]) -> list[str]:
    files = json.dumps({path: contents[path] for path in batch}, indent=1)
    transcript = Transcript(ctx.transcript.system_prompt, notices=ctx.transcript.notices)
    transcript.append(user(SUMMARIZATION_PROMPT.format(max_tokens=ctx.config.summaries.max_summary_tokens, files=files)))

    calls = await ctx.request(
        "setSummaries",
        transcript=transcript,
        function_defs=[function_def("setSummaries")],
        temperature=SUMMARY_TEMPERATURE,
        model_tier=ModelTier.CHEAP,
    )
    if not calls:
        logger.warning(f"No summaries returned for a batch of {len(batch)} files")
        return []

    try:
        args = SetSummariesArgs.model_validate(calls[0].args or {})
    except ValidationError as e:
        logger.warning(f"Unusable setSummaries arguments for a batch of {len(batch)} files: {e}")
        return []
    project_files = set(ctx.files.source_files())
    wanted = set(batch)
    written = []
    for item in args.summaries:
        if item.file_path not in wanted:
            logger.debug(f"Ignoring summary for unrequested file {item.file_path}")
            continue
        content = contents[item.file_path]
        local_deps = []
        external_deps = []
        for dep in item.dependencies:
            if dep.type == "local" and dep.path in project_files:
                local_deps.append(ctx.registry.register(dep.path))
            elif dep.type == "external":
                external_deps.append(dep.path)
        entry = SummaryEntry(
            file_id=ctx.registry.register(item.file_path),
            checksum=checksum(content),
            summary=item.summary,
            token_count=estimate_token_count(content),
            local_deps=local_deps,
            external_deps=external_deps,
        )
        await ctx.cache.update(item.file_path, entry)
        written.append(item.file_path)

    missing = wanted.difference(written)
    if missing:
        logger.warning(f"Model skipped summaries for {len(missing)} files")
    return written


async def auto_context_refresh(ctx: ConversationContext) -> RefreshReport:
    """Diff the project against the last snapshot and refresh what changed."""
    previous = ctx.files_state
    current = ctx.files.snapshot()
    ctx.files_state = current
    if previous is None:
        return RefreshReport()

    report = RefreshReport(
        changed=[p for p, digest in current.items() if p in previous and previous[p] != digest],
        added=[p for p in current if p not in previous],
        deleted=[p for p in previous if p not in current],
    )
    if not report.has_changes:
        return report

    ctx.cache.invalidate(report.changed + report.added + report.deleted)
    await summarize_source_code(ctx, report.changed + report.added)
    ctx.transcript.strip_file_contents(
        set(report.changed + report.deleted),
        drop_summaries=set(report.deleted),
    )
    ctx.transcript.notice(
        f"Detected file changes: {len(report.changed)} changed, {len(report.added)} added, "
        f"{len(report.deleted)} deleted",
        {"changed": report.changed, "added": report.added, "deleted": report.deleted},
    )
    return report


__all__ = ["RefreshReport", "auto_context_refresh", "summarize_source_code"]
