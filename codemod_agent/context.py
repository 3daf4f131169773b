"""
Per-conversation state.

ConversationContext replaces process-wide singletons: it owns the
transcript, the summary cache, the cancellation flag and the pause hook,
and hands the collaborators (backend, image backend, user interaction,
file operations) to the dispatch loop and its handlers.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

from .config import AgentConfig
from .errors import AbortedError
from .function_defs import FunctionDef, get_function_defs
from .interaction import NonInteractive, UserInteraction
from .operations import FileOperations
from .project_files import FilesState, ProjectFiles
from .prompts import SYSTEM_PROMPT
from .providers.base import ImageBackend, ModelBackend, ModelTier
from .source_map import FileIdRegistry, SourceCodeMap
from .summary_cache import SummaryCache
from .transcript import FunctionCall, Transcript
from .validation import ContentRequest, request_single_call

logger = logging.getLogger(__name__)

PauseHook = Callable[[], Awaitable[None]]


class ConversationContext:
    """
    Lifecycle: entering loads the summary cache, exiting saves it.

    Usage:
        async with ConversationContext(config, router) as ctx:
            result = await ActionDispatchLoop(ctx).run("Add a README")
    """

    def __init__(
        self,
        config: AgentConfig,
        backend: ModelBackend,
        interaction: UserInteraction | None = None,
        image_backend: ImageBackend | None = None,
        cache: SummaryCache | None = None,
        wait_if_paused: PauseHook | None = None,
        system_prompt: str | None = None,
    ):
        self.config = config
        self.root_dir = config.root_dir
        self.backend = backend
        self.image_backend = image_backend
        self.interaction = interaction or NonInteractive()
        self.cache = cache if cache is not None else SummaryCache(config.summaries.cache_path)
        self.files = ProjectFiles(self.root_dir, config.ignore_patterns)
        self.operations = FileOperations(self.root_dir, config.permissions)
        self.registry = FileIdRegistry()
        self.transcript = Transcript(system_prompt or SYSTEM_PROMPT.format(root_dir=self.root_dir))
        self.files_state: FilesState | None = None
        self.cancelled = asyncio.Event()
        self._wait_if_paused = wait_if_paused

    async def __aenter__(self) -> "ConversationContext":
        self.cache.load()
        logger.debug(f"Conversation started in {self.root_dir} with {len(self.cache)} cached summaries")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.cache.save()
        return False

    @property
    def permissions(self):
        return self.config.permissions

    @property
    def important_files(self) -> set[str]:
        return {os.path.join(self.root_dir, p) if not os.path.isabs(p) else p for p in self.config.important_files}

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def aborted(self) -> bool:
        return self.cancelled.is_set()

    async def checkpoint(self) -> None:
        """Wait while paused; raise AbortedError once cancelled."""
        if self.cancelled.is_set():
            raise AbortedError("Conversation aborted")
        if self._wait_if_paused is not None:
            await self._wait_if_paused()
        if self.cancelled.is_set():
            raise AbortedError("Conversation aborted")

    def source_map(self, filter_paths=None, content_paths=None) -> SourceCodeMap:
        return self.files.build_source_map(self.cache, self.registry, filter_paths, content_paths)

    async def request(
        self,
        required_function_name: str | None,
        transcript: Transcript | None = None,
        function_defs: list[FunctionDef] | None = None,
        temperature: float | None = None,
        model_tier: ModelTier = ModelTier.DEFAULT,
        options: dict[str, Any] | None = None,
    ) -> list[FunctionCall]:
        """One validated model call, bracketed by checkpoints."""
        await self.checkpoint()
        request = ContentRequest(
            transcript=transcript if transcript is not None else self.transcript,
            function_defs=function_defs if function_defs is not None else get_function_defs(),
            required_function_name=required_function_name,
            temperature=self.config.models.temperature if temperature is None else temperature,
            model_tier=model_tier,
            options=options,
        )
        calls = await request_single_call(self.backend, request, self.root_dir)
        await self.checkpoint()
        return calls


__all__ = ["ConversationContext", "PauseHook"]
