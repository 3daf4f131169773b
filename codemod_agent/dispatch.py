"""
Action dispatch loop.

Each step asks the model for one askQuestion call, looks up the handler for
its actionType and appends the handler's turns to the transcript. The loop
ends when a handler breaks it, the model requests nothing, the step budget
runs out, or the conversation is cancelled.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

import httpx
from pydantic import ValidationError

from .config import AgentConfig
from .context import ConversationContext
from .context_optimizer import optimize_context
from .errors import AbortedError, AgentError, TranscriptInconsistentError, UnknownActionTypeError
from .function_defs import AskQuestionArgs
from .handlers import ActionHandlerProps, ActionHandlerRegistry, build_default_registry
from .interaction import UserInteraction
from .providers import ImageBackend, ModelBackend, build_router
from .results import StepResult
from .source_map import source_map_to_json
from .summarization import auto_context_refresh, summarize_source_code
from .transcript import SOURCE_CODE_FUNCTION, FunctionCall, FunctionResponse, assistant, ensure_call_ids, user

logger = logging.getLogger(__name__)


class LoopOutcome(Enum):
    """Why the dispatch loop stopped."""

    COMPLETED = "completed"
    NO_ACTION = "no_action"
    ABORTED = "aborted"
    BUDGET_EXHAUSTED = "budget_exhausted"
    ERROR = "error"


@dataclass
class DispatchState:
    """State for a single dispatch loop execution."""

    step: int = 0
    max_steps: int = 50
    actions: list[str] = field(default_factory=list)


@dataclass
class DispatchResult:
    """Result from a dispatch loop execution."""

    outcome: LoopOutcome
    steps: int
    actions: list[str]
    execution_time_ms: float
    error: str | None = None


class ActionDispatchLoop:
    """
    Drive the conversation until the model or the user ends it.

    Usage:
        async with ConversationContext(config, router) as ctx:
            result = await ActionDispatchLoop(ctx).run("Add a health check endpoint")
    """

    def __init__(self, ctx: ConversationContext, registry: ActionHandlerRegistry | None = None):
        self.ctx = ctx
        self.registry = registry or build_default_registry()

    async def start(self, user_prompt: str) -> StepResult:
        """Seed the transcript with the request and the project's source code."""
        ctx = self.ctx
        await summarize_source_code(ctx)
        ctx.files_state = ctx.files.snapshot()

        source_map = ctx.source_map(content_paths=ctx.important_files)
        source_call = ensure_call_ids([FunctionCall(SOURCE_CODE_FUNCTION, {})])[0]
        ctx.transcript.append(
            user(user_prompt),
            assistant(calls=[source_call]),
            user(
                responses=[
                    FunctionResponse(SOURCE_CODE_FUNCTION, source_call.id, json.dumps(source_map_to_json(source_map)))
                ],
                cache=True,
            ),
        )
        result = await optimize_context(ctx)
        return result.step

    async def run(self, user_prompt: str) -> DispatchResult:
        """Run the loop for one user request."""
        start_time = time.time()
        state = DispatchState(max_steps=self.ctx.config.loop.max_steps)

        def finish(outcome: LoopOutcome, error: str | None = None) -> DispatchResult:
            logger.info(f"Dispatch loop finished: {outcome.value} after {state.step} steps")
            return DispatchResult(outcome, state.step, state.actions, (time.time() - start_time) * 1000, error)

        try:
            await self.ctx.checkpoint()
            if len(self.ctx.transcript):
                # Follow-up request in an ongoing conversation
                self.ctx.transcript.append(user(user_prompt))
            elif await self.start(user_prompt) == StepResult.BREAK:
                return finish(LoopOutcome.ERROR, "Context optimization failed")

            while True:
                await self.ctx.checkpoint()
                if state.step >= state.max_steps:
                    self.ctx.transcript.notice(f"Step budget of {state.max_steps} exhausted, stopping")
                    return finish(LoopOutcome.BUDGET_EXHAUSTED)
                state.step += 1

                outcome = await self.step(state)
                if outcome is not None:
                    return finish(outcome)
        except AbortedError:
            self.ctx.transcript.notice("Conversation aborted")
            return finish(LoopOutcome.ABORTED)
        except (UnknownActionTypeError, TranscriptInconsistentError):
            raise
        except (AgentError, ValidationError, OSError, httpx.HTTPError) as e:
            logger.error(f"Dispatch loop failed: {e}")
            self.ctx.transcript.notice(f"Error: {e}")
            return finish(LoopOutcome.ERROR, str(e))

    async def step(self, state: DispatchState) -> LoopOutcome | None:
        """One request/dispatch round; returns an outcome when the loop must stop."""
        ctx = self.ctx
        await auto_context_refresh(ctx)

        calls = await ctx.request("askQuestion")
        if not calls:
            ctx.transcript.notice("No action requested by the model")
            return LoopOutcome.NO_ACTION

        ask_call = ensure_call_ids(calls[:1])[0]
        try:
            args = AskQuestionArgs.model_validate(ask_call.args or {})
        except ValidationError as e:
            logger.warning(f"Unusable askQuestion arguments: {e}")
            ctx.transcript.notice("No valid action requested by the model")
            return LoopOutcome.NO_ACTION
        handler = self.registry.get(args.action_type)
        logger.info(f"Step {state.step}: {args.action_type}")
        state.actions.append(args.action_type)

        result = await handler(ActionHandlerProps(ask_call=ask_call, args=args, ctx=ctx))
        for item in result.items:
            ctx.transcript.append(item.assistant, item.user)
        ctx.transcript.assert_consistent()

        if result.break_loop:
            return LoopOutcome.COMPLETED
        return None


async def run_agent(
    user_prompt: str,
    config: AgentConfig | None = None,
    backend: ModelBackend | None = None,
    interaction: UserInteraction | None = None,
    image_backend: ImageBackend | None = None,
) -> DispatchResult:
    """
    Library interface: run one request against a project.

    Without an explicit backend, a fallback router over the configured
    providers is built from the environment's API keys.

    Examples:
        >>> result = await run_agent("Add a README", AgentConfig(root_dir="/abs/project"))
        >>> print(result.outcome)
    """
    config = config or AgentConfig.load()
    backend = backend or build_router(config.models)
    async with ConversationContext(config, backend, interaction, image_backend) as ctx:
        return await ActionDispatchLoop(ctx).run(user_prompt)


__all__ = ["ActionDispatchLoop", "DispatchResult", "DispatchState", "LoopOutcome", "run_agent"]
