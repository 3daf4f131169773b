"""
Provider fallback router.

Wraps an ordered table of backends behind the ModelBackend contract. A
transient failure (rate limit, unavailability) moves the router to the next
backend for the rest of the conversation and records a notice on the
transcript. Every other failure propagates unchanged.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import TRANSIENT_PROVIDER_ERRORS, ProviderError, ProviderUnavailableError, RateLimitError
from ..function_defs import FunctionDef
from ..transcript import Transcript
from .base import GenerateResult, ModelBackend, ModelTier

logger = logging.getLogger(__name__)


class ProviderFallbackRouter(ModelBackend):
    """
    Route content generation to the active backend, switching on throttling.

    Usage:
        router = ProviderFallbackRouter({"anthropic": claude, "openai": gpt})
        calls = await router.generate_content(transcript, defs, "askQuestion")
    """

    name = "fallback-router"

    def __init__(self, backends: dict[str, ModelBackend], disable_fallback: bool = False):
        if not backends:
            raise ValueError("At least one backend is required")
        self._order = list(backends)
        self._backends = dict(backends)
        self._active_index = 0
        self.disable_fallback = disable_fallback
        self._switch_history: list[dict[str, Any]] = []

    @property
    def active_name(self) -> str:
        return self._order[self._active_index]

    @property
    def active(self) -> ModelBackend:
        return self._backends[self.active_name]

    @property
    def switch_history(self) -> list[dict[str, Any]]:
        return list(self._switch_history)

    async def generate_content(
        self,
        transcript: Transcript,
        function_defs: list[FunctionDef],
        required_function_name: str | None = None,
        temperature: float = 0.7,
        model_tier: ModelTier = ModelTier.DEFAULT,
        options: dict[str, Any] | None = None,
    ) -> GenerateResult:
        while True:
            name = self.active_name
            try:
                return await self._backends[name].generate_content(
                    transcript, function_defs, required_function_name, temperature, model_tier, options
                )
            except TRANSIENT_PROVIDER_ERRORS as e:
                if name != self.active_name:
                    # A concurrent request already moved past this backend
                    logger.debug(f"{name} failed after fallback to {self.active_name}, retrying there")
                    continue
                self._fall_back(transcript, name, e)

    def _fall_back(self, transcript: Transcript, name: str, error: ProviderError) -> None:
        reason = f"Rate limit exceeded for {name}" if isinstance(error, RateLimitError) else f"{name} is unavailable"

        if self.disable_fallback:
            transcript.notice(reason, {"provider": name, "error": str(error)})
            raise error

        if self._active_index + 1 >= len(self._order):
            transcript.notice(f"{reason}. No other provider is configured.", {"provider": name})
            raise ProviderUnavailableError(
                f"{reason}, and fallback was not possible", provider=name
            ) from error

        self._active_index += 1
        next_name = self.active_name
        transcript.notice(
            f"{reason}. Automatically switching to {next_name}.",
            {"from": name, "to": next_name, "error": str(error)},
        )
        self._switch_history.append({"from": name, "to": next_name, "error": str(error)})
        logger.warning(f"Provider fallback {name} -> {next_name}: {error}")


__all__ = ["ProviderFallbackRouter"]
