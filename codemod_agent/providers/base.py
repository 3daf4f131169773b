"""
Backend contracts shared by every provider adapter.

A content backend maps a Transcript plus function declarations onto one
provider request and maps the reply back to FunctionCalls (or plain text).
Token usage is reported to a UsageTracker on the side.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..function_defs import FunctionDef
from ..transcript import FunctionCall, Transcript


class ModelTier(Enum):
    """Which class of model a request needs."""

    DEFAULT = "default"
    CHEAP = "cheap"
    REASONING = "reasoning"


GenerateResult = list[FunctionCall] | str


@dataclass
class UsageRecord:
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0


@dataclass
class UsageTracker:
    """Accumulates token usage per provider and model."""

    records: list[UsageRecord] = field(default_factory=list)

    def record(self, provider: str, model: str, input_tokens: int, output_tokens: int, **extra: int) -> None:
        self.records.append(UsageRecord(provider, model, input_tokens, output_tokens, **extra))

    def totals(self) -> dict[str, dict[str, int]]:
        """Token totals keyed by `provider:model`."""
        result: dict[str, dict[str, int]] = {}
        for r in self.records:
            key = f"{r.provider}:{r.model}"
            totals = result.setdefault(key, {"input_tokens": 0, "output_tokens": 0, "requests": 0})
            totals["input_tokens"] += r.input_tokens
            totals["output_tokens"] += r.output_tokens
            totals["requests"] += 1
        return result


class ModelBackend(ABC):
    """Abstract content generation backend."""

    name: str = "backend"

    @abstractmethod
    async def generate_content(
        self,
        transcript: Transcript,
        function_defs: list[FunctionDef],
        required_function_name: str | None = None,
        temperature: float = 0.7,
        model_tier: ModelTier = ModelTier.DEFAULT,
        options: dict[str, Any] | None = None,
    ) -> GenerateResult:
        """Generate the next assistant turn."""
        ...


class ImageBackend(ABC):
    """Abstract image generation backend."""

    name: str = "image"

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        context_image_path: str | None = None,
        size: tuple[int, int] = (1024, 1024),
        model_tier: ModelTier = ModelTier.DEFAULT,
    ) -> str | bytes:
        """Return a download URL or the raw image bytes."""
        ...


__all__ = [
    "GenerateResult",
    "ImageBackend",
    "ModelBackend",
    "ModelTier",
    "UsageRecord",
    "UsageTracker",
]
