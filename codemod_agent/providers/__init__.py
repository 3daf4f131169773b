"""Model backends and the fallback router."""

from __future__ import annotations

from ..config import ModelConfig
from .anthropic_backend import AnthropicBackend
from .base import GenerateResult, ImageBackend, ModelBackend, ModelTier, UsageRecord, UsageTracker
from .fallback import ProviderFallbackRouter
from .openai_backend import OpenAIBackend, OpenAIImageBackend

BACKEND_CLASSES: dict[str, type[ModelBackend]] = {
    "anthropic": AnthropicBackend,
    "openai": OpenAIBackend,
}


def build_router(models: ModelConfig, usage: UsageTracker | None = None) -> ProviderFallbackRouter:
    """Router over every configured provider whose credentials are available."""
    usage = usage or UsageTracker()
    backends: dict[str, ModelBackend] = {}
    for name in models.providers:
        cls = BACKEND_CLASSES.get(name)
        if cls is None:
            raise ValueError(f"Unknown provider: {name}")
        try:
            backends[name] = cls(models=models, usage=usage)
        except ValueError:
            # Missing API key
            continue
    return ProviderFallbackRouter(backends, disable_fallback=models.disable_fallback)


__all__ = [
    "AnthropicBackend",
    "BACKEND_CLASSES",
    "GenerateResult",
    "ImageBackend",
    "ModelBackend",
    "ModelTier",
    "OpenAIBackend",
    "OpenAIImageBackend",
    "ProviderFallbackRouter",
    "UsageRecord",
    "UsageTracker",
    "build_router",
]
