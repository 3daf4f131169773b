"""Anthropic Claude adapter built on the official SDK's tool use."""

from __future__ import annotations

import logging
import os
from typing import Any

import anthropic

from ..config import ModelConfig
from ..errors import AuthenticationError, ProviderError, ProviderUnavailableError, RateLimitError
from ..function_defs import FunctionDef
from ..transcript import FunctionCall, Role, Transcript, TranscriptItem
from .base import GenerateResult, ModelBackend, ModelTier, UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192


class AnthropicBackend(ModelBackend):
    """Claude backend."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        models: ModelConfig | None = None,
        usage: UsageTracker | None = None,
        base_url: str | None = None,
        client: Any = None,
    ):
        if client is None:
            # Support both ANTHROPIC_API_KEY and ANTHROPIC_AUTH_TOKEN
            api_key = api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
            if not api_key:
                raise ValueError(
                    "Anthropic API key required. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN environment variable."
                )
            client_kwargs: dict[str, Any] = {"api_key": api_key}
            base_url = base_url or os.environ.get("ANTHROPIC_BASE_URL")
            if base_url:
                client_kwargs["base_url"] = base_url
            client = anthropic.AsyncAnthropic(**client_kwargs)
        self.client = client
        self.models = models or ModelConfig()
        self.usage = usage or UsageTracker()

    def model_for(self, tier: ModelTier) -> str:
        return {
            ModelTier.DEFAULT: self.models.anthropic_default,
            ModelTier.CHEAP: self.models.anthropic_cheap,
            ModelTier.REASONING: self.models.anthropic_reasoning,
        }[tier]

    async def generate_content(
        self,
        transcript: Transcript,
        function_defs: list[FunctionDef],
        required_function_name: str | None = None,
        temperature: float = 0.7,
        model_tier: ModelTier = ModelTier.DEFAULT,
        options: dict[str, Any] | None = None,
    ) -> GenerateResult:
        options = options or {}
        model = self.model_for(model_tier)

        request_params: dict[str, Any] = {
            "model": model,
            "max_tokens": options.get("max_tokens", DEFAULT_MAX_TOKENS),
            "temperature": temperature,
            "messages": to_anthropic_messages(transcript.items),
        }
        if transcript.system_prompt:
            request_params["system"] = transcript.system_prompt
        if function_defs:
            request_params["tools"] = [
                {"name": f.name, "description": f.description, "input_schema": f.parameters} for f in function_defs
            ]
            if required_function_name:
                request_params["tool_choice"] = {"type": "tool", "name": required_function_name}
            else:
                request_params["tool_choice"] = {"type": "any"}

        logger.debug(f"Anthropic request: model={model}, messages={len(request_params['messages'])}")
        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.RateLimitError as e:
            raise RateLimitError(str(e), provider=self.name) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise AuthenticationError(str(e), provider=self.name) from e
        except (anthropic.APIConnectionError, anthropic.InternalServerError) as e:
            raise ProviderUnavailableError(str(e), provider=self.name) from e
        except anthropic.APIError as e:
            raise ProviderError(str(e), provider=self.name) from e

        usage = response.usage
        self.usage.record(
            self.name,
            model,
            usage.input_tokens,
            usage.output_tokens,
            cache_read_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
            cache_write_tokens=getattr(usage, "cache_creation_input_tokens", 0) or 0,
        )

        calls = [
            FunctionCall(name=block.name, args=dict(block.input or {}), id=block.id)
            for block in response.content
            if block.type == "tool_use"
        ]
        if calls:
            return calls
        return "".join(block.text for block in response.content if block.type == "text")


def to_anthropic_messages(items: list[TranscriptItem]) -> list[dict[str, Any]]:
    """Map transcript items to alternating Anthropic messages."""
    messages: list[dict[str, Any]] = []
    for item in items:
        blocks = _item_blocks(item)
        if not blocks:
            continue
        role = "assistant" if item.role == Role.ASSISTANT else "user"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})
    return messages


def _item_blocks(item: TranscriptItem) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if item.role == Role.ASSISTANT:
        if item.text:
            blocks.append({"type": "text", "text": item.text})
        for call in item.function_calls:
            blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.args or {}})
    else:
        # tool_result blocks must lead the user message
        for response in item.function_responses:
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": response.call_id,
                "content": response.content or "",
            }
            if response.is_error:
                block["is_error"] = True
            blocks.append(block)
        for image in item.images:
            blocks.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": image.media_type, "data": image.base64url},
                }
            )
        if item.text:
            blocks.append({"type": "text", "text": item.text})
    if item.cache and blocks:
        blocks[-1]["cache_control"] = {"type": "ephemeral"}
    return blocks


__all__ = ["AnthropicBackend", "to_anthropic_messages"]
