"""OpenAI adapters: chat completions with function calling, and DALL-E images."""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any

import openai

from ..config import ModelConfig
from ..errors import AuthenticationError, ProviderError, ProviderUnavailableError, RateLimitError
from ..function_defs import FunctionDef
from ..transcript import FunctionCall, Role, Transcript, TranscriptItem
from .base import GenerateResult, ImageBackend, ModelBackend, ModelTier, UsageTracker

logger = logging.getLogger(__name__)

# Model used when an image must be derived from a context image
IMAGE_EDIT_MODEL = "dall-e-2"


def _client(api_key: str | None) -> "openai.AsyncOpenAI":
    api_key = api_key or os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ValueError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")
    return openai.AsyncOpenAI(api_key=api_key)


def _translate_error(e: Exception, provider: str) -> ProviderError:
    if isinstance(e, openai.RateLimitError):
        return RateLimitError(str(e), provider=provider)
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthenticationError(str(e), provider=provider)
    if isinstance(e, (openai.APIConnectionError, openai.InternalServerError)):
        return ProviderUnavailableError(str(e), provider=provider)
    return ProviderError(str(e), provider=provider)


class OpenAIBackend(ModelBackend):
    """GPT backend."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        models: ModelConfig | None = None,
        usage: UsageTracker | None = None,
        client: Any = None,
    ):
        self.client = client if client is not None else _client(api_key)
        self.models = models or ModelConfig()
        self.usage = usage or UsageTracker()

    def model_for(self, tier: ModelTier) -> str:
        return {
            ModelTier.DEFAULT: self.models.openai_default,
            ModelTier.CHEAP: self.models.openai_cheap,
            ModelTier.REASONING: self.models.openai_reasoning,
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

        messages: list[dict[str, Any]] = []
        if transcript.system_prompt:
            messages.append({"role": "system", "content": transcript.system_prompt})
        messages.extend(to_openai_messages(transcript.items))

        request_params: dict[str, Any] = {"model": model, "messages": messages}
        # Reasoning models reject a temperature
        if model_tier != ModelTier.REASONING:
            request_params["temperature"] = temperature
        if "max_tokens" in options:
            request_params["max_completion_tokens"] = options["max_tokens"]
        if function_defs:
            request_params["tools"] = [
                {
                    "type": "function",
                    "function": {"name": f.name, "description": f.description, "parameters": f.parameters},
                }
                for f in function_defs
            ]
            if required_function_name:
                request_params["tool_choice"] = {"type": "function", "function": {"name": required_function_name}}
            else:
                request_params["tool_choice"] = "required"

        logger.debug(f"OpenAI request: model={model}, messages={len(messages)}")
        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.APIError as e:
            raise _translate_error(e, self.name) from e

        if response.usage:
            self.usage.record(self.name, model, response.usage.prompt_tokens, response.usage.completion_tokens)

        message = response.choices[0].message
        calls = []
        for tool_call in message.tool_calls or []:
            try:
                args = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                logger.warning(f"Malformed arguments for {tool_call.function.name}: {e}")
                args = None
            calls.append(FunctionCall(name=tool_call.function.name, args=args, id=tool_call.id))
        if calls:
            return calls
        return message.content or ""


def to_openai_messages(items: list[TranscriptItem]) -> list[dict[str, Any]]:
    """Map transcript items to chat-completion messages."""
    messages: list[dict[str, Any]] = []
    for item in items:
        if item.role == Role.ASSISTANT:
            if not item.text and not item.function_calls:
                continue
            message: dict[str, Any] = {"role": "assistant", "content": item.text or None}
            if item.function_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args or {})},
                    }
                    for call in item.function_calls
                ]
            messages.append(message)
            continue

        for response in item.function_responses:
            messages.append({"role": "tool", "tool_call_id": response.call_id, "content": response.content or ""})
        parts: list[dict[str, Any]] = []
        if item.text:
            parts.append({"type": "text", "text": item.text})
        for image in item.images:
            parts.append(
                {"type": "image_url", "image_url": {"url": f"data:{image.media_type};base64,{image.base64url}"}}
            )
        if parts:
            messages.append({"role": "user", "content": parts})
    return messages


class OpenAIImageBackend(ImageBackend):
    """DALL-E image generation."""

    name = "dall-e"

    def __init__(self, api_key: str | None = None, models: ModelConfig | None = None, client: Any = None):
        self.client = client if client is not None else _client(api_key)
        self.models = models or ModelConfig()

    async def generate_image(
        self,
        prompt: str,
        context_image_path: str | None = None,
        size: tuple[int, int] = (1024, 1024),
        model_tier: ModelTier = ModelTier.DEFAULT,
    ) -> str | bytes:
        size_param = f"{size[0]}x{size[1]}"
        try:
            if context_image_path:
                with Path(context_image_path).open("rb") as image:
                    response = await self.client.images.edit(
                        model=IMAGE_EDIT_MODEL, image=image, prompt=prompt, size=size_param, n=1
                    )
            else:
                response = await self.client.images.generate(
                    model=self.models.image_model, prompt=prompt, size=size_param, n=1
                )
        except openai.APIError as e:
            raise _translate_error(e, self.name) from e

        data = response.data[0]
        if data.url:
            return data.url
        return base64.b64decode(data.b64_json)


__all__ = ["OpenAIBackend", "OpenAIImageBackend", "to_openai_messages"]
