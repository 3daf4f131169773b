"""
Scripted collaborators for tests.

ScriptedBackend replays queued model replies, ScriptedInteraction answers
confirmations and input prompts from queues.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from codemod_agent.interaction import ConfirmationAnswer, UserInteraction
from codemod_agent.providers.base import GenerateResult, ImageBackend, ModelBackend, ModelTier
from codemod_agent.transcript import FunctionCall, Transcript

Reply = GenerateResult | Exception | Callable[[Transcript, "str | None"], GenerateResult]


@dataclass
class RecordedRequest:
    """One generate_content invocation seen by ScriptedBackend."""

    required_function_name: str | None
    function_names: list[str]
    temperature: float
    model_tier: ModelTier
    items: int
    last_text: str | None


class ScriptedBackend(ModelBackend):
    """
    Replays queued replies in order.

    A reply is a list of FunctionCalls, plain text, an exception to raise,
    or a callable receiving (transcript, required_function_name). An empty
    queue answers with plain text, which never satisfies a required call.
    """

    def __init__(self, replies: list[Reply] | None = None, name: str = "scripted"):
        self.name = name
        self.replies: list[Reply] = list(replies or [])
        self.requests: list[RecordedRequest] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def generate_content(
        self,
        transcript,
        function_defs,
        required_function_name=None,
        temperature=0.7,
        model_tier=ModelTier.DEFAULT,
        options=None,
    ) -> GenerateResult:
        last = transcript.last
        self.requests.append(
            RecordedRequest(
                required_function_name,
                [f.name for f in function_defs],
                temperature,
                model_tier,
                len(transcript),
                last.text if last else None,
            )
        )
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(transcript, required_function_name)
        return reply

    def required_names(self) -> list[str | None]:
        return [r.required_function_name for r in self.requests]


class ScriptedImageBackend(ImageBackend):
    def __init__(self, result: str | bytes = b"\x89PNG fake"):
        self.result = result
        self.prompts: list[str] = []

    async def generate_image(self, prompt, context_image_path=None, size=(1024, 1024), model_tier=ModelTier.DEFAULT):
        self.prompts.append(prompt)
        return self.result


@dataclass
class ScriptedInteraction(UserInteraction):
    """Answers from queues; an exhausted queue declines."""

    confirmations: list[bool] = field(default_factory=list)
    answers: list[ConfirmationAnswer] = field(default_factory=list)
    inputs: list[str | None] = field(default_factory=list)
    asked: list[str] = field(default_factory=list)

    async def ask_user_for_confirmation(self, message: str, default_value: bool = False) -> bool:
        self.asked.append(message)
        return self.confirmations.pop(0) if self.confirmations else False

    async def ask_user_for_confirmation_with_answer(self, message, confirm_label, decline_label, default_value=False):
        self.asked.append(message)
        return self.answers.pop(0) if self.answers else ConfirmationAnswer(False)

    async def ask_user_for_input(self, prompt: str, placeholder: str | None = None) -> str | None:
        self.asked.append(prompt)
        return self.inputs.pop(0) if self.inputs else None


def call(name: str, **args: Any) -> list[FunctionCall]:
    """A single-call model reply; keyword names are the wire (camelCase) names."""
    return [FunctionCall(name, args)]


def ask(action_type: str, message: str = "Working on it", **extra: Any) -> list[FunctionCall]:
    return call("askQuestion", actionType=action_type, message=message, **extra)


def summaries_reply(transcript: Transcript, required: str | None) -> list[FunctionCall]:
    """Answer a setSummaries request with a one-line summary per requested file."""
    files = json.loads(transcript.last.text.split("Files:\n", 1)[1])
    summaries = [
        {"filePath": path, "summary": f"about {path.rsplit('/', 1)[-1]}", "dependencies": []} for path in files
    ]
    return call("setSummaries", summaries=summaries)
