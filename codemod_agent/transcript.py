"""
Conversation transcript shared by the dispatch loop, handlers and backends.

A transcript is one system prompt followed by alternating user/assistant
items. Assistant items may carry function calls; every call must be answered
by a function response in a later user item before the transcript is sent to
a backend again. Operator-facing notices (retries, fallbacks, denials) are
kept alongside the items but are never sent to a backend.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from .errors import TranscriptInconsistentError

logger = logging.getLogger(__name__)

SOURCE_CODE_FUNCTION = "getSourceCode"


class Role(str, Enum):
    """Transcript turn author."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class FunctionCall:
    """A structured call emitted by the model."""

    name: str
    args: dict[str, Any] | None = None
    id: str | None = None


@dataclass
class FunctionResponse:
    """Answer to a FunctionCall, matched by call_id."""

    name: str
    call_id: str | None
    content: str | None = None
    is_error: bool = False


@dataclass
class PromptImage:
    """Image attached to a turn."""

    path: str
    base64url: str
    media_type: str


@dataclass
class TranscriptItem:
    """One user or assistant turn."""

    role: Role
    text: str | None = None
    function_calls: list[FunctionCall] = field(default_factory=list)
    function_responses: list[FunctionResponse] = field(default_factory=list)
    images: list[PromptImage] = field(default_factory=list)
    # Hint for backends that support prompt caching
    cache: bool = False


@dataclass
class SystemNotice:
    """Operator-visible message explaining why execution paused or changed."""

    message: str
    data: Any = None


def new_call_id(name: str) -> str:
    """Generate a call id unique within a conversation."""
    return f"{name}_{uuid.uuid4().hex[:12]}"


def ensure_call_ids(calls: list[FunctionCall]) -> list[FunctionCall]:
    """Assign ids to calls the backend returned without one."""
    for call in calls:
        if not call.id:
            call.id = new_call_id(call.name)
    return calls


def user(text: str | None = None, responses: list[FunctionResponse] | None = None, **kwargs: Any) -> TranscriptItem:
    """Shorthand for a user turn."""
    return TranscriptItem(Role.USER, text=text, function_responses=responses or [], **kwargs)


def assistant(text: str | None = None, calls: list[FunctionCall] | None = None, **kwargs: Any) -> TranscriptItem:
    """Shorthand for an assistant turn."""
    return TranscriptItem(Role.ASSISTANT, text=text, function_calls=calls or [], **kwargs)


def responses_for(calls: list[FunctionCall], content: str | None = "") -> list[FunctionResponse]:
    """Build one empty response per call."""
    return [FunctionResponse(name=call.name, call_id=call.id, content=content) for call in calls]


class Transcript:
    """
    Ordered conversation plus operator notices.

    Usage:
        transcript = Transcript(system_prompt)
        transcript.append(user("Add a README"))
        request = transcript.fork(assistant("..."), user("..."))
    """

    def __init__(
        self,
        system_prompt: str = "",
        items: list[TranscriptItem] | None = None,
        notices: list[SystemNotice] | None = None,
    ):
        self.system_prompt = system_prompt
        self.items: list[TranscriptItem] = list(items or [])
        self.notices: list[SystemNotice] = notices if notices is not None else []

    def __iter__(self) -> Iterator[TranscriptItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def last(self) -> TranscriptItem | None:
        return self.items[-1] if self.items else None

    def append(self, *items: TranscriptItem) -> None:
        for item in items:
            ensure_call_ids(item.function_calls)
            self.items.append(item)

    def extend(self, items: list[TranscriptItem]) -> None:
        self.append(*items)

    def fork(self, *extra: TranscriptItem) -> "Transcript":
        """
        Copy of the item list with extra turns appended.

        Items are shared, the list is not, so the fork can be extended for a
        one-off request without touching this transcript. Notices are shared
        so announcements made during the request stay visible.
        """
        forked = Transcript(self.system_prompt, self.items, self.notices)
        forked.append(*extra)
        return forked

    def notice(self, message: str, data: Any = None) -> None:
        """Record an operator-visible notice."""
        logger.info(message)
        self.notices.append(SystemNotice(message, data))

    # ------------------------------------------------------------------
    # Call/response bookkeeping
    # ------------------------------------------------------------------

    def pending_calls(self) -> list[FunctionCall]:
        """Calls issued by the assistant that have no response yet."""
        open_calls: dict[str, FunctionCall] = {}
        for item in self.items:
            if item.role == Role.ASSISTANT:
                for call in item.function_calls:
                    if call.id in open_calls:
                        raise TranscriptInconsistentError(f"Duplicate open call id: {call.id}")
                    open_calls[call.id] = call
            elif item.role == Role.USER:
                for response in item.function_responses:
                    open_calls.pop(response.call_id, None)
        return list(open_calls.values())

    def assert_consistent(self) -> None:
        """Raise if any call lacks a response or ids collide."""
        pending = self.pending_calls()
        if pending:
            names = ", ".join(f"{c.name}({c.id})" for c in pending)
            raise TranscriptInconsistentError(f"Function calls without response: {names}")

    # ------------------------------------------------------------------
    # Source code responses
    # ------------------------------------------------------------------

    def latest_user_prompt(self) -> str:
        """Text of the most recent plain user request."""
        for item in reversed(self.items):
            if item.role == Role.USER and item.text and not item.function_responses:
                return item.text
        for item in reversed(self.items):
            if item.role == Role.USER and item.text:
                return item.text
        return ""

    def source_code_responses(self) -> Iterator[FunctionResponse]:
        for item in self.items:
            if item.role != Role.USER:
                continue
            for response in item.function_responses:
                if response.name == SOURCE_CODE_FUNCTION and response.content:
                    yield response

    def disclosed_paths(self) -> set[str]:
        """Every path that appeared in a getSourceCode response."""
        paths: set[str] = set()
        for response in self.source_code_responses():
            try:
                paths.update(json.loads(response.content).keys())
            except (json.JSONDecodeError, AttributeError):
                logger.warning(f"Unparseable {SOURCE_CODE_FUNCTION} response {response.call_id}")
        return paths

    def provided_contents(self) -> set[str]:
        """Paths whose full content is currently present in the transcript."""
        paths: set[str] = set()
        for response in self.source_code_responses():
            try:
                entries = json.loads(response.content)
            except json.JSONDecodeError:
                continue
            paths.update(p for p, entry in entries.items() if isinstance(entry, dict) and entry.get("content"))
        return paths

    def strip_file_contents(
        self,
        paths: set[str] | None,
        keep: set[str] | frozenset = frozenset(),
        drop_summaries: set[str] | frozenset = frozenset(),
    ) -> int:
        """
        Null the content of files in earlier getSourceCode responses.

        Args:
            paths: Files to strip, or None for every file
            keep: Files that must never be stripped
            drop_summaries: Files whose summary and dependencies are removed too

        Returns:
            Number of entries modified
        """
        modified = 0
        for response in self.source_code_responses():
            try:
                entries = json.loads(response.content)
            except json.JSONDecodeError:
                continue
            changed = False
            for path, entry in entries.items():
                if path in keep or not isinstance(entry, dict):
                    continue
                if paths is not None and path not in paths:
                    continue
                touched = False
                if entry.get("content") is not None:
                    entry["content"] = None
                    touched = True
                if path in drop_summaries and "summary" in entry:
                    entry.pop("summary", None)
                    entry.pop("localDeps", None)
                    entry.pop("externalDeps", None)
                    touched = True
                if touched:
                    modified += 1
                    changed = True
            if changed:
                response.content = json.dumps(entries)
        return modified


__all__ = [
    "FunctionCall",
    "FunctionResponse",
    "PromptImage",
    "Role",
    "SOURCE_CODE_FUNCTION",
    "SystemNotice",
    "Transcript",
    "TranscriptItem",
    "assistant",
    "ensure_call_ids",
    "new_call_id",
    "responses_for",
    "user",
]
