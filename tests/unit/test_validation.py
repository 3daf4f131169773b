"""Tests for function-call validation and one-shot recovery."""

import json

import pytest

from codemod_agent.function_defs import function_def, get_function_defs
from codemod_agent.providers.base import ModelTier
from codemod_agent.transcript import FunctionCall, Role, Transcript, user
from codemod_agent.validation import (
    RECOVERY_PROMPT,
    ContentRequest,
    path_error,
    request_single_call,
    validate_and_recover,
    validate_function_call,
)

from fakes import ScriptedBackend, ask, call

ROOT = "/abs/project"


def _request(required="askQuestion", tier=ModelTier.DEFAULT, defs=None):
    return ContentRequest(
        transcript=Transcript("sys", [user("Add a README")]),
        function_defs=defs or get_function_defs(),
        required_function_name=required,
        model_tier=tier,
    )


class TestValidateFunctionCall:
    """Checks run in order and report the first failing stage."""

    def test_valid_call(self):
        result = validate_function_call(ask("sendMessage"), "askQuestion", ROOT)
        assert result.ok
        assert result.errors == []

    def test_text_reply_means_not_called(self):
        result = validate_function_call("I think we should...", "askQuestion", ROOT)
        assert not result.ok
        assert result.errors == ['Function "askQuestion" was not called.']

    def test_too_many_calls(self):
        result = validate_function_call(ask("sendMessage") + ask("sendMessage"), "askQuestion", ROOT)
        assert "too many functions(2)" in result.errors[0]

    def test_wrong_function(self):
        result = validate_function_call(call("sendMessage", message="hi"), "askQuestion", ROOT)
        assert result.errors == [
            'Function "sendMessage" was called, while the expectation was to get "askQuestion" function call.'
        ]

    def test_undefined_function(self):
        result = validate_function_call(call("teleport"), "teleport", ROOT)
        assert result.errors == ['Function "teleport" is not defined.']

    def test_schema_errors_name_the_field(self):
        result = validate_function_call(call("askQuestion", message="hi"), "askQuestion", ROOT)
        assert not result.ok
        assert any("actionType" in e for e in result.errors)

    def test_unknown_fields_are_rejected(self):
        result = validate_function_call(
            call("requestFilesContent", filePaths=[f"{ROOT}/a.py"], files=["x"]), "requestFilesContent", ROOT
        )
        assert not result.ok

    def test_relative_path_rejected(self):
        result = validate_function_call(
            call("updateFile", filePath="src/a.py", newContent="x"), "updateFile", ROOT
        )
        assert result.errors == ['filePath: File path "src/a.py" is not absolute.']

    def test_paths_inside_lists_are_checked(self):
        result = validate_function_call(
            call("requestFilesContent", filePaths=[f"{ROOT}/a.py", "/etc/passwd"]), "requestFilesContent", ROOT
        )
        assert len(result.errors) == 1
        assert result.errors[0].startswith("filePaths[1]:")

    def test_nested_paths_are_checked(self):
        args = {
            "explanation": "x",
            "fileUpdates": [
                {"id": "1", "filePath": "/elsewhere/a.py", "updateToolName": "updateFile", "prompt": "p"}
            ],
        }
        result = validate_function_call([FunctionCall("codegenSummary", args)], "codegenSummary", ROOT)
        assert result.errors and "fileUpdates[0].filePath" in result.errors[0]


def test_path_error_accepts_root_and_children():
    assert path_error(ROOT, ROOT) is None
    assert path_error(f"{ROOT}/pkg/a.py", ROOT) is None
    assert path_error(f"{ROOT}-other/a.py", ROOT) is not None
    assert path_error(f"{ROOT}/../escape.py", ROOT) is not None


class TestRecovery:
    """Invalid replies are re-asked exactly once."""

    @pytest.mark.asyncio
    async def test_valid_reply_needs_no_retry(self):
        backend = ScriptedBackend()
        calls = await validate_and_recover(_request(), ask("sendMessage"), backend, ROOT)
        assert calls[0].args["actionType"] == "sendMessage"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_retry_carries_errors_and_correction_prompt(self):
        captured = {}

        def reply(transcript, required):
            captured["transcript"] = transcript
            return ask("sendMessage")

        backend = ScriptedBackend([reply])
        request = _request()
        calls = await validate_and_recover(request, call("askQuestion", message="hi"), backend, ROOT)

        assert calls and calls[0].args["actionType"] == "sendMessage"
        retry = captured["transcript"]
        last = retry.last
        assert last.role == Role.USER
        assert last.text == RECOVERY_PROMPT
        payload = json.loads(last.function_responses[0].content)
        assert payload["args"] == {"message": "hi"}
        assert payload["error"]
        assert last.function_responses[0].is_error
        # The retry is a fork; the caller's transcript is untouched
        assert len(request.transcript) == 1
        assert any("Invalid askQuestion" in n.message for n in request.transcript.notices)

    @pytest.mark.asyncio
    async def test_exhausted_recovery_returns_empty(self):
        backend = ScriptedBackend(["still no call"])
        request = _request()
        calls = await validate_and_recover(request, "no call", backend, ROOT)
        assert calls == []
        assert len(backend.requests) == 1
        assert any("giving up" in n.message for n in request.transcript.notices)

    @pytest.mark.asyncio
    async def test_imperfect_second_reply_is_accepted(self):
        backend = ScriptedBackend([call("askQuestion", message="still missing the type")])
        calls = await validate_and_recover(_request(), "text", backend, ROOT)
        assert calls[0].name == "askQuestion"

    @pytest.mark.asyncio
    async def test_missing_patch_retries_as_update_file(self):
        backend = ScriptedBackend([call("updateFile", filePath=f"{ROOT}/a.py", newContent="x")])
        request = _request("patchFile", defs=[function_def("patchFile")])
        calls = await validate_and_recover(request, [], backend, ROOT)
        assert calls[0].name == "updateFile"
        assert backend.requests[0].required_function_name == "updateFile"
        assert "updateFile" in backend.requests[0].function_names

    @pytest.mark.asyncio
    async def test_cheap_requests_retry_on_default_tier(self):
        backend = ScriptedBackend([ask("sendMessage")])
        await validate_and_recover(_request(tier=ModelTier.CHEAP), "text", backend, ROOT)
        assert backend.requests[0].model_tier == ModelTier.DEFAULT

    @pytest.mark.asyncio
    async def test_request_single_call_round_trip(self):
        backend = ScriptedBackend(["text", ask("sendMessage")])
        calls = await request_single_call(backend, _request(), ROOT)
        assert [c.name for c in calls] == ["askQuestion"]
        assert len(backend.requests) == 2
