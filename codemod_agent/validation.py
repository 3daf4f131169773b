"""
Function-call validation and one-shot recovery.

`validate_function_call` checks a model reply against the required function
and returns a ValidationResult instead of raising. `validate_and_recover`
re-asks the model once with the errors attached, and `request_single_call`
combines generation, validation and recovery for the common case.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from .function_defs import FUNCTION_ARGS, PATH_PROPERTIES, FunctionDef, function_def, parse_args
from .providers.base import GenerateResult, ModelBackend, ModelTier
from .transcript import FunctionCall, FunctionResponse, Transcript, assistant, ensure_call_ids, user

logger = logging.getLogger(__name__)

RECOVERY_PROMPT = (
    "Function call was invalid, you responded, please analyze the error and respond with corrected function call."
)


@dataclass
class ValidationResult:
    """Outcome of checking one model reply."""

    ok: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        return cls(False, list(errors))


@dataclass
class ContentRequest:
    """Everything needed to (re)issue one generate_content call."""

    transcript: Transcript
    function_defs: list[FunctionDef]
    required_function_name: str | None = None
    temperature: float = 0.7
    model_tier: ModelTier = ModelTier.DEFAULT
    options: dict[str, Any] | None = None

    async def send(self, backend: ModelBackend) -> GenerateResult:
        self.transcript.assert_consistent()
        return await backend.generate_content(
            self.transcript,
            self.function_defs,
            self.required_function_name,
            self.temperature,
            self.model_tier,
            self.options,
        )


def path_error(value: Any, root_dir: str) -> str | None:
    """Why `value` is not an acceptable project path, or None."""
    if not isinstance(value, str) or not os.path.isabs(value):
        return f'File path "{value}" is not absolute.'
    root = os.path.normpath(root_dir)
    normalized = os.path.normpath(value)
    if normalized != root and not normalized.startswith(root + os.sep):
        return f'File path "{value}" is not inside the root directory "{root}".'
    return None


def _path_errors(value: Any, root_dir: str, key: str = "", in_path_property: bool = False) -> list[str]:
    errors = []
    if isinstance(value, dict):
        for k, v in value.items():
            current = f"{key}.{k}" if key else k
            if isinstance(v, str) and k in PATH_PROPERTIES:
                error = path_error(v, root_dir)
                if error:
                    errors.append(f"{current}: {error}")
            elif isinstance(v, (dict, list)):
                errors.extend(_path_errors(v, root_dir, current, k in PATH_PROPERTIES))
    elif isinstance(value, list):
        for i, item in enumerate(value):
            current = f"{key}[{i}]"
            if isinstance(item, str) and in_path_property:
                error = path_error(item, root_dir)
                if error:
                    errors.append(f"{current}: {error}")
            elif isinstance(item, (dict, list)):
                errors.extend(_path_errors(item, root_dir, current))
    return errors


def _schema_errors(error: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in e['loc']) or '<root>'}: {e['msg']}" for e in error.errors()]


def validate_function_call(
    calls: GenerateResult,
    required_function_name: str,
    root_dir: str,
) -> ValidationResult:
    """
    Check that the reply is exactly one well-formed call to the required function.

    Checks run in order and stop at the first failing stage: a call exists,
    only one call was made, the name matches, the function is known, the
    arguments match its schema, and path arguments are absolute and inside
    the project root.
    """
    if isinstance(calls, str) or not calls:
        return ValidationResult.failure(f'Function "{required_function_name}" was not called.')
    if len(calls) != 1:
        return ValidationResult.failure(
            f"You called too many functions({len(calls)})! Only one function({required_function_name}) should be called."
        )

    call = calls[0]
    if call.name != required_function_name:
        return ValidationResult.failure(
            f'Function "{call.name}" was called, while the expectation was to get "{required_function_name}" function call.'
        )
    if call.name not in FUNCTION_ARGS:
        return ValidationResult.failure(f'Function "{call.name}" is not defined.')

    try:
        parse_args(call.name, call.args)
    except ValidationError as e:
        return ValidationResult.failure(*_schema_errors(e))

    errors = _path_errors(call.args or {}, root_dir)
    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success()


async def validate_and_recover(
    request: ContentRequest,
    result: GenerateResult,
    backend: ModelBackend,
    root_dir: str,
) -> list[FunctionCall]:
    """
    Validate a reply and, if it is invalid, re-ask the model once.

    The retry carries the failed call and the validation errors as an error
    function response. The second reply is accepted as long as it contains a
    call to the required function; otherwise recovery is exhausted and an
    empty list is returned.
    """
    calls = [] if isinstance(result, str) else list(result)
    required = request.required_function_name
    if not required:
        return calls

    validation = validate_function_call(result, required, root_dir)
    if validation.ok:
        return calls

    transcript = request.transcript
    transcript.notice(
        f"Invalid {required} function call, retrying: {'; '.join(validation.errors)}",
        {"errors": validation.errors},
    )

    retry_name = required
    if required == "patchFile" and not calls:
        retry_name = "updateFile"

    failed_calls = ensure_call_ids(calls or [FunctionCall(name=required, args={})])
    error_responses = [
        FunctionResponse(
            name=call.name,
            call_id=call.id,
            content=json.dumps({"args": call.args, "error": validation.errors}),
            is_error=True,
        )
        for call in failed_calls
    ]

    function_defs = list(request.function_defs)
    if all(f.name != retry_name for f in function_defs):
        function_defs.append(function_def(retry_name))

    retry = ContentRequest(
        transcript=transcript.fork(
            assistant(calls=failed_calls),
            user(RECOVERY_PROMPT, error_responses),
        ),
        function_defs=function_defs,
        required_function_name=retry_name,
        temperature=request.temperature,
        model_tier=ModelTier.DEFAULT if request.model_tier == ModelTier.CHEAP else request.model_tier,
        options=request.options,
    )
    second = await retry.send(backend)
    second_calls = [] if isinstance(second, str) else [c for c in second if c.name == retry_name]
    if not second_calls:
        transcript.notice(f"Recovery of {required} function call failed, giving up")
        return []

    second_validation = validate_function_call(second_calls[:1], retry_name, root_dir)
    if not second_validation.ok:
        logger.warning(f"Accepting imperfect {retry_name} call after retry: {second_validation.errors}")
    return second_calls[:1]


async def request_single_call(backend: ModelBackend, request: ContentRequest, root_dir: str) -> list[FunctionCall]:
    """Generate, validate and recover in one step."""
    result = await request.send(backend)
    return await validate_and_recover(request, result, backend, root_dir)


__all__ = [
    "ContentRequest",
    "RECOVERY_PROMPT",
    "ValidationResult",
    "path_error",
    "request_single_call",
    "validate_and_recover",
    "validate_function_call",
]
