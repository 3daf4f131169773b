"""
Functions the model may call, described as pydantic argument models.

Each model's docstring becomes the function description and its JSON schema
(camelCase aliases) becomes the parameters object sent to providers. The
same models are used to validate what the model sends back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Argument keys that hold project paths, checked for absoluteness and containment
PATH_PROPERTIES = frozenset(
    {
        "filePath",
        "filePaths",
        "source",
        "destination",
        "contextPaths",
        "contextImagePath",
    }
)

ACTION_TYPES = (
    "sendMessage",
    "requestFilesContent",
    "requestFilesFragments",
    "removeFilesFromContext",
    "contextOptimization",
    "confirmCodeGeneration",
    "cancelCodeGeneration",
    "createFile",
    "updateFile",
    "compoundAction",
    "reasoningInference",
    "generateImage",
    "requestPermissions",
)

FileUpdateToolName = Literal[
    "createFile",
    "updateFile",
    "patchFile",
    "deleteFile",
    "moveFile",
    "createDirectory",
    "generateImage",
]


class FunctionArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ----------------------------------------------------------------------
# Conversation flow
# ----------------------------------------------------------------------


class PermissionRequest(FunctionArgs):
    allow_directory_create: bool | None = None
    allow_file_create: bool | None = None
    allow_file_delete: bool | None = None
    allow_file_move: bool | None = None
    enable_vision: bool | None = None
    enable_imagen: bool | None = None


class AskQuestionArgs(FunctionArgs):
    """Talk to the user and declare what should happen next."""

    # Left open so unregistered action types surface as configuration errors
    action_type: str = Field(
        description="What the program should do next.",
        json_schema_extra={"enum": list(ACTION_TYPES)},
    )
    message: str = Field(description="Message displayed to the user.")
    request_files_content: list[str] | None = Field(
        default=None, description="Absolute paths whose full content is needed."
    )
    remove_files_from_context: list[str] | None = Field(
        default=None, description="Absolute paths whose content is no longer needed."
    )
    request_permissions: PermissionRequest | None = None


class SendMessageArgs(FunctionArgs):
    """Send a plain message to the user."""

    message: str


class GetSourceCodeArgs(FunctionArgs):
    """Returns the content or summary of project files."""

    file_paths: list[str] | None = None


class RequestFilesContentArgs(FunctionArgs):
    """Request the full content of files."""

    file_paths: list[str]


class RemoveFilesFromContextArgs(FunctionArgs):
    """Remove file contents that are no longer needed."""

    file_paths: list[str]


class RequestFilesFragmentsArgs(FunctionArgs):
    """Request fragments of files relevant to a question."""

    file_paths: list[str]
    fragment_prompt: str = Field(description="What the fragments should be relevant to.")


class FileFragment(FunctionArgs):
    file_path: str
    fragments: list[str]


class ExtractFileFragmentsArgs(FunctionArgs):
    """Return the fragments of each file relevant to the prompt."""

    reasoning: str
    file_fragments: list[FileFragment]


# ----------------------------------------------------------------------
# Context management
# ----------------------------------------------------------------------


class OptimizedContextItem(FunctionArgs):
    reasoning: str
    file_path: str
    relevance: float = Field(ge=0, le=1)


class OptimizeContextArgs(FunctionArgs):
    """Rate how relevant each file is to the current user prompt."""

    user_prompt: str
    reasoning: str
    optimized_context: list[OptimizedContextItem]


class SummaryDependency(FunctionArgs):
    path: str
    type: Literal["local", "external"]


class FileSummary(FunctionArgs):
    file_path: str
    summary: str
    dependencies: list[SummaryDependency] = Field(default_factory=list)


class SetSummariesArgs(FunctionArgs):
    """Store a short summary and the dependencies of each file."""

    summaries: list[FileSummary]


# ----------------------------------------------------------------------
# Code generation
# ----------------------------------------------------------------------


class AffectedFile(FunctionArgs):
    file_path: str
    reason: str


class CodegenPlanningArgs(FunctionArgs):
    """Analyze the request and plan the changes before generating code."""

    problem_analysis: str
    codegen_planning: str
    affected_files: list[AffectedFile] = Field(default_factory=list)


class FileUpdate(FunctionArgs):
    id: str
    file_path: str
    update_tool_name: FileUpdateToolName
    prompt: str
    temperature: float | None = None
    cheap: bool = False
    context_image_assets: list[str] | None = None
    depends_on: list[str] = Field(default_factory=list)


class CodegenSummaryArgs(FunctionArgs):
    """Summarize the planned changes as a list of file updates."""

    explanation: str
    file_updates: list[FileUpdate]
    context_paths: list[str] = Field(default_factory=list)


class CreateFileArgs(FunctionArgs):
    """Create a new file with the given content."""

    file_path: str
    new_content: str
    explanation: str = ""


class UpdateFileArgs(FunctionArgs):
    """Replace the content of an existing file."""

    file_path: str
    new_content: str
    explanation: str = ""


class PatchFileArgs(FunctionArgs):
    """Apply a unified diff to an existing file."""

    file_path: str
    patch: str
    explanation: str = ""


class DeleteFileArgs(FunctionArgs):
    """Delete a file."""

    file_path: str
    explanation: str = ""


class MoveFileArgs(FunctionArgs):
    """Move a file to a new location."""

    source: str
    destination: str
    explanation: str = ""


class CreateDirectoryArgs(FunctionArgs):
    """Create a directory."""

    file_path: str
    explanation: str = ""


class GenerateImageArgs(FunctionArgs):
    """Generate an image and save it to a file."""

    prompt: str
    file_path: str
    context_image_path: str | None = None
    explanation: str = ""
    width: int = 1024
    height: int = 1024
    cheap: bool = False


class DownloadFileArgs(FunctionArgs):
    """Download a file from a URL into the project."""

    file_path: str
    download_url: str
    explanation: str = ""


# ----------------------------------------------------------------------
# Compound actions and reasoning
# ----------------------------------------------------------------------


class CompoundActionItem(FunctionArgs):
    id: str
    name: Literal["createFile", "updateFile", "deleteFile", "moveFile", "createDirectory"]
    prompt: str
    depends_on: list[str] = Field(default_factory=list)


class CompoundActionListArgs(FunctionArgs):
    """List the file operations that make up a compound action."""

    actions: list[CompoundActionItem]
    summary: str


class ReasoningInferenceArgs(FunctionArgs):
    """Delegate a hard question to a reasoning model."""

    prompt: str
    context_paths: list[str] = Field(default_factory=list)


class ReasoningInferenceResponseArgs(FunctionArgs):
    """Answer from the reasoning model."""

    response: str
    reasoning: str | None = None


FUNCTION_ARGS: dict[str, type[FunctionArgs]] = {
    "askQuestion": AskQuestionArgs,
    "sendMessage": SendMessageArgs,
    "getSourceCode": GetSourceCodeArgs,
    "requestFilesContent": RequestFilesContentArgs,
    "requestFilesFragments": RequestFilesFragmentsArgs,
    "extractFileFragments": ExtractFileFragmentsArgs,
    "removeFilesFromContext": RemoveFilesFromContextArgs,
    "optimizeContext": OptimizeContextArgs,
    "setSummaries": SetSummariesArgs,
    "codegenPlanning": CodegenPlanningArgs,
    "codegenSummary": CodegenSummaryArgs,
    "createFile": CreateFileArgs,
    "updateFile": UpdateFileArgs,
    "patchFile": PatchFileArgs,
    "deleteFile": DeleteFileArgs,
    "moveFile": MoveFileArgs,
    "createDirectory": CreateDirectoryArgs,
    "generateImage": GenerateImageArgs,
    "downloadFile": DownloadFileArgs,
    "compoundActionList": CompoundActionListArgs,
    "reasoningInference": ReasoningInferenceArgs,
    "reasoningInferenceResponse": ReasoningInferenceResponseArgs,
}


@dataclass(frozen=True)
class FunctionDef:
    """Provider-neutral function declaration."""

    name: str
    description: str
    parameters: dict[str, Any]


def function_def(name: str) -> FunctionDef:
    model = FUNCTION_ARGS[name]
    schema = model.model_json_schema(by_alias=True)
    description = schema.pop("description", "") or name
    schema.pop("title", None)
    return FunctionDef(name=name, description=description, parameters=schema)


def get_function_defs(names: list[str] | None = None) -> list[FunctionDef]:
    """Declarations for the given functions, or for all of them."""
    return [function_def(name) for name in (names or FUNCTION_ARGS)]


def parse_args(name: str, args: dict[str, Any] | None) -> FunctionArgs:
    """Validate raw call args into the function's model; raises pydantic.ValidationError."""
    return FUNCTION_ARGS[name].model_validate(args or {})


__all__ = [
    "ACTION_TYPES",
    "FUNCTION_ARGS",
    "PATH_PROPERTIES",
    "AskQuestionArgs",
    "CodegenPlanningArgs",
    "CodegenSummaryArgs",
    "CompoundActionItem",
    "CompoundActionListArgs",
    "CreateDirectoryArgs",
    "CreateFileArgs",
    "DeleteFileArgs",
    "DownloadFileArgs",
    "ExtractFileFragmentsArgs",
    "FileUpdate",
    "FunctionArgs",
    "FunctionDef",
    "GenerateImageArgs",
    "MoveFileArgs",
    "OptimizeContextArgs",
    "PatchFileArgs",
    "PermissionRequest",
    "ReasoningInferenceArgs",
    "ReasoningInferenceResponseArgs",
    "SetSummariesArgs",
    "UpdateFileArgs",
    "function_def",
    "get_function_defs",
    "parse_args",
]
