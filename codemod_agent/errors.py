"""Exception hierarchy for the agent core.

Only unrecoverable conditions are raised across component boundaries.
Schema problems in model output are reported through ValidationResult
instead (see validation.py).
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for agent failures."""


class UnknownActionTypeError(AgentError):
    """The model requested an action with no registered handler."""

    def __init__(self, action_type: str):
        super().__init__(f"No handler registered for action type: {action_type!r}")
        self.action_type = action_type


class DependencyCycleError(AgentError):
    """A batch of file updates has a dependency cycle or a dangling reference."""

    def __init__(self, message: str, update_ids: list[str] | None = None):
        super().__init__(message)
        self.update_ids = update_ids or []


class PatchApplicationError(AgentError):
    """A unified diff could not be applied to the current file content."""

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(message)
        self.file_path = file_path


class PermissionDeniedError(AgentError):
    """A mutation was requested while its capability flag is disabled."""

    def __init__(self, flag: str, operation: str):
        super().__init__(f"{operation} requires permission {flag!r}, which is not enabled")
        self.flag = flag
        self.operation = operation


class PathOutsideRootError(AgentError):
    """A path resolved outside of the project root."""

    def __init__(self, path: str, root_dir: str):
        super().__init__(f"Path {path!r} is not inside the project root {root_dir!r}")
        self.path = path
        self.root_dir = root_dir


class AbortedError(AgentError):
    """Cancellation was observed at a checkpoint."""


class TranscriptInconsistentError(AgentError):
    """The transcript has unanswered or duplicated function calls."""


class ProviderError(AgentError):
    """A model backend call failed."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class RateLimitError(ProviderError):
    """The provider throttled the request."""


class ProviderUnavailableError(ProviderError):
    """The provider is temporarily unreachable or overloaded."""


class AuthenticationError(ProviderError):
    """Credentials were rejected; never retried on another backend."""


# Failures the fallback router is allowed to absorb
TRANSIENT_PROVIDER_ERRORS: tuple[type[ProviderError], ...] = (RateLimitError, ProviderUnavailableError)


__all__ = [
    "AbortedError",
    "AgentError",
    "AuthenticationError",
    "DependencyCycleError",
    "PatchApplicationError",
    "PathOutsideRootError",
    "PermissionDeniedError",
    "ProviderError",
    "ProviderUnavailableError",
    "RateLimitError",
    "TRANSIENT_PROVIDER_ERRORS",
    "TranscriptInconsistentError",
    "UnknownActionTypeError",
]
