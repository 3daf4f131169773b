"""codemod-agent: autonomous code modification driven by function-calling LLMs.

The model proposes one action per step through an askQuestion call; the
dispatch loop routes it to a registered handler, which may read source
code, ask the user, plan and generate code, or write files.

Layers:
- Dispatch: action loop, handler registry
- Context: source map, summary cache, context window optimizer
- Calls: function definitions, validation and recovery
- Mutation: dependency-ordered file updates, capability-gated operations
- Providers: Anthropic/OpenAI backends behind a fallback router
"""

__version__ = "0.1.0"

# Dispatch
from .dispatch import ActionDispatchLoop, DispatchResult, LoopOutcome, run_agent
from .handlers import ActionHandlerProps, ActionHandlerRegistry, build_default_registry
from .results import ActionItem, ActionResult, StepResult

# Context
from .context import ConversationContext
from .context_optimizer import OptimizationReport, optimize_context
from .source_map import FileIdRegistry, SourceFile, file_id_for
from .summary_cache import SummaryCache, SummaryEntry
from .transcript import FunctionCall, FunctionResponse, Transcript

# Calls and mutation
from .file_mutation import FileMutationExecutor, plan_update_layers
from .operations import FileOperations
from .validation import validate_and_recover, validate_function_call

# Providers, config and interaction
from .providers import ModelBackend, ProviderFallbackRouter, build_router
from .config import AgentConfig
from .errors import AgentError
from .interaction import NonInteractive, UserInteraction

__all__ = [
    # Dispatch
    "ActionDispatchLoop",
    "DispatchResult",
    "LoopOutcome",
    "run_agent",
    "ActionHandlerProps",
    "ActionHandlerRegistry",
    "build_default_registry",
    "ActionItem",
    "ActionResult",
    "StepResult",
    # Context
    "ConversationContext",
    "OptimizationReport",
    "optimize_context",
    "FileIdRegistry",
    "SourceFile",
    "file_id_for",
    "SummaryCache",
    "SummaryEntry",
    "FunctionCall",
    "FunctionResponse",
    "Transcript",
    # Calls and mutation
    "FileMutationExecutor",
    "plan_update_layers",
    "FileOperations",
    "validate_and_recover",
    "validate_function_call",
    # Providers, config and interaction
    "ModelBackend",
    "ProviderFallbackRouter",
    "build_router",
    "AgentConfig",
    "AgentError",
    "NonInteractive",
    "UserInteraction",
]
