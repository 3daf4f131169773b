"""Action handlers and the default registry."""

from __future__ import annotations

from .codegen_actions import handle_confirm_code_generation
from .compound import handle_compound_action
from .context_actions import (
    handle_context_optimization,
    handle_remove_files_from_context,
    handle_request_files_content,
    handle_request_files_fragments,
)
from .file_actions import handle_create_file, handle_generate_image, handle_update_file
from .messaging import handle_cancel_code_generation, handle_request_permissions, handle_send_message
from .reasoning import handle_reasoning_inference
from .registry import ActionHandler, ActionHandlerProps, ActionHandlerRegistry

DEFAULT_HANDLERS: dict[str, ActionHandler] = {
    "sendMessage": handle_send_message,
    "requestFilesContent": handle_request_files_content,
    "requestFilesFragments": handle_request_files_fragments,
    "removeFilesFromContext": handle_remove_files_from_context,
    "contextOptimization": handle_context_optimization,
    "confirmCodeGeneration": handle_confirm_code_generation,
    "cancelCodeGeneration": handle_cancel_code_generation,
    "createFile": handle_create_file,
    "updateFile": handle_update_file,
    "compoundAction": handle_compound_action,
    "reasoningInference": handle_reasoning_inference,
    "generateImage": handle_generate_image,
    "requestPermissions": handle_request_permissions,
}


def build_default_registry() -> ActionHandlerRegistry:
    registry = ActionHandlerRegistry()
    for action_type, handler in DEFAULT_HANDLERS.items():
        registry.register(action_type, handler)
    return registry


__all__ = [
    "ActionHandler",
    "ActionHandlerProps",
    "ActionHandlerRegistry",
    "DEFAULT_HANDLERS",
    "build_default_registry",
]
