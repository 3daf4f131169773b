"""Conversation-only handlers: messages, cancellation, permissions."""

from __future__ import annotations

import logging

from ..results import ActionResult
from .registry import ActionHandlerProps

logger = logging.getLogger(__name__)

# askQuestion permission keys -> PermissionConfig fields
PERMISSION_FLAGS = {
    "allow_directory_create": "allow_directory_create",
    "allow_file_create": "allow_file_create",
    "allow_file_delete": "allow_file_delete",
    "allow_file_move": "allow_file_move",
    "enable_vision": "vision",
    "enable_imagen": "imagen",
}


async def handle_send_message(props: ActionHandlerProps) -> ActionResult:
    """Show the message and wait for the user's reply; no reply ends the conversation."""
    answer = await props.ctx.interaction.ask_user_for_input(props.args.message)
    if not answer:
        return ActionResult.stop(props.reply())
    return ActionResult.proceed(props.reply(answer))


async def handle_cancel_code_generation(props: ActionHandlerProps) -> ActionResult:
    props.ctx.transcript.notice("Code generation cancelled")
    return ActionResult.stop(props.reply("Code generation cancelled."))


async def handle_request_permissions(props: ActionHandlerProps) -> ActionResult:
    """Ask once for every requested permission; on yes, enable them all."""
    requested = props.args.request_permissions
    wanted = {
        flag: value
        for flag, value in (requested.model_dump() if requested else {}).items()
        if value
    }
    if not wanted:
        return ActionResult.proceed(props.reply("No permissions were requested."))

    names = ", ".join(sorted(wanted))
    confirmed = await props.ctx.interaction.ask_user_for_confirmation(
        f"{props.args.message}\n\nGrant permissions: {names}?", False
    )
    if not confirmed:
        props.ctx.transcript.notice(f"Permission request denied: {names}")
        return ActionResult.proceed(props.reply("Permissions were not granted."))

    permissions = props.ctx.permissions
    for flag in wanted:
        setattr(permissions, PERMISSION_FLAGS[flag], True)
    props.ctx.transcript.notice(f"Permissions granted: {names}")
    return ActionResult.proceed(props.reply("Permissions granted."))


__all__ = ["handle_cancel_code_generation", "handle_request_permissions", "handle_send_message"]
