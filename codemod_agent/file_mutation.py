"""
File mutation executor.

Turns a codegen summary into concrete file operations. Updates are ordered
by their `dependsOn` edges; components of the dependency graph containing a
cycle, a dangling reference, a self reference or a duplicate id are rejected
as a whole. Each generated update is appended to the transcript before the
next one is requested, so later files see earlier results.
"""

from __future__ import annotations

import base64
import json
import logging
import mimetypes
from collections import defaultdict
from pathlib import Path
from typing import Protocol, TypeVar

import httpx

from .context import ConversationContext
from .errors import DependencyCycleError, PatchApplicationError, PathOutsideRootError, PermissionDeniedError
from .function_defs import FileUpdate, GenerateImageArgs, function_def
from .patching import apply_patch
from .prompts import FILE_UPDATE_PROMPT, PATCH_RETRY_PROMPT
from .providers.base import ModelTier
from .transcript import (
    FunctionCall,
    FunctionResponse,
    PromptImage,
    assistant,
    ensure_call_ids,
    responses_for,
    user,
)

logger = logging.getLogger(__name__)

UPDATE_APPLIED = "Update applied."


class Dependent(Protocol):
    id: str
    depends_on: list[str]


D = TypeVar("D", bound=Dependent)


def plan_update_layers(updates: list[D]) -> tuple[list[list[D]], list[DependencyCycleError]]:
    """
    Order updates into dependency layers.

    Every update in a layer depends only on updates of earlier layers.
    Broken components (cycle, dangling or self reference, duplicate id) are
    returned as errors and excluded from the layers.

    Returns:
        (layers, errors)
    """
    counts: dict[str, int] = defaultdict(int)
    for update in updates:
        counts[update.id] += 1
    known = set(counts)

    # Weakly connected components over edges that resolve
    parent = {uid: uid for uid in known}

    def find(uid: str) -> str:
        while parent[uid] != uid:
            parent[uid] = parent[parent[uid]]
            uid = parent[uid]
        return uid

    bad: set[str] = {uid for uid, n in counts.items() if n > 1}
    reasons: dict[str, str] = {uid: f"duplicate id {uid!r}" for uid in bad}
    for update in updates:
        for dep in update.depends_on:
            if dep == update.id:
                bad.add(update.id)
                reasons.setdefault(update.id, f"update {update.id!r} depends on itself")
            elif dep not in known:
                bad.add(update.id)
                reasons.setdefault(update.id, f"update {update.id!r} depends on unknown id {dep!r}")
            else:
                parent[find(dep)] = find(update.id)

    # Kahn's algorithm; whatever never reaches in-degree zero sits on or behind a cycle
    by_id = {u.id: u for u in updates if counts[u.id] == 1}
    indegree = {uid: len(set(u.depends_on) & known) for uid, u in by_id.items()}
    dependents: dict[str, list[str]] = defaultdict(list)
    for uid, u in by_id.items():
        for dep in set(u.depends_on) & known:
            dependents[dep].append(uid)
    ready = [uid for uid, d in indegree.items() if d == 0]
    ordered: list[list[str]] = []
    while ready:
        ordered.append(ready)
        next_ready = []
        for uid in ready:
            for child in dependents[uid]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    next_ready.append(child)
        ready = next_ready
    placed = {uid for layer in ordered for uid in layer}
    for uid in known - placed:
        if uid not in bad:
            bad.add(uid)
            reasons.setdefault(uid, f"update {uid!r} is part of a dependency cycle")

    rejected_roots = {find(uid) for uid in bad}
    errors: list[DependencyCycleError] = []
    for root in rejected_roots:
        component = sorted(uid for uid in known if find(uid) == root)
        details = "; ".join(reasons[uid] for uid in component if uid in reasons)
        errors.append(DependencyCycleError(f"Invalid file update dependencies: {details}", component))

    rejected = {uid for e in errors for uid in e.update_ids}
    layers = [[by_id[uid] for uid in layer if uid not in rejected] for layer in ordered]
    return [layer for layer in layers if layer], errors


def image_download_call(file_path: str, image: str | bytes) -> FunctionCall:
    """Synthetic downloadFile call that stores a generated image."""
    if isinstance(image, bytes):
        media_type = mimetypes.guess_type(file_path)[0] or "image/png"
        image = f"data:{media_type};base64,{base64.b64encode(image).decode('ascii')}"
    return FunctionCall(
        "downloadFile",
        {"filePath": file_path, "downloadUrl": image, "explanation": "Downloading generated image"},
    )


def _load_images(paths: list[str]) -> list[PromptImage]:
    images = []
    for path in paths:
        media_type = mimetypes.guess_type(path)[0] or "image/png"
        data = base64.b64encode(Path(path).read_bytes()).decode("ascii")
        images.append(PromptImage(path=path, base64url=data, media_type=media_type))
    return images


class FileMutationExecutor:
    """
    Generate and apply the file updates of one codegen summary.

    Usage:
        executor = FileMutationExecutor(ctx)
        calls = await executor.generate(summary.file_updates)
        errors = await executor.apply(calls)
    """

    def __init__(self, ctx: ConversationContext):
        self.ctx = ctx
        self.processed_order: list[str] = []

    async def generate(self, updates: list[FileUpdate]) -> list[FunctionCall]:
        """
        Ask the model for every update, in dependency order.

        An update is skipped when one of its dependencies produced no call.
        """
        layers, errors = plan_update_layers(updates)
        for error in errors:
            self.ctx.transcript.notice(str(error), {"update_ids": error.update_ids})

        calls: list[FunctionCall] = []
        completed: set[str] = set()
        for layer in layers:
            for update in layer:
                missing = [dep for dep in update.depends_on if dep not in completed]
                if missing:
                    self.ctx.transcript.notice(
                        f"Skipping update {update.id} for {update.file_path}: "
                        f"dependency {', '.join(missing)} was not generated",
                        {"update_id": update.id, "missing": missing},
                    )
                    continue
                produced = await self._generate_one(update)
                self.processed_order.append(update.id)
                if produced:
                    completed.add(update.id)
                calls.extend(produced)
        return calls

    async def _generate_one(self, update: FileUpdate) -> list[FunctionCall]:
        ctx = self.ctx
        await ctx.checkpoint()
        tool = update.update_tool_name
        images = []
        if update.context_image_assets and ctx.permissions.vision:
            images = _load_images(update.context_image_assets)

        request_transcript = ctx.transcript.fork(
            user(FILE_UPDATE_PROMPT.format(file_path=update.file_path, tool=tool, prompt=update.prompt), images=images)
        )
        temperature = update.temperature if update.temperature is not None else ctx.config.models.temperature
        tier = ModelTier.CHEAP if update.cheap else ModelTier.DEFAULT
        calls = await ctx.request(
            tool,
            transcript=request_transcript,
            function_defs=[function_def(tool)] + ([function_def("updateFile")] if tool == "patchFile" else []),
            temperature=temperature,
            model_tier=tier,
        )
        if not calls:
            ctx.transcript.notice(f"Could not generate {tool} for {update.file_path}, skipping")
            return []

        call = calls[0]
        if call.name == "generateImage":
            produced = await self._generate_image(call)
        elif call.name == "patchFile":
            produced = await self._verify_patch(call, request_transcript, temperature, tier)
        else:
            produced = [call]
        if not produced:
            return []

        ensure_call_ids(produced)
        ctx.transcript.append(assistant(calls=produced), user(UPDATE_APPLIED, responses_for(produced)))
        return produced

    async def _generate_image(self, call: FunctionCall) -> list[FunctionCall]:
        ctx = self.ctx
        if not ctx.permissions.imagen or ctx.image_backend is None:
            ctx.transcript.notice("Image generation is not enabled, skipping generateImage")
            return []
        args = GenerateImageArgs.model_validate(call.args or {})
        result = await ctx.image_backend.generate_image(
            args.prompt,
            args.context_image_path,
            (args.width, args.height),
            ModelTier.CHEAP if args.cheap else ModelTier.DEFAULT,
        )
        return [call, image_download_call(args.file_path, result)]

    async def _verify_patch(self, call, request_transcript, temperature, tier) -> list[FunctionCall]:
        ctx = self.ctx
        args = call.args or {}
        file_path = args.get("filePath", "")
        content = ctx.files.read_text(file_path)
        try:
            if content is None:
                raise PatchApplicationError(f"{file_path} does not exist", file_path)
            apply_patch(content, args.get("patch", ""), file_path)
            return [call]
        except PatchApplicationError as e:
            error = str(e)

        ctx.transcript.notice(f"Patch for {file_path} could not be applied ({error}), requesting full content")
        ensure_call_ids([call])
        retry_transcript = request_transcript.fork(
            assistant(calls=[call]),
            user(
                PATCH_RETRY_PROMPT.format(file_path=file_path, error=error),
                [FunctionResponse(call.name, call.id, json.dumps({"error": error}), is_error=True)],
            ),
        )
        retry_calls = await ctx.request(
            "updateFile",
            transcript=retry_transcript,
            function_defs=[function_def("updateFile")],
            temperature=temperature,
            model_tier=tier,
        )
        if not retry_calls or retry_calls[0].name != "updateFile":
            ctx.transcript.notice(f"Error: could not obtain a full content update for {file_path}")
            return []
        return [retry_calls[0]]

    async def apply(self, calls: list[FunctionCall]) -> list[str]:
        """
        Write generated updates to disk.

        Returns:
            Error messages of failed operations
        """
        errors = []
        for call in calls:
            await self.ctx.checkpoint()
            try:
                await self.ctx.operations.apply_call(call)
            except (PermissionDeniedError, PathOutsideRootError, PatchApplicationError, OSError, httpx.HTTPError) as e:
                message = f"{call.name} failed: {e}"
                self.ctx.transcript.notice(message)
                errors.append(message)
        return errors


__all__ = ["FileMutationExecutor", "UPDATE_APPLIED", "image_download_call", "plan_update_layers"]
