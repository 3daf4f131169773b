"""
Capability-gated filesystem mutations.

Every operation checks that its paths are absolute and inside the project
root, and that the matching permission flag is enabled, before touching the
filesystem. Writes are atomic (temp file + rename).
"""

from __future__ import annotations

import base64
import logging
import os
import shutil
import tempfile
from pathlib import Path

import httpx

from .config import PermissionConfig
from .errors import PathOutsideRootError, PermissionDeniedError
from .patching import apply_patch
from .transcript import FunctionCall
from .validation import path_error

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60.0


class FileOperations:
    """
    Filesystem collaborator used by the file mutation executor.

    Usage:
        ops = FileOperations("/abs/project", PermissionConfig(allow_file_create=True))
        ops.create_file("/abs/project/README.md", "# Hello")
    """

    def __init__(self, root_dir: str, permissions: PermissionConfig | None = None):
        self.root_dir = str(Path(root_dir).resolve())
        self.permissions = permissions or PermissionConfig()

    def resolve(self, path: str) -> str:
        error = path_error(path, self.root_dir)
        if error:
            raise PathOutsideRootError(path, self.root_dir)
        return os.path.normpath(path)

    def _require(self, flag: str, operation: str) -> None:
        if not getattr(self.permissions, flag):
            raise PermissionDeniedError(flag, operation)

    def _write(self, path: str, data: bytes) -> None:
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".codemod_", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_file(self, file_path: str, content: str) -> None:
        path = self.resolve(file_path)
        self._require("allow_file_create", "createFile")
        if not os.path.isdir(os.path.dirname(path)):
            self._require("allow_directory_create", "createFile")
        self._write(path, content.encode("utf-8"))
        logger.info(f"Created file {path}")

    def update_file(self, file_path: str, content: str) -> None:
        path = self.resolve(file_path)
        if not os.path.exists(path):
            self._require("allow_file_create", "updateFile")
            if not os.path.isdir(os.path.dirname(path)):
                self._require("allow_directory_create", "updateFile")
        self._write(path, content.encode("utf-8"))
        logger.info(f"Updated file {path}")

    def patch_file(self, file_path: str, patch: str) -> None:
        path = self.resolve(file_path)
        content = Path(path).read_text(encoding="utf-8")
        self._write(path, apply_patch(content, patch, path).encode("utf-8"))
        logger.info(f"Patched file {path}")

    def delete_file(self, file_path: str) -> None:
        path = self.resolve(file_path)
        self._require("allow_file_delete", "deleteFile")
        os.remove(path)
        logger.info(f"Deleted file {path}")

    def create_directory(self, file_path: str) -> None:
        path = self.resolve(file_path)
        self._require("allow_directory_create", "createDirectory")
        os.makedirs(path, exist_ok=True)
        logger.info(f"Created directory {path}")

    def move_file(self, source: str, destination: str) -> None:
        src = self.resolve(source)
        dst = self.resolve(destination)
        self._require("allow_file_move", "moveFile")
        if not os.path.isdir(os.path.dirname(dst)):
            self._require("allow_directory_create", "moveFile")
            os.makedirs(os.path.dirname(dst), exist_ok=True)
        shutil.move(src, dst)
        logger.info(f"Moved file {src} -> {dst}")

    async def download_file(self, file_path: str, source: str | bytes) -> None:
        """Write a URL body, a data: URL or raw bytes to `file_path`."""
        path = self.resolve(file_path)
        if not os.path.exists(path):
            self._require("allow_file_create", "downloadFile")
        if isinstance(source, bytes):
            data = source
        elif source.startswith("data:"):
            data = base64.b64decode(source.split(",", 1)[1])
        else:
            async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
                response = await client.get(source)
                response.raise_for_status()
                data = response.content
        self._write(path, data)
        logger.info(f"Downloaded {len(data)} bytes to {path}")

    async def apply_call(self, call: FunctionCall) -> None:
        """Execute one file-mutation function call."""
        args = call.args or {}
        if call.name == "createFile":
            self.create_file(args["filePath"], args["newContent"])
        elif call.name == "updateFile":
            self.update_file(args["filePath"], args["newContent"])
        elif call.name == "patchFile":
            self.patch_file(args["filePath"], args["patch"])
        elif call.name == "deleteFile":
            self.delete_file(args["filePath"])
        elif call.name == "createDirectory":
            self.create_directory(args["filePath"])
        elif call.name == "moveFile":
            self.move_file(args["source"], args["destination"])
        elif call.name == "downloadFile":
            await self.download_file(args["filePath"], args["downloadUrl"])
        else:
            raise ValueError(f"Not a file operation: {call.name}")


FILE_OPERATION_NAMES = frozenset(
    {"createFile", "updateFile", "patchFile", "deleteFile", "createDirectory", "moveFile", "downloadFile"}
)


__all__ = ["FILE_OPERATION_NAMES", "FileOperations"]
