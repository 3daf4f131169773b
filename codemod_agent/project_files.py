"""Project tree discovery and SourceCodeMap construction."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable

from .source_map import FileIdRegistry, SourceCodeMap, SourceFile
from .summary_cache import SummaryCache, checksum

logger = logging.getLogger(__name__)

IGNORED_DIRS = {
    ".git",
    ".hg",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "dist",
    "build",
}

SOURCE_EXTENSIONS = {
    ".py", ".pyi", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".json", ".md", ".txt",
    ".html", ".css", ".scss", ".yaml", ".yml", ".toml", ".cfg", ".ini", ".sh", ".go",
    ".rs", ".java", ".kt", ".c", ".h", ".cpp", ".hpp", ".rb", ".php", ".sql", ".svg",
}

FilesState = dict[str, str]


class ProjectFiles:
    """
    Read-only view of the project tree.

    Usage:
        project = ProjectFiles("/abs/project")
        source_map = project.build_source_map(cache, registry)
    """

    def __init__(self, root_dir: str, ignore_patterns: Iterable[str] = ()):
        self.root_dir = str(Path(root_dir).resolve())
        self.ignore_patterns = list(ignore_patterns)
        self._files: list[str] | None = None

    def refresh(self) -> list[str]:
        """Rescan the tree."""
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root_dir):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS and not d.startswith("."))
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if Path(name).suffix.lower() not in SOURCE_EXTENSIONS:
                    continue
                rel = os.path.relpath(path, self.root_dir)
                if any(fnmatch.fnmatch(rel, pattern) for pattern in self.ignore_patterns):
                    continue
                files.append(path)
        self._files = files
        logger.debug(f"Discovered {len(files)} source files under {self.root_dir}")
        return files

    def source_files(self) -> list[str]:
        if self._files is None:
            return self.refresh()
        return self._files

    def read_text(self, path: str) -> str | None:
        """File content, or None when the file vanished or is not text."""
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {path}: {e}")
            return None

    def snapshot(self) -> FilesState:
        """path -> checksum for every readable source file."""
        state: FilesState = {}
        for path in self.refresh():
            content = self.read_text(path)
            if content is not None:
                state[path] = checksum(content)
        return state

    def read_contents(self, paths: Iterable[str]) -> dict[str, str]:
        result = {}
        for path in paths:
            content = self.read_text(path)
            if content is not None:
                result[path] = content
        return result

    def build_source_map(
        self,
        cache: SummaryCache,
        registry: FileIdRegistry,
        filter_paths: Iterable[str] | None = None,
        content_paths: Iterable[str] | None = None,
    ) -> SourceCodeMap:
        """
        Build a SourceCodeMap for the project.

        Args:
            cache: Summary cache providing summaries and dependency edges
            registry: FileId registry of the current snapshot
            filter_paths: Restrict to these files (default: every source file)
            content_paths: Files that get full content (default: all of them);
                the rest carry their cached summary

        Returns:
            Mapping from absolute path to SourceFile
        """
        files = self.source_files()
        if filter_paths is not None:
            wanted = set(filter_paths)
            files = [f for f in files if f in wanted]
        content_set = set(content_paths) if content_paths is not None else None

        result: SourceCodeMap = {}
        for path in files:
            file_id = registry.register(path)
            content = self.read_text(path)
            cached = cache.get(path)
            fresh = cached is not None and not cache.is_stale(path, content)
            local_deps = list(cached.local_deps) if fresh else []
            external_deps = list(cached.external_deps) if fresh else []

            wants_content = content_set is None or path in content_set
            if content is not None and (wants_content or not fresh):
                result[path] = SourceFile(path, file_id, content=content, local_deps=local_deps, external_deps=external_deps)
            elif fresh:
                result[path] = SourceFile(
                    path, file_id, summary=cached.summary, local_deps=local_deps, external_deps=external_deps
                )
        return result


__all__ = ["FilesState", "ProjectFiles"]
