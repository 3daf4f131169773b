"""
Source code map: what the model gets to see of each project file.

Every entry carries either full content or a short summary, never both,
plus dependency edges. Local dependencies are stored as FileIds, stable
integers derived from the path alone, so summaries stay valid when content
changes and dependency sets stay compact.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Iterable

FileId = int


def file_id_for(path: str) -> FileId:
    """Deterministic, content-independent id for a path."""
    return int(hashlib.blake2b(path.encode("utf-8"), digest_size=8).hexdigest(), 16)


class FileIdRegistry:
    """
    Bijective path <-> FileId mapping for one source snapshot.

    Ids are recomputed per snapshot; nothing here is persisted.
    """

    def __init__(self, paths: Iterable[str] = ()):
        self._by_path: dict[str, FileId] = {}
        self._by_id: dict[FileId, str] = {}
        for path in paths:
            self.register(path)

    def register(self, path: str) -> FileId:
        """Register a path and return its id."""
        if path in self._by_path:
            return self._by_path[path]
        fid = file_id_for(path)
        existing = self._by_id.get(fid)
        if existing is not None and existing != path:
            raise ValueError(f"FileId collision between {existing!r} and {path!r}")
        self._by_path[path] = fid
        self._by_id[fid] = path
        return fid

    def id_of(self, path: str) -> FileId | None:
        return self._by_path.get(path)

    def path_of(self, file_id: FileId) -> str | None:
        return self._by_id.get(file_id)

    def paths_of(self, file_ids: Iterable[FileId]) -> list[str]:
        """Resolve ids to paths, skipping ids outside this snapshot."""
        return [p for p in (self._by_id.get(fid) for fid in file_ids) if p is not None]

    def __contains__(self, path: str) -> bool:
        return path in self._by_path

    def __len__(self) -> int:
        return len(self._by_path)


@dataclass
class SourceFile:
    """One entry of a SourceCodeMap."""

    path: str
    file_id: FileId
    content: str | None = None
    summary: str | None = None
    local_deps: list[FileId] = field(default_factory=list)
    external_deps: list[str] = field(default_factory=list)

    def __post_init__(self):
        if (self.content is None) == (self.summary is None):
            raise ValueError(f"{self.path}: exactly one of content or summary must be set")

    @property
    def has_content(self) -> bool:
        return self.content is not None

    def as_summary(self, summary: str) -> "SourceFile":
        return SourceFile(self.path, self.file_id, None, summary, list(self.local_deps), list(self.external_deps))

    def to_json(self, include_deps: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {"fileId": self.file_id}
        if self.content is not None:
            data["content"] = self.content
        else:
            data["summary"] = self.summary
        if include_deps:
            if self.local_deps:
                data["localDeps"] = list(self.local_deps)
            if self.external_deps:
                data["externalDeps"] = list(self.external_deps)
        return data


SourceCodeMap = dict[str, SourceFile]


def source_map_to_json(source_map: SourceCodeMap) -> dict[str, dict[str, Any]]:
    """Wire shape used in getSourceCode responses."""
    return {path: entry.to_json() for path, entry in source_map.items()}


def local_dependency_closure(path: str, source_map: SourceCodeMap, registry: FileIdRegistry) -> set[str]:
    """
    All local files reachable from `path` through localDeps.

    Import graphs may be cyclic; the visited set keeps the walk finite.
    """
    visited: set[str] = set()
    stack = [path]
    while stack:
        current = stack.pop()
        entry = source_map.get(current)
        if entry is None:
            continue
        for dep_path in registry.paths_of(entry.local_deps):
            if dep_path != path and dep_path not in visited:
                visited.add(dep_path)
                stack.append(dep_path)
    return visited


def expand_context(paths: Iterable[str], source_map: SourceCodeMap, registry: FileIdRegistry) -> SourceCodeMap:
    """
    Context files plus their first-level dependencies and their dependents.
    """
    wanted = [p for p in paths if p in source_map]
    if not wanted:
        return {}

    result: SourceCodeMap = {}
    wanted_ids = set()
    for path in wanted:
        result[path] = source_map[path]
        wanted_ids.add(source_map[path].file_id)
        for dep_path in registry.paths_of(source_map[path].local_deps):
            if dep_path in source_map:
                result[dep_path] = source_map[dep_path]

    for path, entry in source_map.items():
        if wanted_ids.intersection(entry.local_deps):
            result[path] = entry

    return result


__all__ = [
    "FileId",
    "FileIdRegistry",
    "SourceCodeMap",
    "SourceFile",
    "expand_context",
    "file_id_for",
    "local_dependency_closure",
    "source_map_to_json",
]
