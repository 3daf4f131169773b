"""
Persisted per-file summaries with checksum invalidation.

On disk the cache is one JSON object: a `_version` tag plus one entry per
absolute path. A version mismatch discards every entry. An entry is stale as
soon as the live file's checksum differs from the stored one.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .source_map import FileId

logger = logging.getLogger(__name__)

CACHE_VERSION = "3"
VERSION_KEY = "_version"


def checksum(content: str | None) -> str:
    """md5 of file content; missing content hashes like an empty file."""
    return hashlib.md5((content or "").encode("utf-8")).hexdigest()


class SummaryEntry(BaseModel):
    """Cached description of one file."""

    model_config = ConfigDict(populate_by_name=True)

    file_id: FileId = Field(alias="fileId")
    checksum: str
    summary: str
    token_count: int = Field(default=0, alias="tokenCount")
    local_deps: list[FileId] = Field(default_factory=list, alias="localDeps")
    external_deps: list[str] = Field(default_factory=list, alias="externalDeps")


class SummaryCache:
    """
    Keyed summary store shared across conversations.

    Reads are lock-free. Writes go through `update`, which serializes
    concurrent writers of the same path while letting different paths
    proceed independently.

    Usage:
        cache = SummaryCache(Path("~/.codemod-agent/summaries.json"))
        cache.load()
        if cache.is_stale(path, content):
            await cache.update(path, entry)
        cache.save()
    """

    def __init__(self, path: Path | None = None, version: str = CACHE_VERSION):
        self.path = Path(path).expanduser() if path else None
        self.version = version
        self._entries: dict[str, SummaryEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> SummaryEntry | None:
        return self._entries.get(path)

    def items(self):
        return self._entries.items()

    def is_stale(self, path: str, content: str | None) -> bool:
        entry = self._entries.get(path)
        return entry is None or entry.checksum != checksum(content)

    def set(self, path: str, entry: SummaryEntry) -> None:
        self._entries[path] = entry

    async def update(self, path: str, entry: SummaryEntry) -> None:
        """Write one entry, serialized per path."""
        lock = self._locks.setdefault(path, asyncio.Lock())
        async with lock:
            self._entries[path] = entry

    def invalidate(self, paths: Iterable[str]) -> list[str]:
        """Drop entries and write locks for the given paths; returns the ones that existed."""
        removed = []
        for p in paths:
            self._locks.pop(p, None)
            if self._entries.pop(p, None) is not None:
                removed.append(p)
        if removed:
            logger.debug(f"Invalidated {len(removed)} summary cache entries")
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    # ------------------------------------------------------------------
    # Popular dependencies
    # ------------------------------------------------------------------

    def dependent_counts(self) -> Counter[FileId]:
        """How many distinct cached files list each local dependency."""
        counts: Counter[FileId] = Counter()
        for entry in self._entries.values():
            counts.update(set(entry.local_deps))
        return counts

    def popular_dependencies(self, threshold: int) -> set[FileId]:
        """
        Local dependencies referenced by at least `threshold` files.

        Only localDeps are counted; external packages are never promoted.
        """
        return {fid for fid, count in self.dependent_counts().items() if count >= threshold}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load from disk; unreadable or mismatched caches start empty."""
        self._entries = {}
        if self.path is None or not self.path.exists():
            return

        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read summary cache {self.path}: {e}")
            return

        if data.pop(VERSION_KEY, None) != self.version:
            logger.info("Summary cache version mismatch, discarding all entries")
            return

        for file_path, raw in data.items():
            try:
                self._entries[file_path] = SummaryEntry.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Dropping malformed summary cache entry for {file_path}: {e}")

    def save(self) -> None:
        """Atomically write the cache to disk."""
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {VERSION_KEY: self.version}
        payload.update({p: e.model_dump(by_alias=True) for p, e in self._entries.items()})

        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="summaries_", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise


__all__ = ["CACHE_VERSION", "SummaryCache", "SummaryEntry", "checksum"]
