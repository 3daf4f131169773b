"""
Shared test fixtures.

Provides a temporary project tree, a conversation context wired to the
scripted collaborators in fakes.py, and cache seeding.
"""

import pytest

from codemod_agent.config import AgentConfig, PermissionConfig, SummaryConfig
from codemod_agent.context import ConversationContext
from codemod_agent.source_map import file_id_for
from codemod_agent.summary_cache import SummaryEntry, checksum

from fakes import ScriptedBackend, ScriptedImageBackend, ScriptedInteraction


@pytest.fixture
def project(tmp_path):
    """A small project tree; returns its absolute root path."""
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "__init__.py").write_text("")
    (root / "pkg" / "core.py").write_text("def add(a, b):\n    return a + b\n")
    (root / "pkg" / "app.py").write_text("from pkg.core import add\n\nprint(add(1, 2))\n")
    (root / "README.md").write_text("# Demo\n")
    return str(root.resolve())


@pytest.fixture
def config(project, tmp_path):
    return AgentConfig(
        root_dir=project,
        summaries=SummaryConfig(cache_path=str(tmp_path / "cache" / "summaries.json")),
        permissions=PermissionConfig(),
    )


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def interaction():
    return ScriptedInteraction()


@pytest.fixture
def image_backend():
    return ScriptedImageBackend()


@pytest.fixture
def ctx(config, backend, interaction, image_backend):
    return ConversationContext(config, backend, interaction, image_backend)


@pytest.fixture
def seed_summaries():
    """Give every project file a fresh cache entry so no summarization is requested."""

    def seed(context: ConversationContext) -> None:
        for path in context.files.refresh():
            content = context.files.read_text(path)
            context.registry.register(path)
            context.cache.set(
                path,
                SummaryEntry(
                    file_id=file_id_for(path),
                    checksum=checksum(content),
                    summary=f"Summary of {path.rsplit('/', 1)[-1]}",
                ),
            )

    return seed
