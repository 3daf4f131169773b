"""Tests for FileIds, SourceCodeMap entries and dependency traversal."""

import pytest

from codemod_agent.source_map import (
    FileIdRegistry,
    SourceFile,
    expand_context,
    file_id_for,
    local_dependency_closure,
    source_map_to_json,
)


def _entry(registry, path, deps=(), content=None):
    fid = registry.register(path)
    dep_ids = [registry.register(d) for d in deps]
    if content is None:
        return SourceFile(path, fid, summary=f"summary of {path}", local_deps=dep_ids)
    return SourceFile(path, fid, content=content, local_deps=dep_ids)


class TestFileId:
    """Tests for path-derived file ids."""

    def test_deterministic(self):
        assert file_id_for("/p/a.py") == file_id_for("/p/a.py")

    def test_distinct_paths_get_distinct_ids(self):
        assert file_id_for("/p/a.py") != file_id_for("/p/b.py")

    def test_registry_is_bijective(self):
        registry = FileIdRegistry(["/p/a.py", "/p/b.py"])
        for path in ("/p/a.py", "/p/b.py"):
            assert registry.path_of(registry.id_of(path)) == path
        assert len(registry) == 2

    def test_register_is_idempotent(self):
        registry = FileIdRegistry()
        assert registry.register("/p/a.py") == registry.register("/p/a.py")
        assert len(registry) == 1

    def test_paths_of_skips_unknown_ids(self):
        registry = FileIdRegistry(["/p/a.py"])
        ids = [registry.id_of("/p/a.py"), file_id_for("/elsewhere.py")]
        assert registry.paths_of(ids) == ["/p/a.py"]


class TestSourceFile:
    """Tests for SourceFile invariants and wire shape."""

    def test_requires_exactly_one_of_content_or_summary(self):
        with pytest.raises(ValueError):
            SourceFile("/p/a.py", 1)
        with pytest.raises(ValueError):
            SourceFile("/p/a.py", 1, content="x", summary="y")

    def test_to_json_with_content(self):
        entry = SourceFile("/p/a.py", 7, content="print(1)", local_deps=[3], external_deps=["requests"])
        assert entry.to_json() == {
            "fileId": 7,
            "content": "print(1)",
            "localDeps": [3],
            "externalDeps": ["requests"],
        }

    def test_as_summary_drops_content(self):
        entry = SourceFile("/p/a.py", 7, content="print(1)", local_deps=[3])
        summarized = entry.as_summary("prints one")
        assert summarized.content is None
        assert summarized.summary == "prints one"
        assert summarized.local_deps == [3]
        assert not summarized.has_content

    def test_source_map_to_json_keys_by_path(self):
        registry = FileIdRegistry()
        source_map = {"/p/a.py": _entry(registry, "/p/a.py")}
        assert list(source_map_to_json(source_map)) == ["/p/a.py"]


class TestDependencyTraversal:
    """Closure and context expansion over possibly cyclic imports."""

    def test_closure_terminates_on_cycles(self):
        registry = FileIdRegistry()
        source_map = {
            "/p/a.py": _entry(registry, "/p/a.py", ["/p/b.py"]),
            "/p/b.py": _entry(registry, "/p/b.py", ["/p/c.py"]),
            "/p/c.py": _entry(registry, "/p/c.py", ["/p/a.py"]),
        }
        assert local_dependency_closure("/p/a.py", source_map, registry) == {"/p/b.py", "/p/c.py"}

    def test_closure_does_not_descend_past_missing_entries(self):
        registry = FileIdRegistry()
        source_map = {"/p/a.py": _entry(registry, "/p/a.py", ["/p/gone.py"])}
        assert local_dependency_closure("/p/a.py", source_map, registry) == {"/p/gone.py"}

    def test_expand_context_adds_dependencies_and_dependents(self):
        registry = FileIdRegistry()
        source_map = {
            "/p/core.py": _entry(registry, "/p/core.py", ["/p/util.py"]),
            "/p/util.py": _entry(registry, "/p/util.py"),
            "/p/app.py": _entry(registry, "/p/app.py", ["/p/core.py"]),
            "/p/other.py": _entry(registry, "/p/other.py"),
        }
        expanded = expand_context(["/p/core.py"], source_map, registry)
        assert set(expanded) == {"/p/core.py", "/p/util.py", "/p/app.py"}

    def test_expand_context_of_unknown_paths_is_empty(self):
        registry = FileIdRegistry()
        source_map = {"/p/a.py": _entry(registry, "/p/a.py")}
        assert expand_context(["/p/missing.py"], source_map, registry) == {}
