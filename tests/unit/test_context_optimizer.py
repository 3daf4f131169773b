"""Tests for the context window optimizer."""

import json

import pytest

from codemod_agent.config import OptimizerConfig
from codemod_agent.context_optimizer import build_optimized_map, optimize_context, select_context
from codemod_agent.function_defs import OptimizedContextItem
from codemod_agent.providers.base import ModelTier
from codemod_agent.results import StepResult
from codemod_agent.source_map import FileIdRegistry, SourceFile, file_id_for, source_map_to_json
from codemod_agent.token_estimator import estimate_token_count
from codemod_agent.transcript import FunctionCall, FunctionResponse, assistant, user

from fakes import call


def _words(n):
    return " ".join(["w"] * n)


def _rating(path, relevance):
    return OptimizedContextItem(reasoning="because", file_path=path, relevance=relevance)


@pytest.fixture
def source_map():
    registry = FileIdRegistry()
    sizes = {"/p/a.py": 8, "/p/b.py": 5, "/p/c.py": 6, "/p/d.py": 2}
    return {p: SourceFile(p, registry.register(p), content=_words(n)) for p, n in sizes.items()}


class TestSelectContext:
    """Admission by relevance under a soft budget."""

    def test_soft_budget_only_exceeded_by_highly_relevant_files(self, source_map):
        config = OptimizerConfig(budget_tokens=10)
        ratings = [_rating("/p/a.py", 0.9), _rating("/p/b.py", 0.6), _rating("/p/c.py", 0.8)]
        admitted = select_context(ratings, source_map, set(source_map), config)

        assert admitted == [("/p/a.py", 0.9), ("/p/c.py", 0.8)]
        total = sum(estimate_token_count(source_map[p].content) for p, _ in admitted)
        assert total > config.budget_tokens
        assert all(r >= config.high_relevance for _, r in admitted)

    def test_within_budget_admits_moderate_relevance(self, source_map):
        config = OptimizerConfig(budget_tokens=100)
        admitted = select_context([_rating("/p/b.py", 0.55)], source_map, set(source_map), config)
        assert admitted == [("/p/b.py", 0.55)]

    def test_low_relevance_stops_admission(self, source_map):
        config = OptimizerConfig(budget_tokens=100)
        ratings = [_rating("/p/a.py", 0.9), _rating("/p/b.py", 0.4), _rating("/p/d.py", 0.45)]
        assert select_context(ratings, source_map, set(source_map), config) == [("/p/a.py", 0.9)]

    def test_undisclosed_paths_are_never_admitted(self, source_map):
        config = OptimizerConfig(budget_tokens=100)
        ratings = [_rating("/p/ghost.py", 1.0), _rating("/p/a.py", 0.9), _rating("/p/b.py", 0.9)]
        disclosed = {"/p/ghost.py", "/p/a.py"}
        admitted = select_context(ratings, source_map, disclosed, config)
        assert [p for p, _ in admitted] == ["/p/a.py"]

    def test_important_files_are_not_budgeted(self, source_map):
        config = OptimizerConfig(budget_tokens=5)
        ratings = [_rating("/p/a.py", 0.9), _rating("/p/b.py", 0.6)]
        admitted = select_context(ratings, source_map, set(source_map), config, important={"/p/a.py"})
        assert admitted == [("/p/b.py", 0.6)]

    def test_repeated_ratings_keep_the_best(self, source_map):
        config = OptimizerConfig(budget_tokens=100)
        ratings = [_rating("/p/a.py", 0.2), _rating("/p/a.py", 0.8)]
        assert select_context(ratings, source_map, set(source_map), config) == [("/p/a.py", 0.8)]


def test_build_optimized_map_uses_summaries_for_the_rest(source_map):
    optimized, content_tokens, summary_tokens = build_optimized_map(
        source_map, {"/p/a.py"}, {"/p/b.py": "bee", "/p/c.py": "sea creature"}
    )
    assert optimized["/p/a.py"].content == _words(8)
    assert optimized["/p/b.py"].summary == "bee"
    assert "/p/d.py" not in optimized
    assert content_tokens == estimate_token_count(_words(8))
    assert summary_tokens == estimate_token_count("bee") + estimate_token_count("sea creature")


def _disclose_project(ctx):
    """Record the initial getSourceCode exchange the way the dispatch loop does."""
    source_call = FunctionCall("getSourceCode", {}, id="initial_source")
    ctx.transcript.append(
        user("Make add() handle strings"),
        assistant(calls=[source_call]),
        user(
            responses=[
                FunctionResponse("getSourceCode", source_call.id, json.dumps(source_map_to_json(ctx.source_map())))
            ]
        ),
    )


class TestOptimizeContext:
    @pytest.mark.asyncio
    async def test_small_codebase_is_left_alone(self, ctx, backend):
        result = await optimize_context(ctx)
        assert result.step == StepResult.CONTINUE
        assert backend.requests == []
        assert ctx.transcript.notices[-1].message == (
            "Context optimization is not needed, because the code base is small."
        )

    @pytest.mark.asyncio
    async def test_large_codebase_keeps_relevant_content(self, ctx, backend, seed_summaries, project):
        ctx.config.optimizer.trigger_tokens = 1
        ctx.config.optimizer.budget_tokens = 1000
        seed_summaries(ctx)
        _disclose_project(ctx)
        core = f"{project}/pkg/core.py"
        backend.queue(
            call(
                "optimizeContext",
                userPrompt="Make add() handle strings",
                reasoning="add lives in core",
                optimizedContext=[
                    {"reasoning": "defines add", "filePath": core, "relevance": 0.95},
                    {"reasoning": "made up", "filePath": f"{project}/pkg/ghost.py", "relevance": 1.0},
                ],
            )
        )

        result = await optimize_context(ctx)

        assert result.step == StepResult.CONTINUE
        assert result.admitted == [(core, 0.95)]
        assert backend.requests[0].model_tier == ModelTier.CHEAP
        ctx.transcript.assert_consistent()

        latest = json.loads(ctx.transcript.last.function_responses[-1].content)
        assert latest[core]["content"].startswith("def add")
        assert "summary" in latest[f"{project}/pkg/app.py"]
        assert f"{project}/pkg/ghost.py" not in latest
        # Earlier full contents were stripped
        assert ctx.transcript.provided_contents() == {core}
        assert ctx.transcript.last.cache
        assert ctx.transcript.notices[-1].message == "Context optimization completed successfully."
        assert result.report.content_token_count > 0
        assert result.report.summary_token_count > 0

    @pytest.mark.asyncio
    async def test_failed_rating_call_breaks(self, ctx, backend, seed_summaries):
        ctx.config.optimizer.trigger_tokens = 1
        seed_summaries(ctx)
        _disclose_project(ctx)
        backend.queue("no idea", "still no idea")

        result = await optimize_context(ctx)

        assert result.step == StepResult.BREAK
        assert ctx.transcript.notices[-1].message == "Warning: Context optimization failed. We need to abort."

    @pytest.mark.asyncio
    async def test_empty_rating_changes_nothing(self, ctx, backend, seed_summaries):
        ctx.config.optimizer.trigger_tokens = 1
        seed_summaries(ctx)
        _disclose_project(ctx)
        items_before = len(ctx.transcript)
        backend.queue(call("optimizeContext", userPrompt="x", reasoning="whole codebase", optimizedContext=[]))

        result = await optimize_context(ctx)

        assert result.step == StepResult.CONTINUE
        assert len(ctx.transcript) == items_before
        assert ctx.transcript.notices[-1].message == (
            "Context optimization did not generate changes to current context."
        )


class TestPopularDependencies:
    """Files many others import fill whatever budget relevance left over."""

    def _make_core_popular(self, ctx, project):
        core = f"{project}/pkg/core.py"
        for name in ("pkg/app.py", "pkg/__init__.py"):
            ctx.cache.get(f"{project}/{name}").local_deps = [file_id_for(core)]
        ctx.config.summaries.popular_threshold = 2
        return core

    def _rate_app(self, project):
        return call(
            "optimizeContext",
            userPrompt="Make add() handle strings",
            reasoning="the entry point",
            optimizedContext=[{"reasoning": "prints", "filePath": f"{project}/pkg/app.py", "relevance": 0.95}],
        )

    @pytest.mark.asyncio
    async def test_popular_dependency_fills_leftover_budget(self, ctx, backend, seed_summaries, project):
        ctx.config.optimizer.trigger_tokens = 1
        ctx.config.optimizer.budget_tokens = 1000
        seed_summaries(ctx)
        core = self._make_core_popular(ctx, project)
        _disclose_project(ctx)
        backend.queue(self._rate_app(project))

        result = await optimize_context(ctx)

        assert result.admitted == [(f"{project}/pkg/app.py", 0.95)]
        latest = json.loads(ctx.transcript.last.function_responses[-1].content)
        assert latest[core]["content"].startswith("def add")
        assert "summary" in latest[f"{project}/README.md"]
        assert "content" not in latest[f"{project}/README.md"]

    @pytest.mark.asyncio
    async def test_popular_dependency_that_does_not_fit_stays_summarized(
        self, ctx, backend, seed_summaries, project
    ):
        app = f"{project}/pkg/app.py"
        ctx.config.optimizer.trigger_tokens = 1
        ctx.config.optimizer.budget_tokens = estimate_token_count(ctx.files.read_text(app))
        seed_summaries(ctx)
        core = self._make_core_popular(ctx, project)
        _disclose_project(ctx)
        backend.queue(self._rate_app(project))

        await optimize_context(ctx)

        latest = json.loads(ctx.transcript.last.function_responses[-1].content)
        assert "content" in latest[app]
        assert latest[core]["summary"] == "Summary of core.py"
        assert "content" not in latest[core]
