"""
Unit tests for the provider fallback router.

Transient failures switch the active backend for the rest of the
conversation; everything else propagates unchanged.
"""

import asyncio

import pytest

from codemod_agent.errors import AuthenticationError, ProviderUnavailableError, RateLimitError
from codemod_agent.providers import ModelBackend, ProviderFallbackRouter
from codemod_agent.transcript import Transcript, user

from fakes import ScriptedBackend, ask


@pytest.fixture
def transcript():
    return Transcript("sys", [user("hi")])


async def _generate(router, transcript):
    return await router.generate_content(transcript, [], "askQuestion")


class TestFallback:
    """Tests for switching between providers."""

    @pytest.mark.asyncio
    async def test_rate_limit_switches_for_rest_of_conversation(self, transcript):
        first = ScriptedBackend([RateLimitError("429", provider="p1")], name="p1")
        second = ScriptedBackend([ask("sendMessage"), ask("sendMessage")], name="p2")
        router = ProviderFallbackRouter({"p1": first, "p2": second})

        assert (await _generate(router, transcript))[0].name == "askQuestion"
        await _generate(router, transcript)

        assert router.active_name == "p2"
        assert len(first.requests) == 1
        assert len(second.requests) == 2
        assert [n.message for n in transcript.notices] == [
            "Rate limit exceeded for p1. Automatically switching to p2."
        ]
        assert router.switch_history[0]["from"] == "p1"

    @pytest.mark.asyncio
    async def test_unavailable_provider_also_falls_back(self, transcript):
        first = ScriptedBackend([ProviderUnavailableError("503")], name="p1")
        second = ScriptedBackend([ask("sendMessage")], name="p2")
        router = ProviderFallbackRouter({"p1": first, "p2": second})

        await _generate(router, transcript)
        assert router.active_name == "p2"
        assert "p1 is unavailable" in transcript.notices[0].message

    @pytest.mark.asyncio
    async def test_non_transient_errors_propagate(self, transcript):
        first = ScriptedBackend([AuthenticationError("bad key")], name="p1")
        second = ScriptedBackend([ask("sendMessage")], name="p2")
        router = ProviderFallbackRouter({"p1": first, "p2": second})

        with pytest.raises(AuthenticationError):
            await _generate(router, transcript)
        assert router.active_name == "p1"
        assert second.requests == []
        assert transcript.notices == []

    @pytest.mark.asyncio
    async def test_last_backend_cannot_fall_back(self, transcript):
        only = ScriptedBackend([RateLimitError("429")], name="p1")
        router = ProviderFallbackRouter({"p1": only})

        with pytest.raises(ProviderUnavailableError, match="fallback was not possible"):
            await _generate(router, transcript)
        assert transcript.notices

    @pytest.mark.asyncio
    async def test_disabled_fallback_reraises(self, transcript):
        first = ScriptedBackend([RateLimitError("429")], name="p1")
        second = ScriptedBackend([ask("sendMessage")], name="p2")
        router = ProviderFallbackRouter({"p1": first, "p2": second}, disable_fallback=True)

        with pytest.raises(RateLimitError):
            await _generate(router, transcript)
        assert router.active_name == "p1"
        assert transcript.notices[0].message == "Rate limit exceeded for p1"

    @pytest.mark.asyncio
    async def test_chained_fallback(self, transcript):
        backends = {
            "p1": ScriptedBackend([RateLimitError("429")], name="p1"),
            "p2": ScriptedBackend([ProviderUnavailableError("down")], name="p2"),
            "p3": ScriptedBackend([ask("sendMessage")], name="p3"),
        }
        router = ProviderFallbackRouter(backends)

        await _generate(router, transcript)
        assert router.active_name == "p3"
        assert len(router.switch_history) == 2


class SlowThrottledBackend(ModelBackend):
    """Every request waits, then fails with a rate limit."""

    name = "p1"

    def __init__(self):
        self.calls = 0

    async def generate_content(self, transcript, function_defs, required_function_name=None, temperature=0.7,
                               model_tier=None, options=None):
        self.calls += 1
        await asyncio.sleep(0.01)
        raise RateLimitError("429", provider=self.name)


@pytest.mark.asyncio
async def test_concurrent_failures_switch_only_once(transcript):
    first = SlowThrottledBackend()
    second = ScriptedBackend([ask("sendMessage"), ask("sendMessage")], name="p2")
    router = ProviderFallbackRouter({"p1": first, "p2": second})

    results = await asyncio.gather(_generate(router, transcript), _generate(router, transcript))

    assert [r[0].name for r in results] == ["askQuestion", "askQuestion"]
    assert first.calls == 2
    assert router.active_name == "p2"
    assert len(router.switch_history) == 1
    assert len(second.requests) == 2
    assert len(transcript.notices) == 1


def test_router_requires_a_backend():
    with pytest.raises(ValueError):
        ProviderFallbackRouter({})
