"""Timeout race and fallback cascade behaviour."""

import asyncio

import pytest

from adaptive_dispatch.errors import BackendError, DispatchTimeoutError, ExhaustedFailure
from adaptive_dispatch.failover import FallbackCascade, race_completion
from adaptive_dispatch.models import CompletionBackend, DispatchStatus, ReasoningEffort, Request, Verbosity


class SlowBackend(CompletionBackend):
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.finished = False
        self.cancelled = False

    async def complete(self, text, config):
        try:
            await asyncio.sleep(self.seconds)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        self.finished = True
        return "late"

    async def quick_complete(self, text, config):
        return await self.complete(text, config)


def _request(document: bool = False) -> Request:
    return Request(
        text="Review the numbers", word_count=3, complexity_score=0,
        has_document_intent=document, request_id="req-1",
    )


def test_race_returns_backend_text(scripted_backend, fast_config):
    backend = scripted_backend(["answer"])
    tier = fast_config.registry["balanced"]
    result = asyncio.run(race_completion(backend, "q", tier))
    assert result == "answer"
    assert backend.entries == [("complete", "gpt-5-mini", 1200)]


def test_race_timeout_leaves_call_running(fast_config):
    backend = SlowBackend(0.08)
    tier = fast_config.registry["fast"]

    async def scenario():
        with pytest.raises(DispatchTimeoutError) as info:
            await race_completion(backend, "q", tier)
        assert info.value.tier_name == "fast"
        await asyncio.sleep(0.12)

    asyncio.run(scenario())
    assert backend.finished
    assert not backend.cancelled


def test_race_timeout_can_cancel_call(fast_config):
    backend = SlowBackend(0.08)
    tier = fast_config.registry["fast"]

    async def scenario():
        with pytest.raises(DispatchTimeoutError):
            await race_completion(backend, "q", tier, cancel_on_timeout=True)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert backend.cancelled
    assert not backend.finished


def test_race_wraps_backend_errors(scripted_backend, fast_config):
    backend = scripted_backend([RuntimeError("rate limited")])
    with pytest.raises(BackendError, match="rate limited") as info:
        asyncio.run(race_completion(backend, "q", fast_config.registry["fast"]))
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.parametrize("reply", ["", "   ", None])
def test_race_treats_empty_completion_as_error(scripted_backend, fast_config, reply):
    backend = scripted_backend([reply])
    with pytest.raises(BackendError, match="empty"):
        asyncio.run(race_completion(backend, "q", fast_config.registry["fast"]))


def test_race_quick_entry_point(scripted_backend, fast_config):
    backend = scripted_backend(["quick answer"])
    result = asyncio.run(race_completion(backend, "q", fast_config.registry["fast"], quick=True))
    assert result == "quick answer"
    assert backend.calls[0][0] == "quick"


def test_generic_strategy_order(scripted_backend, config):
    cascade = FallbackCascade(scripted_backend(), config)
    strategies = cascade.strategies_for(_request())
    assert [s.name for s in strategies] == ["nano_retry", "mini_retry", "quick_path"]

    nano, mini, quick = strategies
    assert nano.tier.model == "gpt-5-nano"
    assert nano.tier.max_tokens == 300
    assert mini.tier.model == "gpt-5-mini"
    assert mini.tier.max_tokens == 600
    for s in strategies:
        assert s.tier.reasoning_effort is ReasoningEffort.MINIMAL
        assert s.tier.verbosity is Verbosity.LOW
    assert quick.quick and not nano.quick and not mini.quick
    assert nano.tier.timeout_s == config.registry["fast"].timeout_s
    assert mini.tier.timeout_s == config.registry["balanced"].timeout_s


def test_document_requests_get_document_fallback_first(scripted_backend, config):
    cascade = FallbackCascade(scripted_backend(), config)
    strategies = cascade.strategies_for(_request(document=True))
    assert [s.name for s in strategies] == ["document_fallback", "nano_retry", "mini_retry", "quick_path"]
    doc = strategies[0].tier
    assert doc.model == config.registry["balanced"].model
    assert doc.max_tokens < config.registry["document"].max_tokens


def test_cascade_stops_at_first_success(scripted_backend, fast_config):
    backend = scripted_backend([RuntimeError("down"), "from mini"])
    cascade = FallbackCascade(backend, fast_config)
    outcome = asyncio.run(cascade.run(_request(), tier_attempted="capable"))
    assert outcome.text == "from mini"
    assert outcome.used_fallback
    assert outcome.fallback_strategy == "mini_retry"
    assert outcome.tier_used == "mini_retry"
    assert outcome.attempts == ["capable", "nano_retry", "mini_retry"]
    assert outcome.request_id == "req-1"
    assert len(backend.calls) == 2


def test_cascade_exhausted(scripted_backend, fast_config):
    hang = scripted_backend.HANG
    backend = scripted_backend([hang, hang, hang])
    cascade = FallbackCascade(backend, fast_config)

    with pytest.raises(ExhaustedFailure) as info:
        asyncio.run(cascade.run(_request()))

    err = info.value
    assert err.attempts == ["nano_retry", "mini_retry", "quick_path"]
    assert isinstance(err.last_error, DispatchTimeoutError)
    assert err.outcome.status is DispatchStatus.EXHAUSTED
    assert err.outcome.fallback_strategy is None
    assert [entry for entry, _, _ in backend.entries] == ["complete", "complete", "quick"]


def test_cascade_order_is_repeatable(scripted_backend, fast_config):
    sequences = []
    for _ in range(2):
        backend = scripted_backend(default=RuntimeError("always failing"))
        cascade = FallbackCascade(backend, fast_config)
        with pytest.raises(ExhaustedFailure):
            asyncio.run(cascade.run(_request(document=True)))
        sequences.append(backend.entries)
    assert sequences[0] == sequences[1]
    assert [tokens for _, _, tokens in sequences[0]] == [1500, 300, 600, 300]


def _cancel_race_midway(backend, tier, settle: float, **kwargs):
    async def scenario():
        race = asyncio.ensure_future(race_completion(backend, "q", tier, **kwargs))
        await asyncio.sleep(0.005)
        race.cancel()
        with pytest.raises(asyncio.CancelledError):
            await race
        await asyncio.sleep(settle)

    asyncio.run(scenario())


def test_cancelled_race_leaves_call_running(fast_config):
    backend = SlowBackend(0.03)
    _cancel_race_midway(backend, fast_config.registry["capable"], settle=0.06)
    assert backend.finished
    assert not backend.cancelled


def test_cancelled_race_cancels_call_when_configured(fast_config):
    backend = SlowBackend(0.2)
    _cancel_race_midway(backend, fast_config.registry["capable"], settle=0.01, cancel_on_timeout=True)
    assert backend.cancelled
    assert not backend.finished
