"""Shared fixtures: a scripted completion backend and a fast-timeout config."""

import asyncio

import pytest

from adaptive_dispatch.models import CompletionBackend, CompletionConfig
from adaptive_dispatch.tiers import DEFAULT_TIERS, DispatchConfig, TierRegistry


class ScriptedBackend(CompletionBackend):
    """Replays a script of behaviours, one per call, then uses ``default``.

    A behaviour is a string (returned), an exception instance (raised),
    ``HANG`` (never resolves) or ``delay(seconds, text)``.
    """

    HANG = object()

    def __init__(self, script=None, default="default reply"):
        self.script = list(script or [])
        self.default = default
        self.calls: list[tuple[str, CompletionConfig]] = []

    @staticmethod
    def delay(seconds: float, text: str):
        return ("delay", seconds, text)

    async def _play(self, entry: str, config: CompletionConfig) -> str:
        self.calls.append((entry, config))
        behaviour = self.script.pop(0) if self.script else self.default
        if behaviour is self.HANG:
            await asyncio.Event().wait()
        if isinstance(behaviour, tuple) and behaviour[0] == "delay":
            await asyncio.sleep(behaviour[1])
            return behaviour[2]
        if isinstance(behaviour, BaseException):
            raise behaviour
        return behaviour

    async def complete(self, text, config):
        return await self._play("complete", config)

    async def quick_complete(self, text, config):
        return await self._play("quick", config)

    @property
    def entries(self) -> list[tuple[str, str, int]]:
        return [(entry, cfg.model, cfg.max_tokens) for entry, cfg in self.calls]


# Same tiers as the stock registry, with timeouts short enough for tests.
_TEST_TIMEOUTS = {
    "fast": 0.02,
    "balanced": 0.03,
    "complex": 0.04,
    "document": 0.05,
    "document_extended": 0.06,
    "capable": 0.07,
}


@pytest.fixture
def scripted_backend():
    return ScriptedBackend


@pytest.fixture
def config():
    return DispatchConfig.default()


@pytest.fixture
def fast_config():
    registry = TierRegistry(t.derive(timeout_s=_TEST_TIMEOUTS[t.name]) for t in DEFAULT_TIERS)
    return DispatchConfig(registry=registry)
