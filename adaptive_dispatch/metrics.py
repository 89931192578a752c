"""In-process dispatch statistics. Observational only, never used for routing."""

from collections import Counter
from typing import Any

from loguru import logger

from adaptive_dispatch.models import DispatchOutcome


class DispatchMetrics:
    """Running counters over dispatched requests."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.exhausted_requests = 0
        self.fallback_requests = 0
        self.average_response_ms = 0.0
        self.tier_usage: Counter[str] = Counter()
        self.strategy_usage: Counter[str] = Counter()

    def record(self, outcome: DispatchOutcome) -> None:
        self.total_requests += 1
        if outcome.ok:
            self.successful_requests += 1
            self.tier_usage[outcome.tier_used] += 1
            # Mean over successful requests only
            n = self.successful_requests
            self.average_response_ms += (outcome.elapsed_ms - self.average_response_ms) / n
        else:
            self.exhausted_requests += 1
        if outcome.used_fallback:
            self.fallback_requests += 1
            if outcome.fallback_strategy:
                self.strategy_usage[outcome.fallback_strategy] += 1

    @property
    def success_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.successful_requests / self.total_requests

    def snapshot(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "exhausted_requests": self.exhausted_requests,
            "fallback_requests": self.fallback_requests,
            "success_rate": round(self.success_rate, 4),
            "average_response_ms": round(self.average_response_ms, 1),
            "tier_usage": dict(self.tier_usage),
            "strategy_usage": dict(self.strategy_usage),
        }

    def reset(self) -> dict[str, Any]:
        """Clear all counters and return what they were."""
        previous = self.snapshot()
        self._reset()
        logger.info("Dispatch metrics reset")
        return previous
