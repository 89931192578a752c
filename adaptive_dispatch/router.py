"""Dispatcher: classify, race the chosen tier, fall back on soft failure."""

import time
import uuid

from loguru import logger

from adaptive_dispatch.errors import ConfigurationError, ExhaustedFailure, SoftDispatchError
from adaptive_dispatch.failover import FallbackCascade, race_completion
from adaptive_dispatch.heuristics import Classification, Classifier
from adaptive_dispatch.metrics import DispatchMetrics
from adaptive_dispatch.models import (
    CompletionBackend,
    DispatchOutcome,
    DispatchStatus,
    Request,
    TierDescriptor,
    TierOverrides,
)
from adaptive_dispatch.tiers import DispatchConfig


class Dispatcher:
    """Routes each request to a tier chosen by complexity.

    Per request:
      1. Classify the text → tier, score, justification
      2. Apply caller overrides to a copy of the tier
      3. Race one backend call against the tier timeout
      4. On timeout or backend error → fallback cascade

    Only ``ExhaustedFailure`` leaves the cascade. ``handle`` turns it into an
    outcome with status ``exhausted``; ``dispatch`` lets it propagate.
    Requests share nothing but the read-only configuration.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        config: DispatchConfig | None = None,
        *,
        metrics: DispatchMetrics | None = None,
    ):
        self._backend = backend
        self._config = config or DispatchConfig.default()
        self._classifier = Classifier(self._config)
        self._cascade = FallbackCascade(backend, self._config)
        self._metrics = metrics

    @property
    def config(self) -> DispatchConfig:
        return self._config

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    @property
    def cascade(self) -> FallbackCascade:
        return self._cascade

    @property
    def metrics(self) -> DispatchMetrics | None:
        return self._metrics

    def classify(self, text: str) -> Classification:
        return self._classifier.classify(text, request_id=uuid.uuid4().hex)

    async def dispatch(
        self,
        request: Request,
        tier: TierDescriptor,
        *,
        allow_fallback: bool = True,
    ) -> DispatchOutcome:
        """Execute one classified request on ``tier``.

        Raises:
            DispatchTimeoutError / BackendError: Only when ``allow_fallback`` is False.
            ExhaustedFailure: The cascade ran out of strategies.
        """
        start = time.monotonic()
        try:
            text = await race_completion(
                self._backend, request.text, tier,
                cancel_on_timeout=self._config.cancel_on_timeout,
            )
        except SoftDispatchError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                f"Tier {tier.name} ({tier.model}) failed in {elapsed_ms}ms [{request.request_id}]: {e}"
            )
            if not allow_fallback:
                raise
            return await self._cascade.run(request, started=start, tier_attempted=tier.name)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Tier {tier.name} ({tier.model}) answered in {elapsed_ms}ms [{request.request_id}]")
        return DispatchOutcome(
            text=text,
            elapsed_ms=elapsed_ms,
            tier_used=tier.name,
            complexity_score=request.complexity_score,
            request_id=request.request_id,
            attempts=[tier.name],
        )

    async def handle(self, text: str, overrides: TierOverrides | None = None) -> DispatchOutcome:
        """End-to-end entry point: classify, dispatch, never raise on exhaustion."""
        classification = self.classify(text)
        request = classification.request
        tier = self._config.apply_overrides(classification.tier, overrides)

        override_note = ""
        if tier is not classification.tier:
            override_note = f" | override → {tier.name}/{tier.reasoning_effort.value}/{tier.max_tokens}"
        logger.info(
            f"Route: {classification.tier.name} (score={request.complexity_score}, "
            f"{classification.justification}){override_note} [{request.request_id}]"
        )

        try:
            outcome = await self.dispatch(request, tier)
        except ExhaustedFailure as e:
            logger.error(f"Request {request.request_id} exhausted all fallbacks: {e}")
            outcome = e.outcome or DispatchOutcome(
                text="", elapsed_ms=0, tier_used="none",
                complexity_score=request.complexity_score,
                status=DispatchStatus.EXHAUSTED, used_fallback=True,
                request_id=request.request_id, error=str(e),
            )

        if self._metrics is not None:
            self._metrics.record(outcome)
        return outcome

    async def handle_preset(self, preset: str, text: str) -> DispatchOutcome:
        """Run ``text`` with one of the named override presets."""
        try:
            overrides = self._config.presets[preset]
        except KeyError:
            valid = ", ".join(sorted(self._config.presets))
            raise ConfigurationError(f"Unknown preset '{preset}'. Presets: {valid}") from None
        return await self.handle(text, overrides)
