"""Timeout race and the ordered fallback cascade."""

import asyncio
import time
from dataclasses import dataclass

from loguru import logger

from adaptive_dispatch.errors import BackendError, DispatchTimeoutError, ExhaustedFailure, SoftDispatchError
from adaptive_dispatch.models import (
    CompletionBackend,
    DispatchOutcome,
    DispatchStatus,
    ReasoningEffort,
    Request,
    TierDescriptor,
    Verbosity,
)
from adaptive_dispatch.tiers import BALANCED, DispatchConfig

NANO_RETRY = "nano_retry"
MINI_RETRY = "mini_retry"
QUICK_PATH = "quick_path"
DOCUMENT_FALLBACK = "document_fallback"


def _discard_late_result(task: asyncio.Task) -> None:
    """Consume the result of a call that already lost its race."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Late backend call failed after timeout, ignored: {exc}")
    else:
        logger.debug("Late backend result discarded after timeout")


async def race_completion(
    backend: CompletionBackend,
    text: str,
    tier: TierDescriptor,
    *,
    quick: bool = False,
    cancel_on_timeout: bool = False,
) -> str:
    """Run one backend call against the tier's timer.

    The first of {backend call, timer} to finish decides the result. A call
    that loses the race keeps running unless ``cancel_on_timeout`` is set;
    its value is discarded either way.

    Raises:
        DispatchTimeoutError: The timer fired first.
        BackendError: The call raised or returned an empty completion.
    """
    entry = backend.quick_complete if quick else backend.complete
    task = asyncio.ensure_future(entry(text, tier.completion_config()))
    try:
        done, _ = await asyncio.wait({task}, timeout=tier.timeout_s)
    except asyncio.CancelledError:
        # Caller gave up on the race; treat the pending call like a timeout
        if cancel_on_timeout:
            task.cancel()
        task.add_done_callback(_discard_late_result)
        raise

    if task not in done:
        if cancel_on_timeout:
            task.cancel()
        task.add_done_callback(_discard_late_result)
        raise DispatchTimeoutError(tier.name, tier.timeout_s)

    try:
        result = task.result()
    except asyncio.CancelledError as e:
        raise BackendError(f"Backend call on '{tier.name}' was cancelled", tier.name) from e
    except Exception as e:
        raise BackendError(f"Backend call on '{tier.name}' ({tier.model}) failed: {e}", tier.name) from e

    if result is None or not str(result).strip():
        raise BackendError(f"Backend returned an empty completion on '{tier.name}'", tier.name)
    return str(result)


@dataclass(frozen=True)
class FallbackStrategy:
    """A single degraded retry in the cascade."""

    name: str
    tier: TierDescriptor
    quick: bool = False  # True → backend.quick_complete, tier config bypassed


class FallbackCascade:
    """Try each fallback strategy in declared order until one succeeds."""

    def __init__(self, backend: CompletionBackend, config: DispatchConfig) -> None:
        self._backend = backend
        self._config = config
        self._generic = self._build_generic()
        self._document = self._build_document()

    def _build_generic(self) -> tuple[FallbackStrategy, ...]:
        cfg = self._config
        lowest = cfg.registry.lowest
        mid = cfg.registry[BALANCED]
        return (
            FallbackStrategy(NANO_RETRY, lowest.derive(
                name=NANO_RETRY,
                reasoning_effort=ReasoningEffort.MINIMAL,
                verbosity=Verbosity.LOW,
                max_tokens=cfg.nano_retry_tokens,
            )),
            FallbackStrategy(MINI_RETRY, mid.derive(
                name=MINI_RETRY,
                reasoning_effort=ReasoningEffort.MINIMAL,
                verbosity=Verbosity.LOW,
                max_tokens=cfg.mini_retry_tokens,
            )),
            FallbackStrategy(QUICK_PATH, lowest.derive(
                name=QUICK_PATH,
                reasoning_effort=ReasoningEffort.MINIMAL,
                verbosity=Verbosity.LOW,
                max_tokens=cfg.quick_path_tokens,
            ), quick=True),
        )

    def _build_document(self) -> FallbackStrategy:
        mid = self._config.registry[BALANCED]
        return FallbackStrategy(DOCUMENT_FALLBACK, mid.derive(
            name=DOCUMENT_FALLBACK,
            reasoning_effort=ReasoningEffort.MINIMAL,
            verbosity=Verbosity.LOW,
            max_tokens=self._config.document_fallback_tokens,
        ))

    def strategies_for(self, request: Request) -> list[FallbackStrategy]:
        """The ordered strategy list for a request."""
        chain = list(self._generic)
        if request.has_document_intent:
            chain.insert(0, self._document)
        return chain

    async def run(
        self,
        request: Request,
        *,
        started: float | None = None,
        tier_attempted: str = "",
    ) -> DispatchOutcome:
        """Walk the cascade sequentially.

        Returns:
            The outcome of the first strategy that succeeds.

        Raises:
            ExhaustedFailure: If every strategy fails.
        """
        start = started if started is not None else time.monotonic()
        prior = [tier_attempted] if tier_attempted else []
        tried: list[str] = []
        last_error: Exception | None = None

        for strategy in self.strategies_for(request):
            tried.append(strategy.name)
            step_start = time.monotonic()
            try:
                text = await race_completion(
                    self._backend, request.text, strategy.tier,
                    quick=strategy.quick,
                    cancel_on_timeout=self._config.cancel_on_timeout,
                )
            except SoftDispatchError as e:
                step_ms = int((time.monotonic() - step_start) * 1000)
                last_error = e
                logger.warning(
                    f"Fallback {strategy.name} ({strategy.tier.model}) failed in {step_ms}ms "
                    f"[{request.request_id}]: {e}"
                )
                continue

            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                f"Fallback {strategy.name} succeeded in {elapsed_ms}ms [{request.request_id}]"
            )
            return DispatchOutcome(
                text=text,
                elapsed_ms=elapsed_ms,
                tier_used=strategy.tier.name,
                complexity_score=request.complexity_score,
                used_fallback=True,
                fallback_strategy=strategy.name,
                request_id=request.request_id,
                attempts=prior + tried,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        outcome = DispatchOutcome(
            text="",
            elapsed_ms=elapsed_ms,
            tier_used="none",
            complexity_score=request.complexity_score,
            status=DispatchStatus.EXHAUSTED,
            used_fallback=True,
            request_id=request.request_id,
            error=str(last_error) if last_error else None,
            attempts=prior + tried,
        )
        raise ExhaustedFailure(tried, last_error, outcome)
