"""Error taxonomy for adaptive-dispatch.

Soft errors (``DispatchTimeoutError``, ``BackendError``) are recovered inside
the fallback cascade. ``ExhaustedFailure`` is the only error a caller sees
once every strategy has failed, and it must not be retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adaptive_dispatch.models import DispatchOutcome


class DispatchError(Exception):
    """Base class for every error raised by adaptive-dispatch."""


class ConfigurationError(DispatchError, ValueError):
    """Invalid registry, config or override values."""


class SoftDispatchError(DispatchError):
    """A failure the cascade recovers from by moving to the next strategy."""

    def __init__(self, message: str, tier_name: str = "") -> None:
        super().__init__(message)
        self.tier_name = tier_name


class DispatchTimeoutError(SoftDispatchError, TimeoutError):
    """The tier's timer fired before the backend answered."""

    def __init__(self, tier_name: str, timeout_s: float) -> None:
        super().__init__(f"Tier '{tier_name}' timed out after {timeout_s:g}s", tier_name)
        self.timeout_s = timeout_s


class BackendError(SoftDispatchError):
    """The backend call raised, or returned nothing usable."""


class ExhaustedFailure(DispatchError):
    """Every fallback strategy failed. Fatal for the request."""

    def __init__(
        self,
        attempts: list[str],
        last_error: Exception | None,
        outcome: DispatchOutcome | None = None,
    ) -> None:
        super().__init__(
            f"All {len(attempts)} fallback strategies failed "
            f"({', '.join(attempts)}). Last error: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error
        self.outcome = outcome
