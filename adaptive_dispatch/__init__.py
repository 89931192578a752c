"""adaptive-dispatch: complexity-tiered LLM request dispatch with timeout race and fallback cascade."""

from adaptive_dispatch.errors import (
    BackendError,
    ConfigurationError,
    DispatchError,
    DispatchTimeoutError,
    ExhaustedFailure,
)
from adaptive_dispatch.failover import FallbackCascade, FallbackStrategy, race_completion
from adaptive_dispatch.heuristics import Classification, Classifier
from adaptive_dispatch.metrics import DispatchMetrics
from adaptive_dispatch.models import (
    CompletionBackend,
    CompletionConfig,
    DispatchOutcome,
    DispatchStatus,
    ReasoningEffort,
    Request,
    TierDescriptor,
    TierOverrides,
    Verbosity,
)
from adaptive_dispatch.router import Dispatcher
from adaptive_dispatch.tiers import DispatchConfig, TierRegistry

__all__ = [
    "BackendError",
    "Classification",
    "Classifier",
    "CompletionBackend",
    "CompletionConfig",
    "ConfigurationError",
    "DispatchConfig",
    "DispatchError",
    "DispatchMetrics",
    "DispatchOutcome",
    "DispatchStatus",
    "DispatchTimeoutError",
    "Dispatcher",
    "ExhaustedFailure",
    "FallbackCascade",
    "FallbackStrategy",
    "ReasoningEffort",
    "Request",
    "TierDescriptor",
    "TierOverrides",
    "TierRegistry",
    "Verbosity",
    "race_completion",
]
