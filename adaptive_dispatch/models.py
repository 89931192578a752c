"""Core data models for adaptive-dispatch."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from adaptive_dispatch.errors import ConfigurationError


class ReasoningEffort(str, Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Verbosity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DispatchStatus(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


def _coerce(enum_cls: type[Enum], value: Any, label: str) -> Any:
    """Return ``value`` as a member of ``enum_cls`` or raise ConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"Invalid {label} '{value}'. Expected one of: {valid}") from None


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class CompletionConfig:
    """What the completion backend receives alongside the prompt text."""
    model: str
    reasoning_effort: ReasoningEffort
    verbosity: Verbosity
    max_tokens: int


@dataclass(frozen=True)
class TierDescriptor:
    """One cost/capability point on the dispatch spectrum."""

    name: str
    model: str
    reasoning_effort: ReasoningEffort
    verbosity: Verbosity
    max_tokens: int
    timeout_s: float

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Tier name must not be empty")
        if not self.model:
            raise ConfigurationError(f"Tier '{self.name}' has no model")
        object.__setattr__(
            self, "reasoning_effort", _coerce(ReasoningEffort, self.reasoning_effort, "reasoning effort")
        )
        object.__setattr__(self, "verbosity", _coerce(Verbosity, self.verbosity, "verbosity"))
        if not _is_positive_int(self.max_tokens):
            raise ConfigurationError(
                f"Tier '{self.name}' max_tokens must be a positive integer, got {self.max_tokens!r}"
            )
        if isinstance(self.timeout_s, bool) or not isinstance(self.timeout_s, (int, float)) or self.timeout_s <= 0:
            raise ConfigurationError(f"Tier '{self.name}' timeout must be positive, got {self.timeout_s!r}")
        object.__setattr__(self, "timeout_s", float(self.timeout_s))

    def completion_config(self) -> CompletionConfig:
        return CompletionConfig(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            verbosity=self.verbosity,
            max_tokens=self.max_tokens,
        )

    def derive(self, **changes: Any) -> "TierDescriptor":
        """Return a modified copy. The original descriptor is never touched."""
        return replace(self, **changes)


@dataclass(frozen=True)
class TierOverrides:
    """Caller-supplied partial replacement of a classified tier.

    ``force_tier`` swaps the whole descriptor for a named registry tier; the
    remaining fields then replace individual values on that descriptor.
    """

    force_tier: str | None = None
    reasoning_effort: ReasoningEffort | None = None
    verbosity: Verbosity | None = None
    max_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.reasoning_effort is not None:
            object.__setattr__(
                self, "reasoning_effort", _coerce(ReasoningEffort, self.reasoning_effort, "reasoning effort")
            )
        if self.verbosity is not None:
            object.__setattr__(self, "verbosity", _coerce(Verbosity, self.verbosity, "verbosity"))
        if self.max_tokens is not None and not _is_positive_int(self.max_tokens):
            raise ConfigurationError(f"max_tokens override must be a positive integer, got {self.max_tokens!r}")

    @property
    def is_empty(self) -> bool:
        return (
            self.force_tier is None
            and self.reasoning_effort is None
            and self.verbosity is None
            and self.max_tokens is None
        )

    def field_changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if self.reasoning_effort is not None:
            changes["reasoning_effort"] = self.reasoning_effort
        if self.verbosity is not None:
            changes["verbosity"] = self.verbosity
        if self.max_tokens is not None:
            changes["max_tokens"] = self.max_tokens
        return changes


@dataclass(frozen=True)
class Request:
    """A classified inbound request. Built by the classifier, never mutated."""
    text: str
    word_count: int
    complexity_score: int
    has_speed_intent: bool = False
    has_document_intent: bool = False
    has_domain_intent: bool = False
    request_id: str = ""


@dataclass
class DispatchOutcome:
    """Result of one classified request."""
    text: str
    elapsed_ms: int
    tier_used: str
    complexity_score: int
    status: DispatchStatus = DispatchStatus.SUCCESS
    used_fallback: bool = False
    fallback_strategy: str | None = None
    request_id: str = ""
    error: str | None = None
    attempts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "text": self.text,
            "elapsedMs": self.elapsed_ms,
            "tierUsed": self.tier_used,
            "complexityScore": self.complexity_score,
            "usedFallback": self.used_fallback,
            "status": self.status.value,
            "requestId": self.request_id,
        }
        if self.fallback_strategy:
            data["fallbackStrategy"] = self.fallback_strategy
        return data


class CompletionBackend(ABC):
    """Abstract base class for the external completion service."""

    @abstractmethod
    async def complete(self, text: str, config: CompletionConfig) -> str:
        """Run a completion with a full tier configuration."""
        ...

    @abstractmethod
    async def quick_complete(self, text: str, config: CompletionConfig) -> str:
        """Simplest entry point, used only by the last-resort fallback."""
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__
