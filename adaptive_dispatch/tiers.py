"""Tier registry and dispatch configuration: the single source of truth for budgets.

Everything here is immutable. A ``DispatchConfig`` is built once and handed to
the classifier, cascade and dispatcher; nothing reads tier tables from module
state at runtime.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from adaptive_dispatch.errors import ConfigurationError
from adaptive_dispatch.models import ReasoningEffort, TierDescriptor, TierOverrides, Verbosity

# Tier names the classifier and cascade refer to.
FAST = "fast"
BALANCED = "balanced"
COMPLEX = "complex"
DOCUMENT = "document"
DOCUMENT_EXTENDED = "document_extended"
CAPABLE = "capable"

REQUIRED_TIERS = (FAST, BALANCED, COMPLEX, DOCUMENT, DOCUMENT_EXTENDED, CAPABLE)

# Ordered cheapest/fastest → most capable/slowest.
DEFAULT_TIERS: tuple[TierDescriptor, ...] = (
    TierDescriptor(FAST, "gpt-5-nano", ReasoningEffort.MINIMAL, Verbosity.LOW, 600, 8.0),
    TierDescriptor(BALANCED, "gpt-5-mini", ReasoningEffort.LOW, Verbosity.MEDIUM, 1200, 15.0),
    TierDescriptor(COMPLEX, "gpt-5-mini", ReasoningEffort.MEDIUM, Verbosity.MEDIUM, 2000, 25.0),
    TierDescriptor(DOCUMENT, "gpt-5-mini", ReasoningEffort.LOW, Verbosity.MEDIUM, 3000, 30.0),
    TierDescriptor(DOCUMENT_EXTENDED, "gpt-5-mini", ReasoningEffort.MEDIUM, Verbosity.HIGH, 5000, 45.0),
    TierDescriptor(CAPABLE, "gpt-5", ReasoningEffort.MEDIUM, Verbosity.MEDIUM, 6000, 60.0),
)

SPEED_KEYWORDS: tuple[str, ...] = (
    "quick", "fast", "urgent", "now", "asap", "immediate",
    "hello", "hi", "thanks", "yes", "no", "ok", "time", "date",
)

# Each category contributes at most +1 to the complexity score. Stems take
# any suffix so inflected forms ("assessment", "compared") still count.
COMPLEXITY_PATTERNS: tuple[tuple[str, str], ...] = (
    ("analytical", r"\b(?:analy[sz](?:e|ed|es|ing)\b|evaluat\w*|assess\w*|compar\w*|optimi[sz]\w*)"),
    ("finance_terms", r"\b(?:portfolio\w*|strateg(?:y|ies|ic\w*)|analys[ie]s|calculat\w*|projection\w*|forecast\w*)"),
    ("depth", r"\b(?:comprehensive\w*|detail\w*|thorough\w*)"),
    ("sophistication", r"\b(?:multi\w*|complex\w*|sophisticat\w*)"),
    ("step_by_step", r"\b(?:step[- ]by[- ]step|walk me through|break (?:it |this )?down)\b"),
)

DOCUMENT_VERBS = r"\b(?:draft|creat|writ|wrote|compos|generat|develop|prepar)\w*"
DOCUMENT_NOUNS = (
    r"\b(?:memo|report|plan|proposal|checklist|letter|summary|agreement|"
    r"term sheet|presentation|document|policy|template|brief)s?\b"
)

DOMAIN_TERMS = (
    r"\b(?:fund|portfolio|lending|loan|borrower|collateral|valuation|irr|nav|"
    r"investor|lp|gp|deal|yield|interest rate|due diligence|credit)s?\b"
)


def _normalize(s: str) -> str:
    """Strip hyphens, underscores, spaces, dots and lowercase."""
    return s.lower().replace("-", "").replace("_", "").replace(" ", "").replace(".", "")


class TierRegistry:
    """Ordered, read-only table of execution tiers."""

    def __init__(self, tiers: Iterable[TierDescriptor]) -> None:
        self._tiers: tuple[TierDescriptor, ...] = tuple(tiers)
        self._validate()
        self._by_name = {t.name: t for t in self._tiers}
        self._normalized = {_normalize(t.name): t.name for t in self._tiers}

    @classmethod
    def from_dicts(cls, entries: list[dict[str, Any]]) -> TierRegistry:
        """Build a registry from plain mappings (e.g. a parsed config file)."""
        tiers = []
        for i, entry in enumerate(entries):
            try:
                tiers.append(TierDescriptor(
                    name=entry["name"],
                    model=entry["model"],
                    reasoning_effort=entry.get("reasoning_effort", ReasoningEffort.LOW),
                    verbosity=entry.get("verbosity", Verbosity.MEDIUM),
                    max_tokens=int(entry["max_tokens"]),
                    timeout_s=float(entry["timeout_s"]),
                ))
            except ConfigurationError:
                raise
            except KeyError as e:
                raise ConfigurationError(f"Tier entry {i} is missing field {e}") from e
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Tier entry {i} is invalid: {e}") from e
        return cls(tiers)

    def _validate(self) -> None:
        if len(self._tiers) < 3:
            raise ConfigurationError(f"At least three tiers are required, got {len(self._tiers)}")
        names = [t.name for t in self._tiers]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate tier names: {names}")
        missing = [n for n in REQUIRED_TIERS if n not in names]
        if missing:
            raise ConfigurationError(f"Registry is missing required tiers: {', '.join(missing)}")
        for prev, cur in zip(self._tiers, self._tiers[1:]):
            if cur.timeout_s < prev.timeout_s:
                raise ConfigurationError(
                    f"Tier '{cur.name}' timeout {cur.timeout_s}s is below '{prev.name}' ({prev.timeout_s}s)"
                )
            if cur.max_tokens < prev.max_tokens:
                raise ConfigurationError(
                    f"Tier '{cur.name}' max_tokens {cur.max_tokens} is below '{prev.name}' ({prev.max_tokens})"
                )

    def __iter__(self):
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def __getitem__(self, name: str) -> TierDescriptor:
        return self._by_name[name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._tiers]

    @property
    def lowest(self) -> TierDescriptor:
        return self._tiers[0]

    @property
    def highest(self) -> TierDescriptor:
        return self._tiers[-1]

    def rank(self, name: str) -> int:
        return self.names.index(name)

    def resolve(self, raw: str) -> TierDescriptor:
        """Resolve a user-typed tier name.

        Tries an exact match, then a normalized match, then a single close
        fuzzy match. Anything else raises ConfigurationError with a hint.
        """
        if not raw:
            raise ConfigurationError("Empty tier name")
        if raw in self._by_name:
            return self._by_name[raw]

        normed = _normalize(raw)
        if normed in self._normalized:
            return self._by_name[self._normalized[normed]]

        candidates = difflib.get_close_matches(normed, self._normalized.keys(), n=2, cutoff=0.7)
        if len(candidates) == 1:
            return self._by_name[self._normalized[candidates[0]]]
        if len(candidates) > 1:
            suggestions = [self._normalized[c] for c in candidates]
            raise ConfigurationError(f"Ambiguous tier '{raw}'. Did you mean: {', '.join(suggestions)}?")

        raise ConfigurationError(f"Unknown tier '{raw}'. Valid tiers: {', '.join(self.names)}")


@dataclass(frozen=True)
class DispatchConfig:
    """Everything the classifier, dispatcher and cascade need, fixed at start-up."""

    registry: TierRegistry
    speed_keywords: frozenset[str] = frozenset(SPEED_KEYWORDS)
    complexity_patterns: tuple[tuple[str, str], ...] = COMPLEXITY_PATTERNS
    document_verbs: str = DOCUMENT_VERBS
    document_nouns: str = DOCUMENT_NOUNS
    domain_terms: str = DOMAIN_TERMS

    low_word_threshold: int = 15
    mid_word_threshold: int = 50
    avoid_highest_ceiling: int = 4
    document_word_threshold: int = 30
    document_score_threshold: int = 4

    # Reduced budgets for the cascade
    nano_retry_tokens: int = 300
    mini_retry_tokens: int = 600
    quick_path_tokens: int = 300
    document_fallback_tokens: int = 1500

    cancel_on_timeout: bool = False

    # None → the stock presets; an empty mapping means no presets at all
    presets: Mapping[str, TierOverrides] | None = None

    def __post_init__(self) -> None:
        if self.low_word_threshold > self.mid_word_threshold:
            raise ConfigurationError(
                f"low_word_threshold ({self.low_word_threshold}) exceeds "
                f"mid_word_threshold ({self.mid_word_threshold})"
            )
        for label in ("nano_retry_tokens", "mini_retry_tokens", "quick_path_tokens", "document_fallback_tokens"):
            if getattr(self, label) <= 0:
                raise ConfigurationError(f"{label} must be positive")
        presets = default_presets() if self.presets is None else dict(self.presets)
        for preset in presets.values():
            if preset.force_tier is not None:
                self.registry.resolve(preset.force_tier)
        object.__setattr__(self, "presets", MappingProxyType(presets))

    @classmethod
    def default(cls, **kwargs: Any) -> DispatchConfig:
        return cls(registry=TierRegistry(DEFAULT_TIERS), **kwargs)

    def apply_overrides(self, tier: TierDescriptor, overrides: TierOverrides | None) -> TierDescriptor:
        """Merge caller overrides into a fresh descriptor copy."""
        if overrides is None or overrides.is_empty:
            return tier
        if overrides.force_tier is not None:
            tier = self.registry.resolve(overrides.force_tier)
        changes = overrides.field_changes()
        return tier.derive(**changes) if changes else tier


def default_presets() -> dict[str, TierOverrides]:
    return {
        "ultra_fast": TierOverrides(FAST, ReasoningEffort.MINIMAL, Verbosity.LOW, 300),
        "fast": TierOverrides(FAST, ReasoningEffort.MINIMAL, Verbosity.MEDIUM, 600),
        "balanced": TierOverrides(BALANCED, ReasoningEffort.LOW, Verbosity.MEDIUM, 1000),
    }
