"""Request classification: complexity score → tier + justification.

``Classifier.classify`` is pure. It does no I/O, uses no randomness and keeps
no state, so identical text always yields an identical classification.
The caller supplies the request id used for tracing.
"""

import re
from dataclasses import dataclass

from adaptive_dispatch.models import ReasoningEffort, Request, TierDescriptor, Verbosity
from adaptive_dispatch.tiers import (
    BALANCED,
    CAPABLE,
    COMPLEX,
    DOCUMENT,
    DOCUMENT_EXTENDED,
    DispatchConfig,
)

_WORD_RE = re.compile(r"[a-z0-9']+")


@dataclass(frozen=True)
class Classification:
    """Result of classifying one request."""

    request: Request
    tier: TierDescriptor
    justification: str

    @property
    def complexity_score(self) -> int:
        return self.request.complexity_score

    @property
    def reasoning(self) -> ReasoningEffort:
        return self.tier.reasoning_effort

    @property
    def verbosity(self) -> Verbosity:
        return self.tier.verbosity

    @property
    def max_tokens(self) -> int:
        return self.tier.max_tokens

    @property
    def timeout_s(self) -> float:
        return self.tier.timeout_s


class Classifier:
    """Scores request text and picks an execution tier."""

    def __init__(self, config: DispatchConfig) -> None:
        self._config = config
        self._patterns = [
            (name, re.compile(pattern)) for name, pattern in config.complexity_patterns
        ]
        self._doc_verbs = re.compile(config.document_verbs)
        self._doc_nouns = re.compile(config.document_nouns)
        self._domain = re.compile(config.domain_terms)

    @staticmethod
    def length_score(word_count: int) -> int:
        # Highest band only, bands do not stack
        if word_count > 100:
            return 3
        if word_count > 50:
            return 2
        if word_count > 20:
            return 1
        return 0

    def _speed_keyword(self, message: str) -> str | None:
        for word in _WORD_RE.findall(message):
            if word in self._config.speed_keywords:
                return word
        return None

    def matched_categories(self, message: str) -> list[str]:
        return [name for name, rx in self._patterns if rx.search(message)]

    def classify(self, text: str, request_id: str = "") -> Classification:
        cfg = self._config
        registry = cfg.registry
        message = (text or "").strip().lower()
        word_count = len(message.split())

        keyword = self._speed_keyword(message)
        if keyword is not None:
            request = Request(
                text=text, word_count=word_count, complexity_score=0,
                has_speed_intent=True, request_id=request_id,
            )
            return Classification(
                request, registry.lowest,
                f"Speed keyword '{keyword}' detected - using fastest tier",
            )

        score = self.length_score(word_count)
        categories = self.matched_categories(message)
        score += len(categories)

        is_document = bool(self._doc_verbs.search(message) and self._doc_nouns.search(message))
        if is_document:
            score += 2
        is_domain = bool(self._domain.search(message))
        if is_domain:
            score += 1

        request = Request(
            text=text,
            word_count=word_count,
            complexity_score=score,
            has_document_intent=is_document,
            has_domain_intent=is_domain,
            request_id=request_id,
        )
        detail = f"{word_count} words, score {score}"
        if categories:
            detail += f", matched {', '.join(categories)}"

        # Document intent outranks the short-request rule: documents never
        # route to the lowest tier.
        if is_document:
            if word_count > cfg.document_word_threshold or score > cfg.document_score_threshold:
                return Classification(
                    request, registry[DOCUMENT_EXTENDED],
                    f"Document request with extended scope ({detail}) - enlarged document budget",
                )
            return Classification(
                request, registry[DOCUMENT],
                f"Document request ({detail}) - document tier",
            )

        if word_count <= cfg.low_word_threshold or score == 0:
            return Classification(request, registry.lowest, f"Simple request ({detail}) - fastest tier")

        if word_count <= cfg.mid_word_threshold or score <= 2:
            return Classification(request, registry[BALANCED], f"Medium request ({detail}) - balanced tier")

        if score <= cfg.avoid_highest_ceiling:
            return Classification(
                request, registry[COMPLEX],
                f"Complex request ({detail}) - balanced model with elevated reasoning",
            )

        return Classification(
            request, registry[CAPABLE],
            f"Highly complex request ({detail}) - most capable tier",
        )
