"""Health keyword matching.

Passively scans what the user says for health-related mentions (pain,
sleep, mood, ...) and turns each mention into a candidate observation
the user can confirm as a health card.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from sage.shared.models import (
    DetectionConfidence,
    HealthCard,
    HealthCategory,
    HealthObservation,
    Severity,
)
from sage.shared.utils import hash_text_for_audit, sentences
from .config import (
    HEALTH_KEYWORDS,
    MILD_TERMS,
    MODERATE_TERMS,
    NEGATION_WORDS,
    SEVERE_TERMS,
    CategoryKeywords,
    MatcherConfig,
)

logger = logging.getLogger(__name__)


def _alternation(terms) -> Pattern:
    ordered = sorted(terms, key=len, reverse=True)
    return re.compile(
        r"\b(?:" + "|".join(re.escape(t) for t in ordered) + r")\b",
        re.IGNORECASE,
    )


_NEGATION_RE = _alternation(NEGATION_WORDS)
_SEVERE_RE = _alternation(SEVERE_TERMS)
_MILD_RE = _alternation(MILD_TERMS)
_MODERATE_RE = _alternation(MODERATE_TERMS)


@dataclass(frozen=True)
class _CompiledKeyword:
    keyword: str
    regex: Pattern
    category: CategoryKeywords


class HealthKeywordMatcher:
    """Extracts candidate health observations from free text.

    For each category, every keyword is tried in order. A keyword matches
    at the start of a word ("hurt" matches "hurts", "arm" does not match
    "warm"). The first sentence containing the keyword becomes the
    observation's description.
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self._compiled = self._compile_keywords()

        logger.info(
            "HEALTH_KEYWORD_MATCHER_INITIALIZED",
            extra={
                "category_count": len(HEALTH_KEYWORDS),
                "keyword_count": len(self._compiled),
                "pattern_version": self.config.pattern_version,
                "include_inferred": self.config.include_inferred,
            }
        )

    def _compile_keywords(self) -> List[_CompiledKeyword]:
        compiled = []
        for category in HEALTH_KEYWORDS:
            for keyword in category.keywords:
                regex = re.compile(rf"\b{re.escape(keyword)}\w*", re.IGNORECASE)
                compiled.append(_CompiledKeyword(keyword, regex, category))
        return compiled

    def extract(self, text: str) -> List[HealthObservation]:
        """Extract health observations from an utterance.

        Args:
            text: Raw utterance text

        Returns:
            Observations in category order. Negated mentions ("no pain")
            are dropped unless ``include_inferred`` is set, in which case
            they are returned flagged INFERRED.

        Logs:
            - HEALTH_OBSERVATIONS_DETECTED: When observations found
        """
        if not text or not text.strip():
            return []

        candidates = sentences(text)
        detected: List[HealthObservation] = []

        for compiled in self._compiled:
            if not compiled.regex.search(text):
                continue

            sentence = next((s for s in candidates if compiled.regex.search(s)), None)
            if sentence is None:
                continue

            explicit = _NEGATION_RE.search(sentence) is None
            if not explicit and not self.config.include_inferred:
                continue

            description = sentence.strip()
            category = compiled.category.category
            if self._already_detected(detected, category, compiled.keyword, description):
                continue

            detected.append(HealthObservation(
                category=category,
                description=description,
                severity=self._classify_severity(description, compiled.category.default_severity),
                confidence=DetectionConfidence.EXPLICIT if explicit else DetectionConfidence.INFERRED,
            ))

        if detected:
            logger.info(
                "HEALTH_OBSERVATIONS_DETECTED",
                extra={
                    "text_hash": hash_text_for_audit(text),
                    "observation_count": len(detected),
                    "categories": sorted({o.category.value for o in detected}),
                }
            )

        return detected

    @staticmethod
    def _already_detected(
        detected: List[HealthObservation],
        category: HealthCategory,
        keyword: str,
        description: str,
    ) -> bool:
        for existing in detected:
            if existing.category != category:
                continue
            if existing.description == description or keyword in existing.description.lower():
                return True
        return False

    @staticmethod
    def _classify_severity(sentence: str, default: Severity) -> Severity:
        if _SEVERE_RE.search(sentence):
            return Severity.HIGH
        if _MILD_RE.search(sentence):
            return Severity.LOW
        if _MODERATE_RE.search(sentence):
            return Severity.MODERATE
        return default


def create_health_card(
    observation: HealthObservation,
    source_session_id: Optional[str] = None,
) -> HealthCard:
    """Build an unconfirmed health card from an observation."""
    return HealthCard(
        category=observation.category,
        description=observation.description,
        severity=observation.severity,
        confidence=observation.confidence,
        source_session_id=source_session_id,
    )


def observation_categories(observations: List[HealthObservation]) -> Tuple[HealthCategory, ...]:
    """Distinct categories in first-seen order."""
    seen: List[HealthCategory] = []
    for observation in observations:
        if observation.category not in seen:
            seen.append(observation.category)
    return tuple(seen)
