"""Analysis Service configuration: keyword lists and scoring parameters.

Keyword lists are static and versioned with ``pattern_version``. CLI
weights and thresholds are heuristics, not validated clinical constants.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Tuple

from sage.shared.models import HealthCategory, Severity


@dataclass(frozen=True)
class CategoryKeywords:
    """Keyword list and default severity for one health category."""
    category: HealthCategory
    keywords: Tuple[str, ...]
    default_severity: Severity


# Order matters: categories and keywords are scanned in this order
HEALTH_KEYWORDS: Tuple[CategoryKeywords, ...] = (
    CategoryKeywords(
        category=HealthCategory.PAIN,
        keywords=(
            "pain", "ache", "aching", "sore", "hurt", "hurting", "discomfort",
            "tender", "stiff", "sharp", "dull", "throbbing", "burning",
        ),
        default_severity=Severity.MODERATE,
    ),
    CategoryKeywords(
        category=HealthCategory.SLEEP,
        keywords=(
            "sleep", "slept", "sleeping", "insomnia", "tired", "exhausted",
            "restless", "wake", "waking", "nightmare", "dream", "nap", "snooze",
        ),
        default_severity=Severity.LOW,
    ),
    CategoryKeywords(
        category=HealthCategory.MOOD,
        keywords=(
            "happy", "sad", "depressed", "anxious", "worried", "stressed",
            "calm", "peaceful", "frustrated", "angry", "upset", "down", "blue",
            "mood",
        ),
        default_severity=Severity.LOW,
    ),
    CategoryKeywords(
        category=HealthCategory.ENERGY,
        keywords=(
            "energy", "energetic", "tired", "fatigue", "exhausted", "lethargic",
            "weak", "drained", "lively", "active", "sluggish",
        ),
        default_severity=Severity.LOW,
    ),
    CategoryKeywords(
        category=HealthCategory.APPETITE,
        keywords=(
            "appetite", "hungry", "eating", "food", "meal", "nausea", "nauseous",
            "stomach", "digestion", "indigestion", "appetite loss",
        ),
        default_severity=Severity.LOW,
    ),
    CategoryKeywords(
        category=HealthCategory.MOBILITY,
        keywords=(
            "walk", "walking", "move", "moving", "mobility", "stiff", "stiffness",
            "joint", "knee", "hip", "back", "shoulder", "limb", "leg", "arm",
        ),
        default_severity=Severity.MODERATE,
    ),
    CategoryKeywords(
        category=HealthCategory.MEDICATION,
        keywords=(
            "medication", "medicine", "pill", "prescription", "drug", "dose",
            "dosage", "take", "taking", "forgot", "missed", "pharmacy",
        ),
        default_severity=Severity.HIGH,
    ),
    CategoryKeywords(
        category=HealthCategory.SYMPTOM,
        keywords=(
            "symptom", "fever", "cough", "headache", "dizziness", "nausea",
            "vomiting", "diarrhea", "constipation", "rash", "swelling",
            "inflammation",
        ),
        default_severity=Severity.MODERATE,
    ),
)

NEGATION_WORDS: FrozenSet[str] = frozenset({
    "no", "not", "don't", "doesn't", "didn't", "won't", "can't",
    "isn't", "aren't", "wasn't", "weren't",
})

# Checked in this order; the first list that matches sets the severity
SEVERE_TERMS: Tuple[str, ...] = (
    "severe", "terrible", "awful", "extreme", "intense", "unbearable",
    "bad", "really bad", "very bad",
)
MILD_TERMS: Tuple[str, ...] = (
    "mild", "slight", "little", "bit", "somewhat", "moderate",
)
MODERATE_TERMS: Tuple[str, ...] = (
    "moderate", "medium", "okay", "ok",
)


@dataclass(frozen=True)
class MatcherConfig:
    """Configuration for health keyword matching."""
    # Return negated mentions too, flagged INFERRED
    include_inferred: bool = False
    pattern_version: str = "2026.10.01"


# Words that carry little lexical information
COMMON_WORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "can", "this", "that", "these", "those", "i", "you", "he", "she",
    "it", "we", "they",
})

CLAUSE_MARKERS: Tuple[str, ...] = (
    "and", "or", "but", "because", "since", "when", "where", "which", "that",
    "who", "whom", "whose",
)

REFERENTIAL_WORDS: FrozenSet[str] = frozenset({
    "that", "this", "it", "they", "them", "those", "these", "he", "she",
    "him", "her",
})

FILLER_PHRASES: Tuple[str, ...] = (
    "um", "umm", "uh", "uhh", "er", "erm", "ah", "hmm", "like",
    "you know", "i mean", "sort of", "kind of",
)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and thresholds for the Cognitive Linguistic Index.

    Weights must sum to 1.0.
    """
    lexical_access_weight: float = 0.20
    fluency_weight: float = 0.20
    syntactic_complexity_weight: float = 0.15
    coherence_weight: float = 0.20
    processing_speed_weight: float = 0.15
    attention_weight: float = 0.10

    # Score returned when there is not enough conversation to judge
    neutral_score: float = 50.0

    # Lexical access
    repeated_word_limit: int = 5
    max_substitution_penalty: float = 20.0

    # Fluency (words per minute band, pauses per minute, filler %)
    min_words_per_minute: float = 100.0
    max_words_per_minute: float = 250.0

    # Attention
    attention_min_messages: int = 4
    attention_repeated_word_limit: int = 10

    # Personal baseline
    baseline_min_sessions: int = 7
    baseline_max_sessions: int = 10

    weights_tolerance: float = field(default=0.001, repr=False)

    def __post_init__(self):
        total = sum(self.weights.values())
        if abs(total - 1.0) > self.weights_tolerance:
            raise ValueError(f"CLI weights must sum to 1.0, got {total:.3f}")

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "lexical_access": self.lexical_access_weight,
            "fluency": self.fluency_weight,
            "syntactic_complexity": self.syntactic_complexity_weight,
            "coherence": self.coherence_weight,
            "processing_speed": self.processing_speed_weight,
            "attention": self.attention_weight,
        }

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Create config from environment variables.

        Environment variables:
            CLI_WEIGHT_LEXICAL_ACCESS, CLI_WEIGHT_FLUENCY,
            CLI_WEIGHT_SYNTACTIC_COMPLEXITY, CLI_WEIGHT_COHERENCE,
            CLI_WEIGHT_PROCESSING_SPEED, CLI_WEIGHT_ATTENTION
        """
        defaults = cls()
        return cls(
            lexical_access_weight=_env_float("CLI_WEIGHT_LEXICAL_ACCESS", defaults.lexical_access_weight),
            fluency_weight=_env_float("CLI_WEIGHT_FLUENCY", defaults.fluency_weight),
            syntactic_complexity_weight=_env_float(
                "CLI_WEIGHT_SYNTACTIC_COMPLEXITY", defaults.syntactic_complexity_weight
            ),
            coherence_weight=_env_float("CLI_WEIGHT_COHERENCE", defaults.coherence_weight),
            processing_speed_weight=_env_float("CLI_WEIGHT_PROCESSING_SPEED", defaults.processing_speed_weight),
            attention_weight=_env_float("CLI_WEIGHT_ATTENTION", defaults.attention_weight),
        )
