"""Cognitive Linguistic Index (CLI) scoring.

Computes six language sub-scores from a finished talk session and
combines them into one overall score. The CLI is internal only and is
never shown to the user.

Each sub-score is an independent heuristic in the 0-100 range. When a
session is too short to judge a dimension, the neutral score (50) is
returned instead of failing.
"""
import logging
import math
import re
import statistics
import time
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from sage.shared.models import CLIBreakdown, CLIScore, MessageRole, TalkMessage
from sage.shared.utils import lower_words, sentences, words
from .config import (
    CLAUSE_MARKERS,
    COMMON_WORDS,
    FILLER_PHRASES,
    REFERENTIAL_WORDS,
    ScoringConfig,
)

logger = logging.getLogger(__name__)

_CLAUSE_MARKER_RE = re.compile(
    r"\b(?:" + "|".join(CLAUSE_MARKERS) + r")\b",
    re.IGNORECASE,
)
_FILLER_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(f) for f in sorted(FILLER_PHRASES, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def count_filler_words(text: str) -> int:
    """Count filler words and phrases ("um", "you know", ...) in text."""
    return len(_FILLER_RE.findall(text))


class CLIScorer:
    """Scores a talk session on six cognitive-linguistic dimensions.

    Dimensions and default weights:
    - Lexical access (20%): vocabulary variety and word complexity
    - Fluency (20%): speech rate, pauses and filler words
    - Syntactic complexity (15%): sentence length and clause embedding
    - Coherence (20%): topic continuity and repetition
    - Processing speed (15%): response latency after the assistant speaks
    - Attention (10%): references back to earlier turns
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

        logger.info(
            "CLI_SCORER_INITIALIZED",
            extra={"weights": self.config.weights}
        )

    def score(
        self,
        messages: Sequence[TalkMessage],
        duration: float,
        pauses: int = 0,
        filler_words: int = 0,
        session_id: Optional[str] = None,
    ) -> CLIScore:
        """Compute the CLI for a conversation.

        Args:
            messages: Conversation turns in chronological order
            duration: Session length in seconds
            pauses: Number of speech pauses detected
            filler_words: Number of filler words spoken
            session_id: Talk session id, for logging only

        Returns:
            CLIScore with overall score and per-dimension breakdown

        Logs:
            - CLI_SCORE_COMPLETED: After scoring
        """
        start_time = time.perf_counter()
        full_text = " ".join(m.content for m in messages)

        breakdown = CLIBreakdown(
            lexical_access=self.lexical_access(full_text),
            fluency=self.fluency(full_text, pauses, duration, filler_words),
            syntactic_complexity=self.syntactic_complexity(full_text),
            coherence=self.coherence(messages),
            processing_speed=self.processing_speed(messages, duration),
            attention=self.attention(messages),
        )
        overall = self.combine(breakdown)

        logger.info(
            "CLI_SCORE_COMPLETED",
            extra={
                "session_id": session_id,
                "message_count": len(messages),
                "duration_seconds": duration,
                "overall": overall,
                "latency_ms": (time.perf_counter() - start_time) * 1000,
            }
        )

        return CLIScore(overall=overall, breakdown=breakdown)

    def combine(self, breakdown: CLIBreakdown) -> int:
        """Weighted sum of sub-scores, rounded half-up and clamped to 0-100."""
        sub_scores = breakdown.to_dict()
        weighted = sum(
            sub_scores[name] * weight
            for name, weight in self.config.weights.items()
        )
        return int(_clamp(_round_half_up(weighted)))

    def lexical_access(self, text: str) -> float:
        """Type-token ratio blended with word complexity.

        Words repeated more than ``repeated_word_limit`` times suggest
        circumlocution and are penalized.
        """
        tokens = lower_words(text)
        if not tokens:
            return 0.0

        type_token_ratio = len(set(tokens)) / len(tokens) * 100

        complexity = 0
        for token in tokens:
            if len(token) > 6:
                complexity += 2
            elif len(token) > 4:
                complexity += 1
            if token not in COMMON_WORDS:
                complexity += 1
        vocabulary = min(100.0, complexity / len(tokens) * 20)

        frequencies = Counter(tokens)
        high_frequency = sum(1 for count in frequencies.values() if count > self.config.repeated_word_limit)
        penalty = min(self.config.max_substitution_penalty, high_frequency * 2)

        return _clamp(type_token_ratio * 0.4 + vocabulary * 0.6 - penalty)

    def fluency(
        self,
        text: str,
        pauses: int,
        duration: float,
        filler_words: int,
    ) -> float:
        """Speech rate, pause frequency and filler density."""
        word_count = len(words(text))
        if word_count == 0 or duration <= 0:
            return 0.0

        words_per_minute = word_count / duration * 60
        pauses_per_minute = pauses / duration * 60
        filler_density = filler_words / word_count * 100

        score = 100.0

        if words_per_minute < self.config.min_words_per_minute:
            score -= 20
        elif words_per_minute > self.config.max_words_per_minute:
            score -= 15

        if pauses_per_minute > 10:
            score -= 30
        elif pauses_per_minute > 5:
            score -= 15

        if filler_density > 10:
            score -= 25
        elif filler_density > 5:
            score -= 10

        return _clamp(score)

    def syntactic_complexity(self, text: str) -> float:
        """Average sentence length and clauses per sentence."""
        parts = sentences(text)
        if not parts:
            return 0.0

        total_words = 0
        total_clauses = 0
        for sentence in parts:
            total_words += len(words(sentence))
            # +1 for the main clause
            total_clauses += len(_CLAUSE_MARKER_RE.findall(sentence)) + 1

        avg_sentence_length = total_words / len(parts)
        avg_clauses = total_clauses / len(parts)

        score = 0.0
        if avg_sentence_length > 15:
            score += 40
        elif avg_sentence_length > 10:
            score += 30
        elif avg_sentence_length > 5:
            score += 20

        if avg_clauses > 2:
            score += 40
        elif avg_clauses > 1.5:
            score += 30
        elif avg_clauses > 1:
            score += 20

        # At least subject, verb and complement somewhere
        if any(len(words(sentence)) >= 3 for sentence in parts):
            score += 20

        return _clamp(score)

    def coherence(self, messages: Sequence[TalkMessage]) -> float:
        """Topic drift between consecutive turns and repeated user turns."""
        if len(messages) < 2:
            return self.config.neutral_score

        score = 100.0

        # First five words stand in for the topic of a turn
        topics = [lower_words(m.content)[:5] for m in messages]
        topic_changes = 0
        for previous, current in zip(topics, topics[1:]):
            shared = [w for w in previous if w in current]
            if len(shared) < 2:
                topic_changes += 1

        if topic_changes > len(messages) * 0.5:
            score -= 30
        elif topic_changes > len(messages) * 0.3:
            score -= 15

        user_turns = [m.content.lower() for m in messages if m.role == MessageRole.USER]
        if len(user_turns) > len(set(user_turns)) * 1.5:
            score -= 20

        return _clamp(score)

    def processing_speed(self, messages: Sequence[TalkMessage], duration: float) -> float:
        """Mean and spread of user latency after each assistant turn."""
        if len(messages) < 2 or duration <= 0:
            return self.config.neutral_score

        user_count = sum(1 for m in messages if m.role == MessageRole.USER)
        if user_count < 2:
            return self.config.neutral_score

        latencies = self._response_latencies(messages)
        if not latencies:
            return self.config.neutral_score

        mean_latency = statistics.mean(latencies)

        score = 100.0
        if mean_latency > 10:
            score -= 40
        elif mean_latency > 5:
            score -= 25
        elif mean_latency > 3:
            score -= 10
        elif mean_latency < 0.5:
            score -= 15

        if len(latencies) > 1 and statistics.pstdev(latencies) > mean_latency * 0.5:
            score -= 10

        return _clamp(score)

    @staticmethod
    def _response_latencies(messages: Sequence[TalkMessage]) -> List[float]:
        latencies = []
        for previous, current in zip(messages, messages[1:]):
            if current.role == MessageRole.USER and previous.role == MessageRole.ASSISTANT:
                latencies.append((current.timestamp - previous.timestamp).total_seconds())
        return latencies

    def attention(self, messages: Sequence[TalkMessage]) -> float:
        """How often user turns refer back to the previous user turn."""
        if len(messages) < self.config.attention_min_messages:
            return self.config.neutral_score

        score = 100.0
        user_turns = [m.content.lower() for m in messages if m.role == MessageRole.USER]

        references = 0
        for previous, current in zip(user_turns, user_turns[1:]):
            current_words = lower_words(current)
            previous_words = set(lower_words(previous))

            has_reference = any(w in REFERENTIAL_WORDS for w in current_words)
            shared = [w for w in current_words if w in previous_words and len(w) > 3]

            if has_reference or len(shared) > 2:
                references += 1

        reference_rate = references / (len(user_turns) - 1) if len(user_turns) > 1 else 0.0

        if reference_rate < 0.2:
            score -= 30
        elif reference_rate < 0.4:
            score -= 15

        frequencies = Counter(lower_words(" ".join(user_turns)))
        overused = sum(
            1 for count in frequencies.values()
            if count > self.config.attention_repeated_word_limit
        )
        if overused > 5:
            score -= 20

        return _clamp(score)

    def calculate_baseline(self, scores: Iterable[Optional[float]]) -> Optional[float]:
        """Personal baseline: median of the first sessions' overall scores.

        Args:
            scores: Overall CLI scores in chronological order; None for
                sessions that were never scored

        Returns:
            Median of the first ``baseline_max_sessions`` valid scores, or
            None until ``baseline_min_sessions`` valid scores exist
        """
        valid = [s for s in scores if s is not None]
        if len(valid) < self.config.baseline_min_sessions:
            return None

        return statistics.median(valid[:self.config.baseline_max_sessions])
