"""Analysis Service: health observations and cognitive-linguistic scoring.

Key responsibilities:
- Passive health keyword matching on every user utterance
- Health intent detection with follow-up questions
- Cognitive Linguistic Index (CLI) scoring when a talk session ends

Endpoints:
- POST /extract-health - Candidate health observations for an utterance
- POST /detect-intent - Health intent, follow-ups and pain level
- POST /score - CLI score for a finished session
- GET /health - Health check
"""

from .config import MatcherConfig, ScoringConfig
from .health_extraction import HealthKeywordMatcher, create_health_card
from .health_intent import detect_health_intent, follow_up_questions, extract_pain_level
from .cli_scoring import CLIScorer, count_filler_words

__all__ = [
    "MatcherConfig",
    "ScoringConfig",
    "HealthKeywordMatcher",
    "create_health_card",
    "detect_health_intent",
    "follow_up_questions",
    "extract_pain_level",
    "CLIScorer",
    "count_filler_words",
]
