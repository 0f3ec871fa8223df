"""Canned replies used when no LLM is configured or a call fails."""
import random
import re
from typing import Optional, Pattern, Tuple

# Checked in order against the user's last utterance
FALLBACK_RULES: Tuple[Tuple[Pattern, str], ...] = (
    (re.compile(r"\b(pain|ache|hurt|sore)\b", re.IGNORECASE),
     "I'm sorry to hear that. Can you tell me more about what's bothering you?"),
    (re.compile(r"\b(sleep|tired|exhausted)\b", re.IGNORECASE),
     "How have you been sleeping lately?"),
    (re.compile(r"\b(mood|feeling|feel)\b", re.IGNORECASE),
     "How are you feeling today?"),
    (re.compile(r"\b(good|great|fine|well|okay|ok)\b", re.IGNORECASE),
     "That's wonderful to hear! What have you been up to?"),
    (re.compile(r"\b(bad|not good|terrible|awful)\b", re.IGNORECASE),
     "I'm sorry to hear that. Would you like to talk about it?"),
    (re.compile(r"\?"),
     "That's an interesting question. What do you think about that?"),
)

DEFAULT_RESPONSES: Tuple[str, ...] = (
    "Tell me more about that.",
    "That sounds interesting. What else is on your mind?",
    "I'd like to hear more.",
    "How does that make you feel?",
    "What else would you like to share?",
    "That's really nice to hear.",
    "I understand. Can you tell me more?",
)


def fallback_response(user_message: str, rng: Optional[random.Random] = None) -> str:
    """Pick a canned reply for ``user_message``."""
    for pattern, response in FALLBACK_RULES:
        if pattern.search(user_message):
            return response
    return (rng or random).choice(DEFAULT_RESPONSES)
