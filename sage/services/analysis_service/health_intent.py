"""Health intent detection.

Classifies an utterance into a coarse health intent so the assistant can
ask a relevant follow-up, and pulls out a self-reported pain level.
"""
import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from sage.shared.models import HealthIntent

logger = logging.getLogger(__name__)


# Checked in priority order; the first intent with a matching keyword wins
INTENT_KEYWORDS: Tuple[Tuple[HealthIntent, Tuple[str, ...]], ...] = (
    (HealthIntent.SYMPTOM, (
        "dizzy", "nauseous", "tired", "weak", "fever", "headache",
        "pain", "ache", "sore", "unwell", "sick", "ill", "symptom",
    )),
    (HealthIntent.MEDICATION, (
        "pill", "medicine", "medication", "prescription", "drug",
        "take my", "did i take", "forgot to take", "dose",
    )),
    (HealthIntent.PAIN, (
        "pain", "hurts", "aching", "sore", "discomfort",
    )),
    (HealthIntent.APPOINTMENT, (
        "doctor", "appointment", "visit", "clinic", "hospital",
        "checkup", "see the doctor",
    )),
    (HealthIntent.MOOD, (
        "feel", "feeling", "emotion", "mood", "anxious", "worried",
        "sad", "happy", "depressed", "stressed",
    )),
    (HealthIntent.SLEEP, (
        "sleep", "slept", "insomnia", "tired", "exhausted",
        "rest", "nap", "awake",
    )),
    (HealthIntent.NUTRITION, (
        "eat", "ate", "food", "meal", "hungry", "appetite",
        "breakfast", "lunch", "dinner", "snack",
    )),
)

FOLLOW_UP_QUESTIONS: Dict[HealthIntent, List[str]] = {
    HealthIntent.SYMPTOM: [
        "When did this start?",
        "Have you eaten today?",
        "Are you taking any medications?",
        "How would you rate your discomfort on a scale of 1-10?",
    ],
    HealthIntent.MEDICATION: [
        "What medication are you referring to?",
        "When were you supposed to take it?",
        "Did you take it earlier today?",
        "Would you like me to remind you?",
    ],
    HealthIntent.PAIN: [
        "What is your pain level on a scale of 1-10?",
        "Where exactly does it hurt?",
        "When did the pain start?",
        "Does anything make it better or worse?",
    ],
    HealthIntent.APPOINTMENT: [
        "When is your appointment?",
        "What is it for?",
        "Do you need help preparing for it?",
        "Would you like me to remind you?",
    ],
    HealthIntent.MOOD: [
        "How are you feeling right now?",
        "What's on your mind?",
        "Is there something specific that's bothering you?",
        "Would you like to talk about it?",
    ],
    HealthIntent.SLEEP: [
        "How many hours did you sleep last night?",
        "Did you have trouble falling asleep?",
        "Did you wake up during the night?",
        "How do you feel when you wake up?",
    ],
    HealthIntent.NUTRITION: [
        "What did you eat today?",
        "Are you feeling hungry?",
        "Are you having any trouble eating?",
        "How is your appetite?",
    ],
    HealthIntent.GENERAL: [
        "How are you feeling overall?",
        "Is there anything you'd like to tell me about your health?",
        "Have you noticed any changes recently?",
    ],
}

_PAIN_LEVEL_RE = re.compile(r"(?:pain|hurt|discomfort).*?(\d+)")
_SCALE_LEVEL_RE = re.compile(r"scale.*?(\d+)")


def _compile_intents() -> List[Tuple[HealthIntent, Pattern]]:
    compiled = []
    for intent, keywords in INTENT_KEYWORDS:
        alternation = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
        compiled.append((intent, re.compile(rf"\b(?:{alternation})\w*", re.IGNORECASE)))
    return compiled


_COMPILED_INTENTS = _compile_intents()


def detect_health_intent(transcript: str) -> Optional[HealthIntent]:
    """Return the highest-priority health intent in ``transcript``, if any.

    Keywords match at the start of a word, so "pills" and "eating" count
    but the "ate" inside "lately" does not.
    """
    for intent, regex in _COMPILED_INTENTS:
        if regex.search(transcript):
            logger.debug("HEALTH_INTENT_DETECTED", extra={"intent": intent.value})
            return intent
    return None


def follow_up_questions(intent: Optional[HealthIntent]) -> List[str]:
    """Follow-up questions for an intent; general questions when unknown."""
    if intent is None:
        return list(FOLLOW_UP_QUESTIONS[HealthIntent.GENERAL])
    return list(FOLLOW_UP_QUESTIONS.get(intent, FOLLOW_UP_QUESTIONS[HealthIntent.GENERAL]))


def extract_pain_level(transcript: str) -> Optional[int]:
    """Extract a self-reported pain level from 1 to 10.

    Looks for a number after "pain", "hurt" or "discomfort" first, then
    after "scale". Numbers outside 1-10 are ignored.
    """
    lowered = transcript.lower()
    for regex in (_PAIN_LEVEL_RE, _SCALE_LEVEL_RE):
        match = regex.search(lowered)
        if match:
            level = int(match.group(1))
            if 1 <= level <= 10:
                return level
    return None
