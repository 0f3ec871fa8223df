"""Tokenization helpers shared by the analysis heuristics.

Words are runs of word characters between word boundaries; sentences are
split on runs of terminal punctuation.
"""
import re
from typing import List

_WORD_RE = re.compile(r"\b\w+\b")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def words(text: str) -> List[str]:
    """Return the words in ``text`` in their original case."""
    return _WORD_RE.findall(text)


def lower_words(text: str) -> List[str]:
    return _WORD_RE.findall(text.lower())


def sentences(text: str) -> List[str]:
    """Split ``text`` into non-blank sentences (untrimmed)."""
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
