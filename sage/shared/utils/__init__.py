"""Shared utilities for Sage services."""
from .pii import hash_pii, hash_text_for_audit, configure_pii_salt, configure_pii_salt_from_env
from .text import words, lower_words, sentences

__all__ = [
    "hash_pii",
    "hash_text_for_audit",
    "configure_pii_salt",
    "configure_pii_salt_from_env",
    "words",
    "lower_words",
    "sentences",
]
