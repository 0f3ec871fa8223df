"""Keeping user identity and speech out of application logs.

Log records carry ``hash_pii(user_id)`` instead of the id, and
``hash_text_for_audit(text)`` instead of anything the user said. The
salt for ``hash_pii`` is process-wide and set once at startup.
"""
import hashlib
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32
DEV_SALT = "default_dev_salt_change_in_production_32chars"

_salt: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Set the salt used by hash_pii().

    Raises:
        ValueError: If the salt is shorter than MIN_SALT_LENGTH
    """
    global _salt
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _salt = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def configure_pii_salt_from_env(var: str = "PII_HASH_SALT") -> None:
    """Configure the salt from ``var``, using the development salt if unset."""
    salt = os.getenv(var)
    if salt is None:
        logger.warning("PII_SALT_DEV_DEFAULT", extra={"variable": var})
        salt = DEV_SALT
    configure_pii_salt(salt)


def hash_pii(value: str) -> str:
    """Salted SHA-256 hex digest of an identifier.

    Raises:
        RuntimeError: If configure_pii_salt() has not been called
    """
    if _salt is None:
        raise RuntimeError("PII salt not configured; call configure_pii_salt() at startup")
    return hashlib.sha256(f"{_salt}{value}".encode("utf-8")).hexdigest()


def hash_text_for_audit(text: str) -> str:
    # Unsalted so the same utterance matches across services
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
