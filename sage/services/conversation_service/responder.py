"""Sage responder: LLM replies with canned fallbacks.

The conversation never stalls. When the LLM is missing or fails, or
returns empty text, a canned reply chosen from the user's last
utterance is used instead.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from sage.shared.models import TalkMessage
from sage.shared.utils import hash_text_for_audit
from .base_llm import BaseLLM, LLMConfig, create_llm
from .fallback import fallback_response

logger = logging.getLogger(__name__)


SAGE_SYSTEM_PROMPT = """You are Sage, a warm, patient conversational companion for older adults.

- Be a supportive, attentive listener and show genuine interest
- Keep replies to two or three short, natural sentences
- Ask a gentle follow-up question when it fits
- Never mention analysis, scoring, health cards, or caregivers
- Never diagnose or alarm the user

This is a voice conversation, so keep your wording simple and spoken."""


class ResponseSource(Enum):
    """Source of the response."""
    LLM_GENERATED = "llm_generated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class SageReply:
    """Reply text with where it came from."""
    text: str
    source: ResponseSource
    latency_ms: Optional[float] = None


class SageResponder:
    """Generates Sage's side of the conversation."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        config: Optional[LLMConfig] = None,
        system_prompt: str = SAGE_SYSTEM_PROMPT,
        rng: Optional[random.Random] = None,
    ):
        """Initialize responder.

        Args:
            llm: LLM to use; built from ``config`` when None
            config: LLM configuration (read from env when both are None)
            system_prompt: Persona prompt sent with every request
            rng: Random source for default fallback replies
        """
        self.system_prompt = system_prompt
        self.rng = rng
        self.llm = llm if llm is not None else self._initialize_llm(config or LLMConfig.from_env())

        logger.info(
            "SAGE_RESPONDER_INITIALIZED",
            extra={"llm_enabled": self.llm is not None}
        )

    @staticmethod
    def _initialize_llm(config: LLMConfig) -> Optional[BaseLLM]:
        if not config.is_configured:
            logger.warning(
                "LLM_NOT_CONFIGURED",
                extra={"provider": config.provider.value}
            )
            return None

        try:
            return create_llm(config)
        except Exception as e:
            # Fallback replies are used while the LLM is unavailable
            logger.error(
                "LLM_INITIALIZATION_FAILED",
                extra={
                    "provider": config.provider.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

    async def generate_response(
        self,
        user_message: str,
        history: Optional[Sequence[TalkMessage]] = None,
    ) -> SageReply:
        """Reply to the user's latest utterance.

        Args:
            user_message: What the user just said
            history: Earlier turns, oldest first, excluding ``user_message``

        Returns:
            SageReply; never raises for provider failures
        """
        text_hash = hash_text_for_audit(user_message)

        if self.llm is None:
            return self._fallback(user_message, text_hash, reason="llm_unavailable")

        try:
            response = await self.llm.generate(
                user_message,
                system_prompt=self.system_prompt,
                history=history,
            )
        except Exception as e:
            logger.error(
                "RESPONSE_GENERATION_FAILED",
                extra={
                    "text_hash": text_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return self._fallback(user_message, text_hash, reason="llm_error")

        if not response.text.strip():
            return self._fallback(user_message, text_hash, reason="empty_response")

        logger.info(
            "RESPONSE_GENERATED",
            extra={
                "text_hash": text_hash,
                "model": response.model,
                "latency_ms": response.latency_ms,
            }
        )
        return SageReply(
            text=response.text.strip(),
            source=ResponseSource.LLM_GENERATED,
            latency_ms=response.latency_ms,
        )

    def _fallback(self, user_message: str, text_hash: str, reason: str) -> SageReply:
        logger.warning(
            "RESPONSE_FALLBACK_USED",
            extra={"text_hash": text_hash, "reason": reason}
        )
        return SageReply(
            text=fallback_response(user_message, self.rng),
            source=ResponseSource.FALLBACK,
        )
