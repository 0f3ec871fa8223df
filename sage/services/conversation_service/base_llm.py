"""Chat-completion clients for Sage's responder.

``BaseLLM.generate`` validates the prompt, times the call and logs the
outcome; each provider only implements ``_complete``. Provider errors
propagate to the caller.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
import openai

from sage.shared.models import MessageRole, TalkMessage

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 10000


class LLMProvider(Enum):
    OPENAI = "openai"
    GEMINI = "gemini"


DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.GEMINI: "gemini-1.5-flash",
}

API_KEY_VARS = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.GEMINI: "GEMINI_API_KEY",
}

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"


@dataclass
class LLMConfig:
    """Provider, model and sampling settings."""
    provider: LLMProvider
    model_name: str
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    max_tokens: int = 150
    temperature: float = 0.7
    top_p: float = 0.9
    timeout_seconds: int = 30
    # Most recent messages sent as conversation context
    history_limit: int = 10

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> 'LLMConfig':
        """Create configuration from environment variables.

        Environment variables:
            SAGE_LLM_PROVIDER: "openai" (default) or "gemini"
            SAGE_LLM_MODEL: Model name (provider default when unset)
            OPENAI_API_KEY / GEMINI_API_KEY: Key for the chosen provider
        """
        provider = LLMProvider(os.environ.get("SAGE_LLM_PROVIDER", "openai").lower())
        api_key = (os.environ.get(API_KEY_VARS[provider]) or "").strip() or None
        return cls(
            provider=provider,
            model_name=os.environ.get("SAGE_LLM_MODEL") or DEFAULT_MODELS[provider],
            api_key=api_key,
        )


@dataclass
class LLMResponse:
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    latency_ms: Optional[float] = None


class BaseLLM(ABC):
    """A chat model that answers the user's latest utterance."""

    def __init__(self, config: LLMConfig):
        if not config.api_key:
            raise ValueError(f"{config.provider.value} API key required")
        self.config = config

        logger.info(
            "LLM_INITIALIZED",
            extra={
                "provider": config.provider.value,
                "model": config.model_name,
            }
        )

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        system_prompt: Optional[str],
        history: List[TalkMessage],
    ) -> Tuple[str, Optional[int]]:
        """Call the provider; return the reply text and tokens used."""
        pass

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Optional[Sequence[TalkMessage]] = None,
    ) -> LLMResponse:
        """Reply to ``prompt``.

        Args:
            prompt: User's latest utterance
            system_prompt: Persona instructions
            history: Earlier turns, oldest first; only the last
                ``history_limit`` are sent

        Raises:
            ValueError: If the prompt is blank or too long
        """
        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        start = time.time()
        try:
            text, tokens_used = await self._complete(prompt, system_prompt, self.recent_history(history))
        except Exception as e:
            logger.error(
                "LLM_GENERATION_FAILED",
                extra={
                    "provider": self.config.provider.value,
                    "model": self.config.model_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise

        latency_ms = (time.time() - start) * 1000
        logger.info(
            "LLM_GENERATION_SUCCEEDED",
            extra={
                "provider": self.config.provider.value,
                "model": self.config.model_name,
                "latency_ms": latency_ms,
                "tokens_used": tokens_used,
            }
        )
        return LLMResponse(
            text=text.strip(),
            model=self.config.model_name,
            provider=self.config.provider.value,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    def validate_prompt(self, prompt: str) -> bool:
        if not prompt or not prompt.strip():
            logger.warning("LLM_PROMPT_EMPTY")
            return False

        if len(prompt) > MAX_PROMPT_CHARS:
            logger.warning(
                "LLM_PROMPT_TOO_LONG",
                extra={"length": len(prompt), "max_length": MAX_PROMPT_CHARS}
            )
            return False

        return True

    def recent_history(self, history: Optional[Sequence[TalkMessage]]) -> List[TalkMessage]:
        if not history:
            return []
        return list(history)[-self.config.history_limit:]


class OpenAILLM(BaseLLM):
    """OpenAI chat completions through the async SDK client."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = openai.AsyncOpenAI(api_key=config.api_key)

    def build_messages(
        self,
        prompt: str,
        system_prompt: Optional[str],
        history: Optional[Sequence[TalkMessage]],
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages.extend(
            {"role": m.role.value, "content": m.content}
            for m in self.recent_history(history)
        )
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _complete(self, prompt, system_prompt, history):
        completion = await self.client.chat.completions.create(
            model=self.config.model_name,
            messages=self.build_messages(prompt, system_prompt, history),
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            timeout=self.config.timeout_seconds,
        )
        usage = completion.usage
        return completion.choices[0].message.content or "", usage.total_tokens if usage else None


class GeminiLLM(BaseLLM):
    """Google Gemini over the generateContent REST endpoint."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.endpoint = f"{config.endpoint or GEMINI_ENDPOINT}/{config.model_name}:generateContent"

    def build_payload(
        self,
        prompt: str,
        system_prompt: Optional[str],
        history: Optional[Sequence[TalkMessage]],
    ) -> Dict[str, Any]:
        # Gemini calls the assistant side "model"
        contents = [
            {
                "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                "parts": [{"text": m.content}],
            }
            for m in self.recent_history(history)
        ]
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "topP": self.config.top_p,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def _complete(self, prompt, system_prompt, history):
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.endpoint,
                params={"key": self.config.api_key},
                json=self.build_payload(prompt, system_prompt, history),
                timeout=timeout,
            ) as http_response:
                http_response.raise_for_status()
                body = await http_response.json()

        candidates = body.get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts") or [{}]
        return parts[0].get("text") or "", body.get("usageMetadata", {}).get("totalTokenCount")


_PROVIDERS = {
    LLMProvider.OPENAI: OpenAILLM,
    LLMProvider.GEMINI: GeminiLLM,
}


def create_llm(config: LLMConfig) -> BaseLLM:
    """Build the client for ``config.provider``.

    Raises:
        ValueError: If the API key is missing
    """
    return _PROVIDERS[config.provider](config)
