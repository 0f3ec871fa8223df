"""Conversation Service: Sage's side of a talk session.

Key responsibilities:
- Reply to the user through OpenAI or Gemini, with canned fallbacks
- Run the talk session lifecycle (start, turns, end and score)
- Hold one pending health card per session for user confirmation
"""

from .base_llm import LLMConfig, LLMProvider, LLMResponse, create_llm
from .responder import SageResponder, SageReply, ResponseSource
from .session_manager import TalkSessionManager, TurnResult, SessionNotFoundError

__all__ = [
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "create_llm",
    "SageResponder",
    "SageReply",
    "ResponseSource",
    "TalkSessionManager",
    "TurnResult",
    "SessionNotFoundError",
]
