"""Tests for SageResponder and fallback replies."""
import random

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sage.shared.utils import configure_pii_salt
from sage.shared.models import MessageRole, TalkMessage
from sage.services.conversation_service.base_llm import LLMConfig, LLMProvider, LLMResponse
from sage.services.conversation_service.fallback import DEFAULT_RESPONSES, fallback_response
from sage.services.conversation_service.responder import (
    SAGE_SYSTEM_PROMPT,
    ResponseSource,
    SageResponder,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def llm_returning(text):
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=LLMResponse(
        text=text, model="gpt-4o-mini", provider="openai", latency_ms=120.0,
    ))
    return llm


class TestFallbackResponse:
    """Tests for canned replies."""

    @pytest.mark.parametrize("message,expected", [
        ("My back is sore", "I'm sorry to hear that. Can you tell me more about what's bothering you?"),
        ("I'm so tired", "How have you been sleeping lately?"),
        ("I feel great", "How are you feeling today?"),
        ("It was fine", "That's wonderful to hear! What have you been up to?"),
        ("Things are terrible", "I'm sorry to hear that. Would you like to talk about it?"),
        ("What is the time?", "That's an interesting question. What do you think about that?"),
    ])
    def test_rules(self, message, expected):
        assert fallback_response(message) == expected

    def test_default_is_one_of_the_defaults(self):
        reply = fallback_response("I baked bread this morning", random.Random(7))
        assert reply in DEFAULT_RESPONSES


class TestSageResponder:
    """Tests for SageResponder."""

    @pytest.mark.asyncio
    async def test_llm_reply(self):
        llm = llm_returning("  What kind of bread did you bake?  ")
        responder = SageResponder(llm=llm)
        history = [TalkMessage(role=MessageRole.ASSISTANT, content="Hi! How are you doing today?")]

        reply = await responder.generate_response("I baked bread", history=history)

        assert reply.text == "What kind of bread did you bake?"
        assert reply.source == ResponseSource.LLM_GENERATED
        assert reply.latency_ms == 120.0
        llm.generate.assert_awaited_once_with(
            "I baked bread",
            system_prompt=SAGE_SYSTEM_PROMPT,
            history=history,
        )

    @pytest.mark.asyncio
    async def test_fallback_when_unconfigured(self):
        config = LLMConfig(provider=LLMProvider.OPENAI, model_name="gpt-4o-mini", api_key=None)
        responder = SageResponder(config=config)

        reply = await responder.generate_response("My back is sore")

        assert responder.llm is None
        assert reply.source == ResponseSource.FALLBACK
        assert reply.text.startswith("I'm sorry to hear that")

    @pytest.mark.asyncio
    async def test_fallback_when_llm_raises(self):
        llm = MagicMock()
        llm.generate = AsyncMock(side_effect=RuntimeError("timeout"))
        responder = SageResponder(llm=llm)

        reply = await responder.generate_response("What is the time?")

        assert reply.source == ResponseSource.FALLBACK
        assert reply.text == "That's an interesting question. What do you think about that?"

    @pytest.mark.asyncio
    async def test_fallback_when_llm_returns_empty(self):
        responder = SageResponder(llm=llm_returning("   "), rng=random.Random(1))

        reply = await responder.generate_response("I baked bread")

        assert reply.source == ResponseSource.FALLBACK
        assert reply.text in DEFAULT_RESPONSES

    def test_initialization_failure_falls_back(self):
        config = LLMConfig(provider=LLMProvider.OPENAI, model_name="gpt-4o-mini", api_key="sk-test")
        with patch(
            "sage.services.conversation_service.responder.create_llm",
            side_effect=RuntimeError("bad client"),
        ):
            responder = SageResponder(config=config)

        assert responder.llm is None
