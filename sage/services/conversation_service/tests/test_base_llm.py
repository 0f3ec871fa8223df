"""Tests for LLM configuration and provider clients."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sage.shared.utils import configure_pii_salt
from sage.shared.models import MessageRole, TalkMessage
from sage.services.conversation_service.base_llm import (
    GeminiLLM,
    LLMConfig,
    LLMProvider,
    OpenAILLM,
    create_llm,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def openai_config(**overrides):
    values = dict(provider=LLMProvider.OPENAI, model_name="gpt-4o-mini", api_key="sk-test")
    values.update(overrides)
    return LLMConfig(**values)


def gemini_config(**overrides):
    values = dict(provider=LLMProvider.GEMINI, model_name="gemini-1.5-flash", api_key="g-test")
    values.update(overrides)
    return LLMConfig(**values)


def history(count):
    return [
        TalkMessage(
            role=MessageRole.ASSISTANT if i % 2 == 0 else MessageRole.USER,
            content=f"message {i}",
        )
        for i in range(count)
    ]


class TestLLMConfig:
    """Tests for LLMConfig."""

    def test_defaults(self):
        config = openai_config()
        assert config.max_tokens == 150
        assert config.temperature == 0.7
        assert config.history_limit == 10

    def test_from_env_openai(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-env"}, clear=True):
            config = LLMConfig.from_env()

        assert config.provider == LLMProvider.OPENAI
        assert config.model_name == "gpt-4o-mini"
        assert config.api_key == "sk-env"
        assert config.is_configured

    def test_from_env_gemini(self):
        with patch.dict("os.environ", {
            "SAGE_LLM_PROVIDER": "gemini",
            "GEMINI_API_KEY": "g-env",
            "SAGE_LLM_MODEL": "gemini-custom",
        }, clear=True):
            config = LLMConfig.from_env()

        assert config.provider == LLMProvider.GEMINI
        assert config.model_name == "gemini-custom"
        assert config.api_key == "g-env"

    def test_from_env_without_key(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "  "}, clear=True):
            assert not LLMConfig.from_env().is_configured


class TestCreateLLM:
    """Tests for the provider factory."""

    def test_creates_openai(self):
        assert isinstance(create_llm(openai_config()), OpenAILLM)

    def test_creates_gemini(self):
        assert isinstance(create_llm(gemini_config()), GeminiLLM)

    def test_missing_key_raises(self):
        with pytest.raises(ValueError):
            create_llm(openai_config(api_key=None))
        with pytest.raises(ValueError):
            create_llm(gemini_config(api_key=None))


class TestOpenAILLM:
    """Tests for the OpenAI client."""

    def test_build_messages_keeps_last_ten(self):
        llm = OpenAILLM(openai_config())

        messages = llm.build_messages("latest", "be kind", history(12))

        assert messages[0] == {"role": "system", "content": "be kind"}
        assert len(messages) == 1 + 10 + 1
        assert messages[1]["content"] == "message 2"
        assert messages[1]["role"] == "assistant"
        assert messages[-1] == {"role": "user", "content": "latest"}

    @pytest.mark.asyncio
    async def test_generate(self):
        llm = OpenAILLM(openai_config())
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="  Hello there!  "))]
        response.usage.total_tokens = 12
        llm.client = MagicMock()
        llm.client.chat.completions.create = AsyncMock(return_value=response)

        result = await llm.generate("Hi Sage", system_prompt="be kind")

        assert result.text == "Hello there!"
        assert result.tokens_used == 12
        assert result.provider == "openai"
        kwargs = llm.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 150

    @pytest.mark.asyncio
    async def test_generate_rejects_blank_prompt(self):
        llm = OpenAILLM(openai_config())
        with pytest.raises(ValueError):
            await llm.generate("   ")

    @pytest.mark.asyncio
    async def test_generate_propagates_provider_errors(self):
        llm = OpenAILLM(openai_config())
        llm.client = MagicMock()
        llm.client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))

        with pytest.raises(RuntimeError):
            await llm.generate("Hi Sage")


class TestGeminiLLM:
    """Tests for the Gemini client."""

    def test_endpoint(self):
        llm = GeminiLLM(gemini_config())
        assert llm.endpoint.endswith("/gemini-1.5-flash:generateContent")

    def test_build_payload(self):
        llm = GeminiLLM(gemini_config())

        payload = llm.build_payload("latest", "be kind", history(2))

        assert [c["role"] for c in payload["contents"]] == ["model", "user", "user"]
        assert payload["contents"][-1]["parts"] == [{"text": "latest"}]
        assert payload["systemInstruction"] == {"parts": [{"text": "be kind"}]}
        assert payload["generationConfig"]["maxOutputTokens"] == 150

    def test_build_payload_without_system_prompt(self):
        llm = GeminiLLM(gemini_config())
        assert "systemInstruction" not in llm.build_payload("hi", None, None)

    @pytest.mark.asyncio
    async def test_generate(self):
        llm = GeminiLLM(gemini_config())

        http_response = MagicMock()
        http_response.json = AsyncMock(return_value={
            "candidates": [{"content": {"parts": [{"text": " How lovely! "}]}}],
            "usageMetadata": {"totalTokenCount": 20},
        })
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = http_response

        with patch("sage.services.conversation_service.base_llm.aiohttp.ClientSession") as session_cls:
            session_cls.return_value.__aenter__.return_value = session
            result = await llm.generate("I baked bread", system_prompt="be kind")

        assert result.text == "How lovely!"
        assert result.tokens_used == 20
        assert session.post.call_args.kwargs["params"] == {"key": "g-test"}
        http_response.raise_for_status.assert_called_once()

    @pytest.mark.asyncio
    async def test_generate_without_candidates_returns_empty_text(self):
        llm = GeminiLLM(gemini_config())

        http_response = MagicMock()
        http_response.json = AsyncMock(return_value={"candidates": []})
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = http_response

        with patch("sage.services.conversation_service.base_llm.aiohttp.ClientSession") as session_cls:
            session_cls.return_value.__aenter__.return_value = session
            result = await llm.generate("I baked bread")

        assert result.text == ""
