"""Tests for TalkSessionManager."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from sage.shared.utils import configure_pii_salt
from sage.shared.models import (
    CLIBreakdown,
    CLIScore,
    HealthCategory,
    MessageRole,
    SessionStatus,
)
from sage.services.persistence_service import SageStore
from sage.services.conversation_service.responder import ResponseSource, SageReply
from sage.services.conversation_service.session_manager import (
    SAGE_GREETING,
    SessionNotFoundError,
    TalkSessionManager,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self):
        self.now = datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    mock = MagicMock(spec=SageStore)
    mock.cli_scores.return_value = []
    return mock


@pytest.fixture
def responder():
    mock = MagicMock()
    mock.generate_response = AsyncMock(
        return_value=SageReply(text="Tell me more about that.", source=ResponseSource.LLM_GENERATED)
    )
    return mock


@pytest.fixture
def manager(store, responder, clock):
    return TalkSessionManager(store=store, responder=responder, clock=clock)


class TestStartSession:
    """Tests for opening sessions."""

    def test_starts_with_greeting(self, manager):
        session = manager.start_session("user_123")

        assert session.is_active
        assert len(session.messages) == 1
        assert session.messages[0].role == MessageRole.ASSISTANT
        assert session.messages[0].content == SAGE_GREETING

    def test_session_is_retrievable(self, manager):
        session = manager.start_session("user_123")
        assert manager.get_session(session.id) is session

    def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            manager.get_session("missing")


class TestHandleUserTurn:
    """Tests for user turns."""

    @pytest.mark.asyncio
    async def test_appends_user_and_reply(self, manager, responder):
        session = manager.start_session("user_123")

        result = await manager.handle_user_turn(session.id, "I baked bread this morning")

        assert [m.role for m in session.messages] == [
            MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
        ]
        assert session.messages[-1].content == "Tell me more about that."
        assert result.reply.text == "Tell me more about that."
        assert result.pending_card is None
        history = responder.generate_response.call_args.kwargs["history"]
        assert [m.content for m in history] == [SAGE_GREETING]

    @pytest.mark.asyncio
    async def test_health_mention_creates_pending_card(self, manager):
        session = manager.start_session("user_123")

        result = await manager.handle_user_turn(session.id, "My knee has been hurting a lot.")

        assert result.pending_card is not None
        assert result.pending_card.category == HealthCategory.PAIN
        assert result.pending_card.confirmed is False
        assert result.pending_card.source_session_id == session.id

    @pytest.mark.asyncio
    async def test_pending_card_not_replaced(self, manager):
        session = manager.start_session("user_123")
        first = await manager.handle_user_turn(session.id, "My knee has been hurting a lot.")

        second = await manager.handle_user_turn(session.id, "I slept badly too.")

        assert second.observations
        assert second.pending_card.id == first.pending_card.id

    @pytest.mark.asyncio
    async def test_blank_turn_rejected(self, manager):
        session = manager.start_session("user_123")
        with pytest.raises(ValueError):
            await manager.handle_user_turn(session.id, "   ")

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            await manager.handle_user_turn("missing", "hello")


class TestHealthCardConfirmation:
    """Tests for confirming and discarding pending cards."""

    @pytest.mark.asyncio
    async def test_confirm_stores_card(self, manager, store):
        session = manager.start_session("user_123")
        await manager.handle_user_turn(session.id, "My knee has been hurting a lot.")

        card = manager.confirm_health_card(session.id)

        assert card.confirmed is True
        store.add_health_card.assert_called_once_with("user_123", card)
        assert manager.confirm_health_card(session.id) is None

    @pytest.mark.asyncio
    async def test_discard_does_not_store(self, manager, store):
        session = manager.start_session("user_123")
        await manager.handle_user_turn(session.id, "My knee has been hurting a lot.")

        assert manager.discard_health_card(session.id) is True
        assert manager.discard_health_card(session.id) is False
        store.add_health_card.assert_not_called()

    def test_confirm_without_pending(self, manager):
        session = manager.start_session("user_123")
        assert manager.confirm_health_card(session.id) is None


class TestEndSession:
    """Tests for finishing sessions."""

    @pytest.mark.asyncio
    async def test_scores_and_stores(self, manager, store, clock):
        session = manager.start_session("user_123")
        clock.advance(3)
        await manager.handle_user_turn(session.id, "I went to the garden and picked some roses.")
        clock.advance(57)

        ended = manager.end_session(session.id)

        assert ended.status == SessionStatus.COMPLETED
        assert ended.duration == 60
        assert 0 <= ended.cli_score <= 100
        assert ended.cli_breakdown is not None
        store.add_talk_session.assert_called_once_with("user_123", ended)

    @pytest.mark.asyncio
    async def test_session_no_longer_active(self, manager):
        session = manager.start_session("user_123")
        manager.end_session(session.id)

        with pytest.raises(SessionNotFoundError):
            manager.get_session(session.id)
        with pytest.raises(ValueError):
            session.append(session.messages[0])

    @pytest.mark.asyncio
    async def test_counts_filler_words_when_not_given(self, store, responder, clock):
        scorer = MagicMock()
        scorer.score.return_value = CLIScore(
            overall=70,
            breakdown=CLIBreakdown(
                lexical_access=70, fluency=70, syntactic_complexity=70,
                coherence=70, processing_speed=70, attention=70,
            ),
        )
        manager = TalkSessionManager(store=store, responder=responder, scorer=scorer, clock=clock)
        session = manager.start_session("user_123")
        await manager.handle_user_turn(session.id, "Um, I mean, it was nice")

        manager.end_session(session.id, pauses=2)

        kwargs = scorer.score.call_args.kwargs
        assert kwargs["filler_words"] == 2
        assert kwargs["pauses"] == 2


class TestUserBaseline:
    """Tests for the personal baseline read from stored scores."""

    def test_none_until_enough_sessions(self, manager, store):
        store.cli_scores.return_value = [70, 72, 68]
        assert manager.user_baseline("user_123") is None

    def test_median_of_first_sessions(self, manager, store):
        store.cli_scores.return_value = [70, 72, 68, None, 75, 71, 69, 90]

        assert manager.user_baseline("user_123") == 71
        store.cli_scores.assert_called_once_with("user_123", limit=10)

    @pytest.mark.asyncio
    async def test_end_session_reads_scores_after_storing(self, manager, store):
        calls = []
        store.add_talk_session.side_effect = lambda *args: calls.append("add")
        store.cli_scores.side_effect = lambda *args, **kwargs: calls.append("scores") or []
        session = manager.start_session("user_123")

        manager.end_session(session.id)

        assert calls == ["add", "scores"]
