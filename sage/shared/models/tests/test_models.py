"""Tests for shared domain models."""
from datetime import datetime, timezone

import pytest
from sage.shared.utils import configure_pii_salt
from sage.shared.models import (
    CLIBreakdown,
    CLIScore,
    DetectionConfidence,
    FamilyMember,
    FamilyRequest,
    GameResult,
    HealthCard,
    HealthCategory,
    MessageRole,
    RequestStatus,
    SessionStatus,
    Severity,
    TalkMessage,
    TalkSession,
    User,
    parse_timestamp,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def breakdown(**overrides):
    values = dict(
        lexical_access=70.0,
        fluency=80.0,
        syntactic_complexity=60.0,
        coherence=100.0,
        processing_speed=90.0,
        attention=85.0,
    )
    values.update(overrides)
    return CLIBreakdown(**values)


class TestTimestamps:
    """Tests for timestamp parsing."""

    def test_parses_z_suffix(self):
        parsed = parse_timestamp("2026-01-14T10:00:00Z")
        assert parsed == datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc)

    def test_naive_values_are_utc(self):
        parsed = parse_timestamp(datetime(2026, 1, 14, 10, 0))
        assert parsed.tzinfo == timezone.utc


class TestTalkMessage:
    """Tests for TalkMessage."""

    def test_messages_are_immutable(self):
        message = TalkMessage(role=MessageRole.USER, content="hello")
        with pytest.raises(AttributeError):
            message.content = "changed"

    def test_legacy_sage_role(self):
        message = TalkMessage.from_dict({
            "id": "m1", "role": "sage", "content": "Hi!",
            "timestamp": "2026-01-14T10:00:00Z",
        })
        assert message.role == MessageRole.ASSISTANT

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            MessageRole.parse("robot")

    def test_unique_ids(self):
        first = TalkMessage(role=MessageRole.USER, content="a")
        second = TalkMessage(role=MessageRole.USER, content="a")
        assert first.id != second.id


class TestTalkSession:
    """Tests for TalkSession."""

    def test_transcript(self):
        session = TalkSession()
        session.append(TalkMessage(role=MessageRole.ASSISTANT, content="Hi! How are you doing today?"))
        session.append(TalkMessage(role=MessageRole.USER, content="Pretty good."))

        assert session.transcript == "Sage: Hi! How are you doing today?\nUser: Pretty good."

    def test_cannot_append_to_completed_session(self):
        session = TalkSession(status=SessionStatus.COMPLETED)
        with pytest.raises(ValueError):
            session.append(TalkMessage(role=MessageRole.USER, content="hello"))

    def test_dict_round_trip_keeps_score(self):
        session = TalkSession(cli_score=72, cli_breakdown=breakdown(), status=SessionStatus.COMPLETED)
        session.append(TalkMessage(role=MessageRole.USER, content="hello"))

        restored = TalkSession.from_dict(session.to_dict())

        assert restored.id == session.id
        assert restored.cli_score == 72
        assert restored.cli_breakdown == session.cli_breakdown
        assert restored.status == SessionStatus.COMPLETED
        assert restored.messages == session.messages


class TestCLIScore:
    """Tests for CLI score validation."""

    def test_sub_score_out_of_range(self):
        with pytest.raises(ValueError):
            breakdown(fluency=101.0)

    def test_overall_out_of_range(self):
        with pytest.raises(ValueError):
            CLIScore(overall=-1, breakdown=breakdown())


class TestHealthCard:
    """Tests for HealthCard."""

    def test_confirm_returns_confirmed_copy(self):
        card = HealthCard(
            category=HealthCategory.SLEEP,
            description="I slept badly",
            severity=Severity.LOW,
            confidence=DetectionConfidence.EXPLICIT,
        )
        confirmed = card.confirm()

        assert confirmed.confirmed is True
        assert card.confirmed is False
        assert confirmed.id == card.id

    def test_from_dict(self):
        card = HealthCard.from_dict({
            "id": "c1",
            "date": "2026-01-14T10:00:00Z",
            "category": "pain",
            "description": "My knee hurts",
            "severity": "moderate",
            "confidence": "explicit",
            "confirmed": True,
            "source_session_id": "s1",
        })
        assert card.category == HealthCategory.PAIN
        assert card.confirmed is True
        assert card.source_session_id == "s1"


class TestUser:
    """Tests for User and related records."""

    def test_display_name_prefers_preferred_name(self):
        assert User(name="Margaret", preferred_name="Peggy").display_name == "Peggy"
        assert User(name="Margaret").display_name == "Margaret"

    def test_family_members_round_trip(self):
        user = User(name="Margaret", family_members=[FamilyMember(name="Ann", relationship="daughter")])
        restored = User.from_dict(user.to_dict())
        assert restored.family_members == user.family_members

    def test_game_accuracy_validated(self):
        with pytest.raises(ValueError):
            GameResult(game_type="memory", score=10, time_taken=30.0, accuracy=1.5)

    def test_connected_member(self):
        linked = FamilyMember(name="Ann", relationship="daughter", user_id="user_b")
        user = User(name="Margaret", family_members=[FamilyMember(name="Tom", relationship="son"), linked])

        assert user.connected_member("user_b") == linked
        assert user.connected_member("user_c") is None


class TestFamilyRequest:
    """Tests for FamilyRequest."""

    def test_status_defaults_to_pending(self):
        request = FamilyRequest.from_dict({
            "id": "r1", "from_user_id": "user_a", "to_user_id": "user_b",
            "relationship": "son", "timestamp": "2026-01-14T10:00:00Z",
        })

        assert request.is_pending
        assert request.involves("user_b") and not request.involves("user_c")

    def test_with_status_copies(self):
        request = FamilyRequest(
            from_user_id="user_a", from_name="Margaret",
            to_user_id="user_b", to_name="Ann", relationship="daughter",
        )

        accepted = request.with_status(RequestStatus.ACCEPTED)

        assert accepted.status == RequestStatus.ACCEPTED
        assert request.is_pending
