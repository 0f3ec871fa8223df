"""Talk session lifecycle.

A session starts with Sage's greeting, grows one user turn and one Sage
reply at a time, and ends with a CLI score and a write to the store.
The score is logged next to the user's personal baseline.
While a session is active, at most one health card waits for the user
to confirm or discard it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sage.shared.models import (
    HealthCard,
    HealthObservation,
    MessageRole,
    SessionStatus,
    TalkMessage,
    TalkSession,
    utc_now,
)
from sage.shared.utils import hash_pii
from sage.services.analysis_service import (
    CLIScorer,
    HealthKeywordMatcher,
    count_filler_words,
    create_health_card,
)
from sage.services.persistence_service import SageStore
from .responder import SageReply, SageResponder

logger = logging.getLogger(__name__)

SAGE_GREETING = "Hi! How are you doing today?"


class SessionNotFoundError(LookupError):
    """No active talk session with the given id."""
    pass


@dataclass
class TurnResult:
    """Outcome of one user turn."""
    reply: SageReply
    observations: List[HealthObservation]
    # Card awaiting confirmation, if any (may predate this turn)
    pending_card: Optional[HealthCard] = None


@dataclass
class _ActiveSession:
    user_id: str
    session: TalkSession
    pending_card: Optional[HealthCard] = None


class TalkSessionManager:
    """Runs talk sessions for the conversation front end."""

    def __init__(
        self,
        store: SageStore,
        responder: SageResponder,
        matcher: Optional[HealthKeywordMatcher] = None,
        scorer: Optional[CLIScorer] = None,
        greeting: str = SAGE_GREETING,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.responder = responder
        self.matcher = matcher or HealthKeywordMatcher()
        self.scorer = scorer or CLIScorer()
        self.greeting = greeting
        self.clock = clock
        self._active: Dict[str, _ActiveSession] = {}

    def _get(self, session_id: str) -> _ActiveSession:
        try:
            return self._active[session_id]
        except KeyError:
            raise SessionNotFoundError(f"No active talk session {session_id}") from None

    def start_session(self, user_id: str) -> TalkSession:
        """Open a session with Sage's greeting as the first message."""
        now = self.clock()
        session = TalkSession(timestamp=now)
        session.append(TalkMessage(role=MessageRole.ASSISTANT, content=self.greeting, timestamp=now))
        self._active[session.id] = _ActiveSession(user_id=user_id, session=session)

        logger.info(
            "TALK_SESSION_STARTED",
            extra={
                "session_id": session.id,
                "user_id_hash": hash_pii(user_id),
            }
        )
        return session

    def get_session(self, session_id: str) -> TalkSession:
        return self._get(session_id).session

    async def handle_user_turn(self, session_id: str, text: str) -> TurnResult:
        """Record what the user said and append Sage's reply.

        Health mentions in ``text`` become a pending health card when no
        other card is waiting for confirmation.

        Raises:
            SessionNotFoundError: If the session is not active
            ValueError: If ``text`` is blank
        """
        active = self._get(session_id)
        if not text or not text.strip():
            raise ValueError("User turn must not be blank")

        session = active.session
        history = list(session.messages)
        session.append(TalkMessage(role=MessageRole.USER, content=text, timestamp=self.clock()))

        observations = self.matcher.extract(text)
        if observations and active.pending_card is None:
            active.pending_card = create_health_card(observations[0], source_session_id=session.id)
            logger.info(
                "HEALTH_CARD_PENDING",
                extra={
                    "session_id": session.id,
                    "card_id": active.pending_card.id,
                    "category": active.pending_card.category.value,
                }
            )

        reply = await self.responder.generate_response(text, history=history)
        session.append(TalkMessage(role=MessageRole.ASSISTANT, content=reply.text, timestamp=self.clock()))

        return TurnResult(
            reply=reply,
            observations=observations,
            pending_card=active.pending_card,
        )

    def confirm_health_card(self, session_id: str) -> Optional[HealthCard]:
        """Confirm the pending card and store it.

        Returns:
            The confirmed card, or None if nothing was pending
        """
        active = self._get(session_id)
        if active.pending_card is None:
            return None

        card = active.pending_card.confirm()
        active.pending_card = None
        self.store.add_health_card(active.user_id, card)

        logger.info(
            "HEALTH_CARD_CONFIRMED",
            extra={
                "session_id": session_id,
                "card_id": card.id,
                "category": card.category.value,
            }
        )
        return card

    def discard_health_card(self, session_id: str) -> bool:
        """Drop the pending card without storing it."""
        active = self._get(session_id)
        if active.pending_card is None:
            return False

        logger.info(
            "HEALTH_CARD_DISCARDED",
            extra={"session_id": session_id, "card_id": active.pending_card.id}
        )
        active.pending_card = None
        return True

    def end_session(
        self,
        session_id: str,
        pauses: int = 0,
        filler_words: Optional[int] = None,
    ) -> TalkSession:
        """Score, complete and store a session.

        Args:
            session_id: Active session id
            pauses: Speech pauses detected by the client
            filler_words: Filler words detected by the client; counted
                from the user's turns when None

        Returns:
            The completed session
        """
        active = self._get(session_id)
        session = active.session

        session.duration = max(0.0, (self.clock() - session.timestamp).total_seconds())
        if filler_words is None:
            filler_words = sum(
                count_filler_words(m.content)
                for m in session.messages
                if m.role == MessageRole.USER
            )

        cli = self.scorer.score(
            session.messages,
            duration=session.duration,
            pauses=pauses,
            filler_words=filler_words,
            session_id=session.id,
        )
        session.cli_score = cli.overall
        session.cli_breakdown = cli.breakdown
        session.status = SessionStatus.COMPLETED

        del self._active[session_id]
        self.store.add_talk_session(active.user_id, session)
        baseline = self.user_baseline(active.user_id)

        logger.info(
            "TALK_SESSION_ENDED",
            extra={
                "session_id": session.id,
                "user_id_hash": hash_pii(active.user_id),
                "message_count": len(session.messages),
                "duration_seconds": session.duration,
                "cli_score": session.cli_score,
                "baseline": baseline,
                "pending_card_dropped": active.pending_card is not None,
            }
        )
        return session

    def user_baseline(self, user_id: str) -> Optional[float]:
        """The user's personal CLI baseline from their stored sessions.

        None until enough scored sessions are stored.
        """
        scores = self.store.cli_scores(user_id, limit=self.scorer.config.baseline_max_sessions)
        return self.scorer.calculate_baseline(scores)
