"""Postgres repositories for Sage's user data.

One repository per table. Single-owner tables carry a ``user_id``
column; ids are uuid strings generated client-side so rows
can be reconciled by id.

Expected tables:
    users(id, name, preferred_name, cognitive_profile JSONB,
          family_members JSONB, is_onboarded, created_at)
    talk_sessions(id, user_id, timestamp, messages JSONB, transcript,
                  cli_score, cli_breakdown JSONB, status, duration)
    health_cards(id, user_id, session_id, date, category, description,
                 severity, confidence, confirmed)
    game_results(id, user_id, timestamp, game_type, score, time_taken,
                 accuracy)
    family_requests(id, from_user_id, from_name, to_user_id, to_name,
                    relationship, timestamp, status)
    shared_health_entries(id, from_user_id, from_name, to_user_id,
                          card JSONB, timestamp, read)
    insights(id, user_id, timestamp, type, title, description, read)

Family requests and shared health entries belong to two users and have
``from_user_id`` and ``to_user_id`` columns instead of ``user_id``.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Set, TypeVar

from psycopg2.extras import Json

from sage.shared.database import BaseRepository, ConnectionManager
from sage.shared.models import (
    CLIBreakdown,
    DetectionConfidence,
    FamilyMember,
    FamilyRequest,
    GameResult,
    HealthCard,
    HealthCategory,
    Insight,
    RequestStatus,
    SessionStatus,
    Severity,
    SharedHealthEntry,
    TalkMessage,
    TalkSession,
    User,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _json_value(value: Any) -> Any:
    # psycopg2 decodes JSONB to Python objects; plain JSON columns arrive as text
    if isinstance(value, str):
        return json.loads(value)
    return value


class UserRepository(BaseRepository[User]):
    """Repository for user accounts."""

    columns = (
        "id", "name", "preferred_name", "cognitive_profile",
        "family_members", "is_onboarded", "created_at",
    )
    user_column = "id"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "users")

    def _row_to_entity(self, row: tuple) -> User:
        return User(
            id=str(row[0]),
            name=row[1],
            preferred_name=row[2] or "",
            cognitive_profile=_json_value(row[3]) or {},
            family_members=[FamilyMember.from_dict(m) for m in _json_value(row[4]) or []],
            has_completed_onboarding=bool(row[5]),
            created_at=parse_timestamp(row[6]),
        )

    def _entity_to_params(self, entity: User) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "name": entity.name,
            "preferred_name": entity.preferred_name,
            "cognitive_profile": Json(entity.cognitive_profile),
            "family_members": Json([m.to_dict() for m in entity.family_members]),
            "is_onboarded": entity.has_completed_onboarding,
            "created_at": entity.created_at,
        }


class TalkSessionRepository(BaseRepository[TalkSession]):
    """Repository for talk sessions."""

    columns = (
        "id", "timestamp", "messages", "transcript", "cli_score",
        "cli_breakdown", "status", "duration",
    )
    order_column = "timestamp"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "talk_sessions")

    def _row_to_entity(self, row: tuple) -> TalkSession:
        """Convert database row to TalkSession.

        Expected columns:
            0: id
            1: timestamp
            2: messages (JSONB)
            3: transcript (derived, ignored on read)
            4: cli_score
            5: cli_breakdown (JSONB)
            6: status
            7: duration
        """
        breakdown = _json_value(row[5])
        return TalkSession(
            id=str(row[0]),
            timestamp=parse_timestamp(row[1]),
            messages=[TalkMessage.from_dict(m) for m in _json_value(row[2]) or []],
            cli_score=int(row[4]) if row[4] is not None else None,
            cli_breakdown=CLIBreakdown.from_dict(breakdown) if breakdown else None,
            status=SessionStatus(row[6]),
            duration=float(row[7] or 0),
        )

    def _entity_to_params(self, entity: TalkSession) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "timestamp": entity.timestamp,
            "messages": Json([m.to_dict() for m in entity.messages]),
            "transcript": entity.transcript,
            "cli_score": entity.cli_score,
            "cli_breakdown": Json(entity.cli_breakdown.to_dict()) if entity.cli_breakdown else None,
            "status": entity.status.value,
            "duration": entity.duration,
        }

    def find_scores_by_user(self, user_id: str, limit: int = 10) -> List[Optional[float]]:
        """Overall CLI scores of a user's sessions, oldest first."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT cli_score FROM {self.table_name}
                WHERE user_id = %s
                ORDER BY timestamp ASC
                LIMIT %s
                """,
                (user_id, limit)
            )
            return [float(row[0]) if row[0] is not None else None for row in cur.fetchall()]


class HealthCardRepository(BaseRepository[HealthCard]):
    """Repository for health cards."""

    columns = (
        "id", "date", "category", "description", "severity",
        "confidence", "confirmed", "session_id",
    )
    order_column = "date"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "health_cards")

    def _row_to_entity(self, row: tuple) -> HealthCard:
        return HealthCard(
            id=str(row[0]),
            date=parse_timestamp(row[1]),
            category=HealthCategory(row[2]),
            description=row[3],
            severity=Severity(row[4]),
            confidence=DetectionConfidence(row[5]),
            confirmed=bool(row[6]),
            source_session_id=str(row[7]) if row[7] else None,
        )

    def _entity_to_params(self, entity: HealthCard) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "date": entity.date,
            "category": entity.category.value,
            "description": entity.description,
            "severity": entity.severity.value,
            "confidence": entity.confidence.value,
            "confirmed": entity.confirmed,
            "session_id": entity.source_session_id,
        }

    def confirm(self, card_id: str, user_id: Optional[str] = None) -> bool:
        """Mark a card confirmed.

        Args:
            card_id: Card id
            user_id: When given, only that user's card is confirmed

        Returns:
            True if a matching card existed
        """
        return self.update_fields(card_id, {"confirmed": True}, owner_id=user_id)


class GameResultRepository(BaseRepository[GameResult]):
    """Repository for game results."""

    columns = ("id", "timestamp", "game_type", "score", "time_taken", "accuracy")
    order_column = "timestamp"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "game_results")

    def _row_to_entity(self, row: tuple) -> GameResult:
        return GameResult(
            id=str(row[0]),
            timestamp=parse_timestamp(row[1]),
            game_type=row[2],
            score=int(row[3]),
            time_taken=float(row[4]),
            accuracy=float(row[5]),
        )

    def _entity_to_params(self, entity: GameResult) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "timestamp": entity.timestamp,
            "game_type": entity.game_type,
            "score": entity.score,
            "time_taken": entity.time_taken,
            "accuracy": entity.accuracy,
        }


class _TwoPartyRepository(BaseRepository[T]):
    """Rows that belong to both a sender and a recipient.

    Both parties are columns of the row, so inserts ignore ``owner_id``.
    Reads by user match either party; owner-scoped updates match the
    recipient.
    """

    user_column = "to_user_id"
    order_column = "timestamp"

    def _params(self, entity: T, owner_id: Optional[str]) -> Dict[str, Any]:
        return self._entity_to_params(entity)

    def find_by_user(self, user_id: str, limit: int = 100) -> List[T]:
        """Up to ``limit`` rows sent or received by the user, newest first."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {self._select_list} FROM {self.table_name}
                WHERE from_user_id = %s OR to_user_id = %s
                ORDER BY {self.order_column} DESC
                LIMIT %s
                """,
                (user_id, user_id, limit)
            )
            rows = cur.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def find_ids_by_user(self, user_id: str) -> Set[str]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT id FROM {self.table_name}
                WHERE from_user_id = %s OR to_user_id = %s
                """,
                (user_id, user_id)
            )
            return {str(row[0]) for row in cur.fetchall()}


class FamilyRequestRepository(_TwoPartyRepository[FamilyRequest]):
    """Repository for family connection requests."""

    columns = (
        "id", "from_user_id", "from_name", "to_user_id", "to_name",
        "relationship", "timestamp", "status",
    )

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "family_requests")

    def _row_to_entity(self, row: tuple) -> FamilyRequest:
        return FamilyRequest(
            id=str(row[0]),
            from_user_id=str(row[1]),
            from_name=row[2],
            to_user_id=str(row[3]),
            to_name=row[4],
            relationship=row[5],
            timestamp=parse_timestamp(row[6]),
            status=RequestStatus(row[7]),
        )

    def _entity_to_params(self, entity: FamilyRequest) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "from_user_id": entity.from_user_id,
            "from_name": entity.from_name,
            "to_user_id": entity.to_user_id,
            "to_name": entity.to_name,
            "relationship": entity.relationship,
            "timestamp": entity.timestamp,
            "status": entity.status.value,
        }

    def update_status(
        self,
        request_id: str,
        status: RequestStatus,
        user_id: Optional[str] = None,
    ) -> bool:
        """Set a request's status; with ``user_id``, only as its recipient."""
        return self.update_fields(request_id, {"status": status.value}, owner_id=user_id)


class SharedHealthEntryRepository(_TwoPartyRepository[SharedHealthEntry]):
    """Repository for health cards shared with family members."""

    columns = ("id", "from_user_id", "from_name", "to_user_id", "card", "timestamp", "read")

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "shared_health_entries")

    def _row_to_entity(self, row: tuple) -> SharedHealthEntry:
        return SharedHealthEntry(
            id=str(row[0]),
            from_user_id=str(row[1]),
            from_name=row[2],
            to_user_id=str(row[3]),
            card=HealthCard.from_dict(_json_value(row[4])),
            timestamp=parse_timestamp(row[5]),
            read=bool(row[6]),
        )

    def _entity_to_params(self, entity: SharedHealthEntry) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "from_user_id": entity.from_user_id,
            "from_name": entity.from_name,
            "to_user_id": entity.to_user_id,
            "card": Json(entity.card.to_dict()),
            "timestamp": entity.timestamp,
            "read": entity.read,
        }

    def mark_read(self, entry_id: str, user_id: Optional[str] = None) -> bool:
        """Mark an entry read; with ``user_id``, only as its recipient."""
        return self.update_fields(entry_id, {"read": True}, owner_id=user_id)


class InsightRepository(BaseRepository[Insight]):
    """Repository for insights."""

    columns = ("id", "timestamp", "type", "title", "description", "read")
    order_column = "timestamp"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "insights")

    def _row_to_entity(self, row: tuple) -> Insight:
        return Insight(
            id=str(row[0]),
            timestamp=parse_timestamp(row[1]),
            insight_type=row[2],
            title=row[3],
            description=row[4],
            read=bool(row[5]),
        )

    def _entity_to_params(self, entity: Insight) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "timestamp": entity.timestamp,
            "type": entity.insight_type,
            "title": entity.title,
            "description": entity.description,
            "read": entity.read,
        }

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread insight of a user read.

        Returns:
            Number of insights updated
        """
        with self._cursor(commit=True) as cur:
            cur.execute(
                f"UPDATE {self.table_name} SET read = TRUE WHERE user_id = %s AND read = FALSE",
                (user_id,)
            )
            return cur.rowcount
