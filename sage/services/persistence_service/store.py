"""Sage persistence facade.

Writes every item to the local JSON store as a backup and mirrors it to
the hosted Postgres database when one is configured. Hosted failures
are logged and never interrupt the caller.

Reconciliation is "insert if id not already present": no merging and
no conflict resolution.

Family requests and shared health entries involve two accounts. Each is
written once to the hosted store and to both users in the local store.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sage.shared.database import BaseRepository, ConnectionManager, DatabaseConfig, NotFoundError
from sage.shared.models import (
    FamilyMember,
    FamilyRequest,
    GameResult,
    HealthCard,
    Insight,
    RequestStatus,
    SharedHealthEntry,
    TalkSession,
    User,
)
from sage.shared.utils import hash_pii
from .local_store import ENTITY_KINDS, LocalStore
from .repositories import (
    FamilyRequestRepository,
    GameResultRepository,
    HealthCardRepository,
    InsightRepository,
    SharedHealthEntryRepository,
    TalkSessionRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    """Persistence configuration."""
    # Mirror to the hosted database when its connection is configured
    hosted_enabled: bool = True
    local_path: str = "~/.sage/store.json"
    # Upper bound on rows read per entity kind
    load_limit: int = 1000

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create config from environment variables.

        Environment variables:
            SAGE_HOSTED_ENABLED: "true" (default) or "false"
            SAGE_LOCAL_STORE_PATH: Local JSON store path
        """
        return cls(
            hosted_enabled=os.getenv("SAGE_HOSTED_ENABLED", "true").lower() == "true",
            local_path=os.getenv("SAGE_LOCAL_STORE_PATH", "~/.sage/store.json"),
        )


@dataclass
class UserData:
    """Everything stored for one user, oldest items first."""
    user: Optional[User] = None
    talk_sessions: List[TalkSession] = field(default_factory=list)
    health_cards: List[HealthCard] = field(default_factory=list)
    game_results: List[GameResult] = field(default_factory=list)
    family_requests: List[FamilyRequest] = field(default_factory=list)
    shared_health_entries: List[SharedHealthEntry] = field(default_factory=list)
    insights: List[Insight] = field(default_factory=list)

    @property
    def unread_insights(self) -> int:
        return sum(1 for insight in self.insights if not insight.read)


_FROM_DICT: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "talk_sessions": TalkSession.from_dict,
    "health_cards": HealthCard.from_dict,
    "game_results": GameResult.from_dict,
    "family_requests": FamilyRequest.from_dict,
    "shared_health_entries": SharedHealthEntry.from_dict,
    "insights": Insight.from_dict,
}


class SageStore:
    """Facade over the hosted repositories and the local JSON store."""

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        connection_manager: Optional[ConnectionManager] = None,
        local_store: Optional[LocalStore] = None,
    ):
        """Initialize store.

        Args:
            config: Store configuration (from env if None)
            connection_manager: Hosted database connections; built from
                ``DatabaseConfig.from_env()`` when None and configured
            local_store: Local backup store (built from config if None)
        """
        self.config = config or StoreConfig.from_env()
        self.local = local_store or LocalStore(self.config.local_path)

        self.repositories: Dict[str, BaseRepository] = {}
        self.users: Optional[UserRepository] = None

        if self.config.hosted_enabled:
            if connection_manager is None:
                db_config = DatabaseConfig.from_env()
                if db_config.is_configured:
                    connection_manager = ConnectionManager(db_config)
            if connection_manager is not None:
                self.users = UserRepository(connection_manager)
                self.repositories = {
                    "talk_sessions": TalkSessionRepository(connection_manager),
                    "health_cards": HealthCardRepository(connection_manager),
                    "game_results": GameResultRepository(connection_manager),
                    "family_requests": FamilyRequestRepository(connection_manager),
                    "shared_health_entries": SharedHealthEntryRepository(connection_manager),
                    "insights": InsightRepository(connection_manager),
                }

        logger.info(
            "SAGE_STORE_INITIALIZED",
            extra={
                "hosted": self.is_hosted,
                "local_path": self.local.path,
            }
        )

    @property
    def is_hosted(self) -> bool:
        return self.users is not None

    # Writes

    def add_talk_session(self, user_id: str, session: TalkSession) -> None:
        self._add(user_id, "talk_sessions", session)

    def add_health_card(self, user_id: str, card: HealthCard) -> None:
        self._add(user_id, "health_cards", card)

    def add_game_result(self, user_id: str, result: GameResult) -> None:
        self._add(user_id, "game_results", result)

    def add_insight(self, user_id: str, insight: Insight) -> None:
        self._add(user_id, "insights", insight)

    def _add(
        self,
        user_id: str,
        kind: str,
        entity: Any,
        local_owners: Sequence[str] = (),
    ) -> None:
        user_id_hash = hash_pii(user_id)

        for owner in local_owners or (user_id,):
            try:
                self.local.append(owner, kind, entity.to_dict())
            except Exception as e:
                logger.error(
                    "LOCAL_SAVE_FAILED",
                    extra={
                        "kind": kind,
                        "user_id_hash": hash_pii(owner),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        if not self.is_hosted:
            return

        try:
            inserted = self.repositories[kind].insert(entity, owner_id=user_id)
            logger.info(
                "HOSTED_SAVE_COMPLETED",
                extra={
                    "kind": kind,
                    "entity_id": entity.id,
                    "user_id_hash": user_id_hash,
                    "inserted": inserted,
                }
            )
        except Exception as e:
            logger.error(
                "HOSTED_SAVE_FAILED",
                extra={
                    "kind": kind,
                    "entity_id": entity.id,
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

    def _update(
        self,
        user_id: str,
        kind: str,
        item_id: str,
        fields: Dict[str, Any],
        hosted_update: Callable[[], bool],
        local_owners: Sequence[str] = (),
    ) -> bool:
        """Merge ``fields`` into one stored item in both stores.

        Args:
            user_id: User making the change
            kind: Entity kind
            item_id: Item id
            fields: Local field values to merge
            hosted_update: Applies the same change to the hosted row
            local_owners: Local buckets holding a copy (``user_id`` if empty)

        Returns:
            True if the item was found in either store
        """
        found = False

        for owner in local_owners or (user_id,):
            try:
                found = self.local.update_item(owner, kind, item_id, fields) or found
            except Exception as e:
                logger.error(
                    "LOCAL_SAVE_FAILED",
                    extra={
                        "kind": kind,
                        "user_id_hash": hash_pii(owner),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        if self.is_hosted:
            try:
                found = hosted_update() or found
            except Exception as e:
                logger.error(
                    "HOSTED_SAVE_FAILED",
                    extra={
                        "kind": kind,
                        "entity_id": item_id,
                        "user_id_hash": hash_pii(user_id),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        return found

    def confirm_health_card(self, user_id: str, card_id: str) -> bool:
        """Mark one of the user's stored health cards confirmed.

        Returns:
            True if the user's card was found in either store
        """
        found = self._update(
            user_id,
            "health_cards",
            card_id,
            {"confirmed": True},
            lambda: self.repositories["health_cards"].confirm(card_id, user_id=user_id),
        )

        if not found:
            logger.warning(
                "HEALTH_CARD_NOT_FOUND",
                extra={"entity_id": card_id, "user_id_hash": hash_pii(user_id)}
            )
        return found

    def mark_insights_read(self, user_id: str) -> int:
        """Mark all of the user's insights read.

        Returns:
            Number of insights that were unread
        """
        user_id_hash = hash_pii(user_id)
        updated = 0

        try:
            updated = self.local.update_matching(user_id, "insights", {"read": False}, {"read": True})
        except Exception as e:
            logger.error(
                "LOCAL_SAVE_FAILED",
                extra={
                    "kind": "insights",
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

        if self.is_hosted:
            try:
                updated = max(updated, self.repositories["insights"].mark_all_read(user_id))
            except Exception as e:
                logger.error(
                    "HOSTED_SAVE_FAILED",
                    extra={
                        "kind": "insights",
                        "user_id_hash": user_id_hash,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        logger.info(
            "INSIGHTS_MARKED_READ",
            extra={"user_id_hash": user_id_hash, "count": updated}
        )
        return updated

    # Family

    def send_family_request(self, from_user: User, to_user_id: str, relationship: str) -> FamilyRequest:
        """Ask another account to connect as family.

        A request still pending between the two accounts is returned
        instead of sending another.

        Raises:
            ValueError: If ``to_user_id`` is the sender or already connected
            NotFoundError: If there is no account ``to_user_id``
        """
        if to_user_id == from_user.id:
            raise ValueError("Cannot send a family request to yourself")
        if from_user.connected_member(to_user_id) is not None:
            raise ValueError("Already connected to this account")

        recipient = self.load_user(to_user_id)
        if recipient is None:
            raise NotFoundError(f"user {to_user_id} not found")

        for existing in self.family_requests(from_user.id):
            if existing.is_pending and existing.involves(to_user_id):
                return existing

        request = FamilyRequest(
            from_user_id=from_user.id,
            from_name=from_user.name,
            to_user_id=to_user_id,
            to_name=recipient.name,
            relationship=relationship,
        )
        self._add(from_user.id, "family_requests", request, local_owners=(from_user.id, to_user_id))

        logger.info(
            "FAMILY_REQUEST_SENT",
            extra={
                "request_id": request.id,
                "user_id_hash": hash_pii(from_user.id),
                "to_user_id_hash": hash_pii(to_user_id),
            }
        )
        return request

    def respond_to_family_request(self, user_id: str, request_id: str, accept: bool) -> FamilyRequest:
        """Accept or reject a pending request sent to ``user_id``.

        Accepting adds each account to the other's family members.

        Raises:
            NotFoundError: If no pending request ``request_id`` was sent
                to the user
        """
        request = next((r for r in self.family_requests(user_id) if r.id == request_id), None)
        if request is None or request.to_user_id != user_id or not request.is_pending:
            raise NotFoundError(f"no pending family request {request_id}")

        status = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
        self._update(
            user_id,
            "family_requests",
            request_id,
            {"status": status.value},
            lambda: self.repositories["family_requests"].update_status(request_id, status, user_id=user_id),
            local_owners=(request.from_user_id, request.to_user_id),
        )
        if accept:
            self._connect(request.to_user_id, request.from_user_id, request.from_name, request.relationship)
            self._connect(request.from_user_id, request.to_user_id, request.to_name, request.relationship)

        logger.info(
            "FAMILY_REQUEST_ANSWERED",
            extra={
                "request_id": request_id,
                "status": status.value,
                "user_id_hash": hash_pii(user_id),
            }
        )
        return request.with_status(status)

    def _connect(self, user_id: str, member_user_id: str, member_name: str, relationship: str) -> None:
        user = self.load_user(user_id)
        if user is None or user.connected_member(member_user_id) is not None:
            return
        user.family_members.append(
            FamilyMember(name=member_name, relationship=relationship, user_id=member_user_id)
        )
        self.save_user(user)

    def share_health_card(self, user_id: str, card_id: str, member_user_id: str) -> SharedHealthEntry:
        """Send a confirmed health card to a connected family member.

        Raises:
            NotFoundError: If the user or the card does not exist
            ValueError: If the card is unconfirmed or the member is not
                connected to the user
        """
        user = self.load_user(user_id)
        if user is None:
            raise NotFoundError(f"user {user_id} not found")
        if user.connected_member(member_user_id) is None:
            raise ValueError("Health cards can only be shared with connected family members")

        card = next((c for c in self._load_kind(user_id, "health_cards") if c.id == card_id), None)
        if card is None:
            raise NotFoundError(f"health card {card_id} not found")
        if not card.confirmed:
            raise ValueError("Only confirmed health cards can be shared")

        entry = SharedHealthEntry(
            from_user_id=user_id,
            from_name=user.name,
            to_user_id=member_user_id,
            card=card,
        )
        self._add(user_id, "shared_health_entries", entry, local_owners=(user_id, member_user_id))

        logger.info(
            "HEALTH_CARD_SHARED",
            extra={
                "entry_id": entry.id,
                "card_id": card_id,
                "category": card.category.value,
                "user_id_hash": hash_pii(user_id),
            }
        )
        return entry

    def mark_shared_entry_read(self, user_id: str, entry_id: str) -> bool:
        """Mark a health entry shared with ``user_id`` read.

        Returns:
            True if the user received such an entry
        """
        entry = next((e for e in self.received_health_entries(user_id) if e.id == entry_id), None)
        if entry is None:
            logger.warning(
                "SHARED_ENTRY_NOT_FOUND",
                extra={"entity_id": entry_id, "user_id_hash": hash_pii(user_id)}
            )
            return False

        return self._update(
            user_id,
            "shared_health_entries",
            entry_id,
            {"read": True},
            lambda: self.repositories["shared_health_entries"].mark_read(entry_id, user_id=user_id),
            local_owners=(entry.from_user_id, user_id),
        )

    def save_user(self, user: User) -> None:
        user_id_hash = hash_pii(user.id)

        try:
            self.local.save_user(user.to_dict())
        except Exception as e:
            logger.error(
                "LOCAL_SAVE_FAILED",
                extra={
                    "kind": "users",
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

        if not self.is_hosted:
            return

        try:
            self.users.save(user)
        except Exception as e:
            logger.error(
                "HOSTED_SAVE_FAILED",
                extra={
                    "kind": "users",
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

    # Reads

    def load_user(self, user_id: str) -> Optional[User]:
        """Load a user, from the hosted store first, else the local one."""
        if self.is_hosted:
            try:
                user = self.users.find_by_id(user_id)
                if user is not None:
                    return user
            except Exception as e:
                logger.error(
                    "HOSTED_LOAD_FAILED",
                    extra={
                        "kind": "users",
                        "user_id_hash": hash_pii(user_id),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        data = self.local.load_user(user_id)
        return User.from_dict(data) if data else None

    def load_user_data(self, user_id: str) -> UserData:
        """Load a user and all of their records.

        Each kind is read from the hosted store when available, falling
        back to the local store when hosted reads fail.
        """
        data = UserData(user=self.load_user(user_id))
        for kind in ENTITY_KINDS:
            setattr(data, kind, self._load_kind(user_id, kind))

        logger.info(
            "USER_DATA_LOADED",
            extra={
                "user_id_hash": hash_pii(user_id),
                **{kind: len(getattr(data, kind)) for kind in ENTITY_KINDS},
            }
        )
        return data

    def _load_kind(self, user_id: str, kind: str) -> List[Any]:
        if self.is_hosted:
            try:
                newest_first = self.repositories[kind].find_by_user(user_id, limit=self.config.load_limit)
                return list(reversed(newest_first))
            except Exception as e:
                logger.error(
                    "HOSTED_LOAD_FAILED",
                    extra={
                        "kind": kind,
                        "user_id_hash": hash_pii(user_id),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        return [_FROM_DICT[kind](item) for item in self.local.list_items(user_id, kind)]

    def family_requests(self, user_id: str) -> List[FamilyRequest]:
        """Requests sent or received by the user, oldest first."""
        return self._load_kind(user_id, "family_requests")

    def received_health_entries(self, user_id: str) -> List[SharedHealthEntry]:
        return [e for e in self._load_kind(user_id, "shared_health_entries") if e.to_user_id == user_id]

    def sent_health_entries(self, user_id: str) -> List[SharedHealthEntry]:
        return [e for e in self._load_kind(user_id, "shared_health_entries") if e.from_user_id == user_id]

    def cli_scores(self, user_id: str, limit: int = 10) -> List[Optional[float]]:
        """Overall CLI scores of the user's first ``limit`` talk sessions, oldest first."""
        if self.is_hosted:
            try:
                return self.repositories["talk_sessions"].find_scores_by_user(user_id, limit=limit)
            except Exception as e:
                logger.error(
                    "HOSTED_LOAD_FAILED",
                    extra={
                        "kind": "talk_sessions",
                        "user_id_hash": hash_pii(user_id),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        return [item.get("cli_score") for item in self.local.list_items(user_id, "talk_sessions")[:limit]]

    # Reconciliation

    def sync_new_items(self, user_id: str) -> Dict[str, int]:
        """Push locally stored items the hosted store does not have yet.

        Returns:
            Number of items inserted per kind (all zero without a hosted store)
        """
        counts = {kind: 0 for kind in ENTITY_KINDS}
        counts["users"] = 0
        if not self.is_hosted:
            return counts

        user_id_hash = hash_pii(user_id)

        try:
            local_user = self.local.load_user(user_id)
            if local_user and self.users.insert(User.from_dict(local_user)):
                counts["users"] = 1
        except Exception as e:
            logger.error(
                "SYNC_FAILED",
                extra={
                    "kind": "users",
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

        for kind in ENTITY_KINDS:
            repository = self.repositories[kind]
            try:
                hosted_ids = repository.find_ids_by_user(user_id)
                for item in self.local.list_items(user_id, kind):
                    if item["id"] in hosted_ids:
                        continue
                    if repository.insert(_FROM_DICT[kind](item), owner_id=user_id):
                        counts[kind] += 1
            except Exception as e:
                logger.error(
                    "SYNC_FAILED",
                    extra={
                        "kind": kind,
                        "user_id_hash": user_id_hash,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        logger.info(
            "SYNC_COMPLETED",
            extra={"user_id_hash": user_id_hash, **counts}
        )
        return counts
