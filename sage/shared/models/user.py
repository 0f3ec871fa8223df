"""User aggregate and activity records."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from .talk import parse_timestamp, utc_now


@dataclass(frozen=True)
class FamilyMember:
    """A family member who may see confirmed health cards.

    ``user_id`` is the member's own Sage account once a family request
    between the two accounts has been accepted.
    """
    name: str
    relationship: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "relationship": self.relationship,
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FamilyMember":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data.get("name", ""),
            relationship=data.get("relationship", ""),
            user_id=data.get("user_id"),
        )


@dataclass
class User:
    """Single aggregate root per account.

    ``cognitive_profile`` is an opaque JSON document owned by the client.
    """
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    preferred_name: str = ""
    cognitive_profile: Dict[str, Any] = field(default_factory=dict)
    family_members: List[FamilyMember] = field(default_factory=list)
    has_completed_onboarding: bool = False
    created_at: datetime = field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        return self.preferred_name or self.name

    def connected_member(self, member_user_id: str) -> Optional[FamilyMember]:
        """The family member linked to account ``member_user_id``, if any."""
        for member in self.family_members:
            if member.user_id == member_user_id:
                return member
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "preferred_name": self.preferred_name,
            "cognitive_profile": self.cognitive_profile,
            "family_members": [m.to_dict() for m in self.family_members],
            "has_completed_onboarding": self.has_completed_onboarding,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            preferred_name=data.get("preferred_name") or "",
            cognitive_profile=data.get("cognitive_profile") or {},
            family_members=[FamilyMember.from_dict(m) for m in data.get("family_members") or []],
            has_completed_onboarding=bool(data.get("has_completed_onboarding", False)),
            created_at=parse_timestamp(data["created_at"]) if data.get("created_at") else utc_now(),
        )


@dataclass(frozen=True)
class GameResult:
    """Outcome of one cognitive game round."""
    game_type: str
    score: int
    time_taken: float
    accuracy: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not 0.0 <= self.accuracy <= 1.0:
            raise ValueError(f"Accuracy must be 0.0-1.0, got {self.accuracy}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "game_type": self.game_type,
            "score": self.score,
            "time_taken": self.time_taken,
            "accuracy": self.accuracy,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameResult":
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            game_type=data["game_type"],
            score=int(data["score"]),
            time_taken=float(data["time_taken"]),
            accuracy=float(data["accuracy"]),
        )
