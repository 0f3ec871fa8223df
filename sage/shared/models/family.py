"""Family connection and sharing records.

A family request links two Sage accounts once the recipient accepts it.
Connected accounts can then share confirmed health cards with each
other. Both records involve two users, so each is stored for both.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict
import uuid

from .health import HealthCard
from .talk import parse_timestamp, utc_now


class RequestStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class FamilyRequest:
    """A request from one account to connect with another."""
    from_user_id: str
    from_name: str
    to_user_id: str
    to_name: str
    relationship: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    status: RequestStatus = RequestStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def involves(self, user_id: str) -> bool:
        return user_id in (self.from_user_id, self.to_user_id)

    def with_status(self, status: RequestStatus) -> "FamilyRequest":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_user_id": self.from_user_id,
            "from_name": self.from_name,
            "to_user_id": self.to_user_id,
            "to_name": self.to_name,
            "relationship": self.relationship,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FamilyRequest":
        return cls(
            id=data["id"],
            from_user_id=data["from_user_id"],
            from_name=data.get("from_name", ""),
            to_user_id=data["to_user_id"],
            to_name=data.get("to_name", ""),
            relationship=data.get("relationship", ""),
            timestamp=parse_timestamp(data["timestamp"]),
            status=RequestStatus(data.get("status", "pending")),
        )


@dataclass(frozen=True)
class SharedHealthEntry:
    """A confirmed health card sent to a connected family member.

    ``card`` is a snapshot taken when the card was shared.
    """
    from_user_id: str
    from_name: str
    to_user_id: str
    card: HealthCard
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    read: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_user_id": self.from_user_id,
            "from_name": self.from_name,
            "to_user_id": self.to_user_id,
            "card": self.card.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedHealthEntry":
        return cls(
            id=data["id"],
            from_user_id=data["from_user_id"],
            from_name=data.get("from_name", ""),
            to_user_id=data["to_user_id"],
            card=HealthCard.from_dict(data["card"]),
            timestamp=parse_timestamp(data["timestamp"]),
            read=bool(data.get("read", False)),
        )


@dataclass(frozen=True)
class Insight:
    """A note about the user's trends, shown until it has been read.

    ``insight_type`` is a free-form label such as "trend" or "tip".
    """
    insight_type: str
    title: str
    description: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    read: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.insight_type,
            "title": self.title,
            "description": self.description,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Insight":
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            insight_type=data.get("type", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            read=bool(data.get("read", False)),
        )
