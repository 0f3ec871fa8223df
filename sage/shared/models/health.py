"""Health observation and health card domain models.

Observations are what the keyword matcher extracts from an utterance.
A health card is an observation the user has been asked to confirm;
confirmed cards are what family members see.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from .talk import parse_timestamp, utc_now


class HealthCategory(Enum):
    """Fixed health observation categories."""
    PAIN = "pain"
    SLEEP = "sleep"
    MOOD = "mood"
    ENERGY = "energy"
    APPETITE = "appetite"
    MOBILITY = "mobility"
    MEDICATION = "medication"
    SYMPTOM = "symptom"


class Severity(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class DetectionConfidence(Enum):
    """Whether the mention was stated outright or appeared under negation."""
    EXPLICIT = "explicit"
    INFERRED = "inferred"


class HealthIntent(Enum):
    """Coarse intent of a health-related utterance."""
    SYMPTOM = "symptom"
    MEDICATION = "medication"
    PAIN = "pain"
    APPOINTMENT = "appointment"
    MOOD = "mood"
    SLEEP = "sleep"
    NUTRITION = "nutrition"
    GENERAL = "general"


@dataclass(frozen=True)
class HealthObservation:
    """A candidate health observation found in free text."""
    category: HealthCategory
    description: str
    severity: Severity
    confidence: DetectionConfidence

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category.value,
            "description": self.description,
            "severity": self.severity.value,
            "confidence": self.confidence.value,
        }


@dataclass(frozen=True)
class HealthCard:
    """A health observation pending or holding user confirmation."""
    category: HealthCategory
    description: str
    severity: Severity
    confidence: DetectionConfidence
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime = field(default_factory=utc_now)
    confirmed: bool = False
    source_session_id: Optional[str] = None

    def confirm(self) -> "HealthCard":
        return replace(self, confirmed=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "category": self.category.value,
            "description": self.description,
            "severity": self.severity.value,
            "confidence": self.confidence.value,
            "confirmed": self.confirmed,
            "source_session_id": self.source_session_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthCard":
        return cls(
            id=data["id"],
            date=parse_timestamp(data["date"]),
            category=HealthCategory(data["category"]),
            description=data["description"],
            severity=Severity(data["severity"]),
            confidence=DetectionConfidence(data["confidence"]),
            confirmed=bool(data.get("confirmed", False)),
            source_session_id=data.get("source_session_id"),
        )
