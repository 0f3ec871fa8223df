"""Talk session domain models.

A talk session is one spoken conversation between the user and Sage.
Messages are immutable once created; the session is appended to while
active and finalized with a Cognitive Linguistic Index (CLI) score.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MessageRole(Enum):
    """Speaker of a talk message."""
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str) -> "MessageRole":
        # Older clients label assistant turns "sage"
        if value == "sage":
            return cls.ASSISTANT
        return cls(value)


class SessionStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class TalkMessage:
    """A single conversational turn."""
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TalkMessage":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            role=MessageRole.parse(data["role"]),
            content=data.get("content", ""),
            timestamp=parse_timestamp(data["timestamp"]) if data.get("timestamp") else utc_now(),
        )


@dataclass(frozen=True)
class CLIBreakdown:
    """The six CLI sub-scores, each 0-100."""
    lexical_access: float
    fluency: float
    syntactic_complexity: float
    coherence: float
    processing_speed: float
    attention: float

    def __post_init__(self):
        for name, value in self.to_dict().items():
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} must be 0-100, got {value}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "lexical_access": self.lexical_access,
            "fluency": self.fluency,
            "syntactic_complexity": self.syntactic_complexity,
            "coherence": self.coherence,
            "processing_speed": self.processing_speed,
            "attention": self.attention,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CLIBreakdown":
        return cls(**{key: float(data[key]) for key in (
            "lexical_access",
            "fluency",
            "syntactic_complexity",
            "coherence",
            "processing_speed",
            "attention",
        )})


@dataclass(frozen=True)
class CLIScore:
    """Cognitive Linguistic Index for one session. Internal only."""
    overall: int
    breakdown: CLIBreakdown

    def __post_init__(self):
        if not 0 <= self.overall <= 100:
            raise ValueError(f"Overall CLI score must be 0-100, got {self.overall}")


@dataclass
class TalkSession:
    """A conversation with Sage.

    Created on conversation start, appended to while active, and
    finalized with status COMPLETED and a CLI score when it ends.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    messages: List[TalkMessage] = field(default_factory=list)
    cli_score: Optional[int] = None
    cli_breakdown: Optional[CLIBreakdown] = None
    status: SessionStatus = SessionStatus.ACTIVE
    duration: float = 0.0

    @property
    def transcript(self) -> str:
        return "\n".join(
            f"{'Sage' if m.role == MessageRole.ASSISTANT else 'User'}: {m.content}"
            for m in self.messages
        )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def append(self, message: TalkMessage) -> None:
        if not self.is_active:
            raise ValueError(f"Session {self.id} is already completed")
        self.messages.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
            "transcript": self.transcript,
            "cli_score": self.cli_score,
            "cli_breakdown": self.cli_breakdown.to_dict() if self.cli_breakdown else None,
            "status": self.status.value,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TalkSession":
        breakdown = data.get("cli_breakdown")
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            messages=[TalkMessage.from_dict(m) for m in data.get("messages") or []],
            cli_score=int(data["cli_score"]) if data.get("cli_score") is not None else None,
            cli_breakdown=CLIBreakdown.from_dict(breakdown) if breakdown else None,
            status=SessionStatus(data.get("status", "active")),
            duration=float(data.get("duration") or 0.0),
        )
