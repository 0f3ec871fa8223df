"""Shared domain models for Sage services."""
from .talk import (
    MessageRole,
    SessionStatus,
    TalkMessage,
    TalkSession,
    CLIBreakdown,
    CLIScore,
    parse_timestamp,
    utc_now,
)
from .health import (
    HealthCategory,
    Severity,
    DetectionConfidence,
    HealthIntent,
    HealthObservation,
    HealthCard,
)
from .user import (
    User,
    FamilyMember,
    GameResult,
)
from .family import (
    RequestStatus,
    FamilyRequest,
    SharedHealthEntry,
    Insight,
)

__all__ = [
    "MessageRole",
    "SessionStatus",
    "TalkMessage",
    "TalkSession",
    "CLIBreakdown",
    "CLIScore",
    "parse_timestamp",
    "utc_now",
    "HealthCategory",
    "Severity",
    "DetectionConfidence",
    "HealthIntent",
    "HealthObservation",
    "HealthCard",
    "User",
    "FamilyMember",
    "GameResult",
    "RequestStatus",
    "FamilyRequest",
    "SharedHealthEntry",
    "Insight",
]
