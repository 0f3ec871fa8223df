"""Persistence Service: hosted Postgres store with a local JSON backup.

Key responsibilities:
- Mirror users, talk sessions, health cards and game results to Postgres
- Connect family accounts and share confirmed health cards between them
- Keep insights with their read state
- Keep a local JSON copy of everything as a backup
- Push locally stored items the hosted store is missing
"""

from .local_store import LocalStore
from .repositories import (
    UserRepository,
    TalkSessionRepository,
    HealthCardRepository,
    GameResultRepository,
    FamilyRequestRepository,
    SharedHealthEntryRepository,
    InsightRepository,
)
from .store import SageStore, StoreConfig, UserData

__all__ = [
    "LocalStore",
    "UserRepository",
    "TalkSessionRepository",
    "HealthCardRepository",
    "GameResultRepository",
    "FamilyRequestRepository",
    "SharedHealthEntryRepository",
    "InsightRepository",
    "SageStore",
    "StoreConfig",
    "UserData",
]
