"""Local JSON blob store.

Backup copy of every user's data, and the only copy when no hosted
database is configured. The whole store is one JSON document keyed by
user id:

    {
        "<user_id>": {
            "user": {...} | null,
            "talk_sessions": [...],
            "health_cards": [...],
            "game_results": [...],
            "family_requests": [...],
            "shared_health_entries": [...],
            "insights": [...]
        }
    }

Family requests and shared health entries are kept under both users.
"""
import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

ENTITY_KINDS = (
    "talk_sessions",
    "health_cards",
    "game_results",
    "family_requests",
    "shared_health_entries",
    "insights",
)


class LocalStore:
    """Thread-safe JSON file keyed by user id.

    Items within a kind are kept in insertion order and never share an id.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        self._lock = threading.Lock()

        logger.info(
            "LOCAL_STORE_INITIALIZED",
            extra={"path": self.path}
        )

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    @staticmethod
    def _bucket(data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        bucket = data.setdefault(user_id, {"user": None})
        for kind in ENTITY_KINDS:
            bucket.setdefault(kind, [])
        return bucket

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind: {kind}")

    def save_user(self, user: Dict[str, Any]) -> None:
        with self._lock:
            data = self._read()
            self._bucket(data, user["id"])["user"] = user
            self._write(data)

    def load_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read().get(user_id, {}).get("user")

    def append(self, user_id: str, kind: str, item: Dict[str, Any]) -> bool:
        """Append an item unless one with the same id exists.

        Returns:
            True if appended, False if the id was already stored
        """
        self._check_kind(kind)
        with self._lock:
            data = self._read()
            items = self._bucket(data, user_id)[kind]
            if any(existing.get("id") == item["id"] for existing in items):
                return False
            items.append(item)
            self._write(data)
            return True

    def list_items(self, user_id: str, kind: str) -> List[Dict[str, Any]]:
        """Items of one kind, oldest first."""
        self._check_kind(kind)
        with self._lock:
            return list(self._read().get(user_id, {}).get(kind, []))

    def ids(self, user_id: str, kind: str) -> Set[str]:
        return {item["id"] for item in self.list_items(user_id, kind)}

    def update_item(
        self,
        user_id: str,
        kind: str,
        item_id: str,
        fields: Dict[str, Any],
    ) -> bool:
        """Merge ``fields`` into one stored item.

        Returns:
            True if the item was found
        """
        self._check_kind(kind)
        with self._lock:
            data = self._read()
            for item in self._bucket(data, user_id)[kind]:
                if item.get("id") == item_id:
                    item.update(fields)
                    self._write(data)
                    return True
            return False

    def update_matching(
        self,
        user_id: str,
        kind: str,
        match: Dict[str, Any],
        fields: Dict[str, Any],
    ) -> int:
        """Merge ``fields`` into every item whose values include ``match``.

        Returns:
            Number of items updated
        """
        self._check_kind(kind)
        with self._lock:
            data = self._read()
            updated = 0
            for item in self._bucket(data, user_id)[kind]:
                if all(item.get(key) == value for key, value in match.items()):
                    item.update(fields)
                    updated += 1
            if updated:
                self._write(data)
            return updated

    def clear_user(self, user_id: str) -> bool:
        with self._lock:
            data = self._read()
            if data.pop(user_id, None) is None:
                return False
            self._write(data)
            return True
