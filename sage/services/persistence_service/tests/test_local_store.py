"""Tests for the local JSON store."""
import json

import pytest

from sage.shared.utils import configure_pii_salt
from sage.services.persistence_service.local_store import LocalStore


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def local(tmp_path):
    return LocalStore(str(tmp_path / "nested" / "store.json"))


class TestLocalStore:
    """Tests for LocalStore."""

    def test_empty_store(self, local):
        assert local.load_user("user_123") is None
        assert local.list_items("user_123", "talk_sessions") == []
        assert local.ids("user_123", "health_cards") == set()

    def test_save_and_load_user(self, local):
        local.save_user({"id": "user_123", "name": "Margaret"})
        assert local.load_user("user_123") == {"id": "user_123", "name": "Margaret"}

    def test_append_keeps_order(self, local):
        local.append("user_123", "game_results", {"id": "g1", "score": 10})
        local.append("user_123", "game_results", {"id": "g2", "score": 20})

        items = local.list_items("user_123", "game_results")
        assert [item["id"] for item in items] == ["g1", "g2"]

    def test_append_skips_duplicate_id(self, local):
        assert local.append("user_123", "health_cards", {"id": "c1"}) is True
        assert local.append("user_123", "health_cards", {"id": "c1"}) is False
        assert len(local.list_items("user_123", "health_cards")) == 1

    def test_users_are_isolated(self, local):
        local.append("user_a", "talk_sessions", {"id": "s1"})
        assert local.list_items("user_b", "talk_sessions") == []

    def test_update_item(self, local):
        local.append("user_123", "health_cards", {"id": "c1", "confirmed": False})

        assert local.update_item("user_123", "health_cards", "c1", {"confirmed": True}) is True
        assert local.list_items("user_123", "health_cards")[0]["confirmed"] is True
        assert local.update_item("user_123", "health_cards", "missing", {"confirmed": True}) is False

    def test_update_matching(self, local):
        local.append("user_123", "insights", {"id": "i1", "read": False})
        local.append("user_123", "insights", {"id": "i2", "read": True})
        local.append("user_123", "insights", {"id": "i3", "read": False})

        assert local.update_matching("user_123", "insights", {"read": False}, {"read": True}) == 2
        assert all(item["read"] for item in local.list_items("user_123", "insights"))
        assert local.update_matching("user_123", "insights", {"read": False}, {"read": True}) == 0

    def test_unknown_kind(self, local):
        with pytest.raises(ValueError):
            local.append("user_123", "diaries", {"id": "d1"})

    def test_clear_user(self, local):
        local.save_user({"id": "user_123", "name": "Margaret"})

        assert local.clear_user("user_123") is True
        assert local.clear_user("user_123") is False
        assert local.load_user("user_123") is None

    def test_persists_to_disk(self, local):
        local.append("user_123", "game_results", {"id": "g1"})

        with open(local.path, encoding="utf-8") as f:
            data = json.load(f)

        assert data["user_123"]["game_results"] == [{"id": "g1"}]
        assert LocalStore(local.path).ids("user_123", "game_results") == {"g1"}
