"""Tests for base repository pattern."""
import pytest
from unittest.mock import MagicMock
from dataclasses import dataclass
from typing import Any, Dict

from psycopg2 import errors as pg_errors

from sage.shared.utils import configure_pii_salt
from sage.shared.database.repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    DuplicateError,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@dataclass
class Note:
    """Entity for repository tests."""
    id: str
    text: str
    value: int


class NoteRepository(BaseRepository[Note]):
    """Concrete repository for testing."""

    columns = ("id", "text", "value")

    def _row_to_entity(self, row: tuple) -> Note:
        return Note(id=row[0], text=row[1], value=row[2])

    def _entity_to_params(self, entity: Note) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "text": entity.text,
            "value": entity.value,
        }


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.fetchone.return_value = None
    cur.fetchall.return_value = []
    cur.rowcount = 0
    return cur


@pytest.fixture
def connection(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def connection_manager(connection):
    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = connection
    return manager


@pytest.fixture
def repository(connection_manager):
    return NoteRepository(connection_manager, "notes")


class TestRepositoryExceptions:
    """Tests for repository exception classes."""

    def test_repository_error(self):
        error = RepositoryError("Test error")
        assert str(error) == "Test error"

    def test_not_found_error(self):
        assert isinstance(NotFoundError("Entity not found"), RepositoryError)

    def test_duplicate_error(self):
        assert isinstance(DuplicateError("Duplicate entity"), RepositoryError)


class TestReads:
    """Tests for read operations."""

    def test_initialization(self, repository):
        assert repository.table_name == "notes"

    def test_find_by_id_not_found(self, repository):
        assert repository.find_by_id("note_1") is None

    def test_find_by_id_found(self, repository, cursor):
        cursor.fetchone.return_value = ("note_1", "hello", 42)

        note = repository.find_by_id("note_1")

        assert note == Note(id="note_1", text="hello", value=42)
        query, params = cursor.execute.call_args.args
        assert "SELECT id, text, value FROM notes WHERE id = %s" in query
        assert params == ("note_1",)

    def test_get_raises_not_found(self, repository):
        with pytest.raises(NotFoundError):
            repository.get("missing")

    def test_find_by_user(self, repository, cursor):
        cursor.fetchall.return_value = [("n2", "b", 2), ("n1", "a", 1)]

        notes = repository.find_by_user("user_123", limit=5)

        assert [n.id for n in notes] == ["n2", "n1"]
        query, params = cursor.execute.call_args.args
        assert "WHERE user_id = %s" in query
        assert "ORDER BY created_at DESC" in query
        assert params == ("user_123", 5)

    def test_find_ids_by_user(self, repository, cursor):
        cursor.fetchall.return_value = [("n1",), ("n2",)]
        assert repository.find_ids_by_user("user_123") == {"n1", "n2"}

    def test_count_empty(self, repository):
        assert repository.count() == 0

    def test_count(self, repository, cursor):
        cursor.fetchone.return_value = (7,)
        assert repository.count() == 7


class TestWrites:
    """Tests for write operations."""

    def test_insert_new_row(self, repository, cursor, connection):
        cursor.rowcount = 1

        assert repository.insert(Note(id="n1", text="a", value=1)) is True
        query, params = cursor.execute.call_args.args
        assert "ON CONFLICT (id) DO NOTHING" in query
        assert params == ["n1", "a", 1]
        connection.commit.assert_called_once()

    def test_insert_existing_id(self, repository, cursor):
        cursor.rowcount = 0
        assert repository.insert(Note(id="n1", text="a", value=1)) is False

    def test_insert_with_owner(self, repository, cursor):
        cursor.rowcount = 1

        repository.insert(Note(id="n1", text="a", value=1), owner_id="user_123")

        query, params = cursor.execute.call_args.args
        assert "user_id" in query
        assert params[-1] == "user_123"

    def test_create_duplicate_raises(self, repository, cursor):
        cursor.rowcount = 0
        with pytest.raises(DuplicateError):
            repository.create(Note(id="n1", text="a", value=1))

    def test_save_upserts(self, repository, cursor):
        cursor.fetchone.return_value = ("n1", "updated", 2)

        saved = repository.save(Note(id="n1", text="updated", value=2))

        assert saved.text == "updated"
        query, _ = cursor.execute.call_args.args
        assert "ON CONFLICT (id) DO UPDATE SET text = EXCLUDED.text, value = EXCLUDED.value" in query

    def test_save_unique_violation_raises_duplicate(self, repository, cursor):
        cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate key")
        with pytest.raises(DuplicateError):
            repository.save(Note(id="n1", text="a", value=1))

    def test_update_fields(self, repository, cursor):
        cursor.rowcount = 1

        assert repository.update_fields("n1", {"value": 5}) is True
        query, params = cursor.execute.call_args.args
        assert "UPDATE notes SET value = %s WHERE id = %s" in query
        assert params == [5, "n1"]

    def test_update_fields_scoped_to_owner(self, repository, cursor):
        cursor.rowcount = 0

        assert repository.update_fields("n1", {"value": 5}, owner_id="someone_else") is False
        query, params = cursor.execute.call_args.args
        assert "WHERE id = %s AND user_id = %s" in query
        assert params == [5, "n1", "someone_else"]

    def test_update_no_fields(self, repository, cursor):
        assert repository.update_fields("n1", {}) is False
        cursor.execute.assert_not_called()

    def test_delete(self, repository, cursor):
        cursor.rowcount = 1
        assert repository.delete("n1") is True

    def test_delete_missing(self, repository, cursor):
        cursor.rowcount = 0
        assert repository.delete("n1") is False
