"""Table-per-entity repositories over the pooled Postgres connection.

A subclass names its table, lists its ``columns`` in the order
``_row_to_entity`` reads them, and maps entities to column values.
Rows are owned by a user through ``user_column``; ids are generated
client-side, so inserts are idempotent on ``id``.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Generic, Iterator, List, Optional, Sequence, Set, TypeVar

from psycopg2 import errors as pg_errors

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    pass


class NotFoundError(RepositoryError):
    pass


class DuplicateError(RepositoryError):
    """An entity with the same id is already stored."""
    pass


class BaseRepository(ABC, Generic[T]):
    """CRUD over one table of user-owned rows."""

    #: Columns in the order ``_row_to_entity`` expects them
    columns: Sequence[str] = ()
    #: Column holding the owning user id
    user_column: str = "user_id"
    #: Column used for newest-first ordering
    order_column: str = "created_at"

    def __init__(self, connection_manager: ConnectionManager, table_name: str):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Map an entity to column values, ``id`` included."""
        pass

    @property
    def _select_list(self) -> str:
        return ", ".join(self.columns) if self.columns else "*"

    @contextmanager
    def _cursor(self, commit: bool = False) -> Iterator[Any]:
        """Cursor on a pooled connection, committed on clean exit if asked."""
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur
            if commit:
                conn.commit()

    def _params(self, entity: T, owner_id: Optional[str]) -> Dict[str, Any]:
        params = self._entity_to_params(entity)
        if owner_id is not None:
            params[self.user_column] = owner_id
        return params

    # Reads

    def find_by_id(self, entity_id: str) -> Optional[T]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {self._select_list} FROM {self.table_name} WHERE id = %s",
                (entity_id,)
            )
            row = cur.fetchone()
        return self._row_to_entity(row) if row is not None else None

    def get(self, entity_id: str) -> T:
        """Like find_by_id, but raises NotFoundError for a missing id."""
        entity = self.find_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.table_name} {entity_id} not found")
        return entity

    def find_by_user(self, user_id: str, limit: int = 100) -> List[T]:
        """Up to ``limit`` of a user's entities, newest first."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {self._select_list} FROM {self.table_name}
                WHERE {self.user_column} = %s
                ORDER BY {self.order_column} DESC
                LIMIT %s
                """,
                (user_id, limit)
            )
            rows = cur.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def find_ids_by_user(self, user_id: str) -> Set[str]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT id FROM {self.table_name} WHERE {self.user_column} = %s",
                (user_id,)
            )
            return {str(row[0]) for row in cur.fetchall()}

    def count(self) -> int:
        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
            row = cur.fetchone()
        return row[0] if row else 0

    # Writes

    def insert(self, entity: T, owner_id: Optional[str] = None) -> bool:
        """Insert unless a row with the same id exists.

        Args:
            entity: Entity to insert
            owner_id: Owning user id, written to ``user_column``

        Returns:
            True if a row was inserted, False if the id already existed
        """
        params = self._params(entity, owner_id)
        column_list = ", ".join(params)
        placeholders = ", ".join(["%s"] * len(params))

        with self._cursor(commit=True) as cur:
            cur.execute(
                f"""
                INSERT INTO {self.table_name} ({column_list})
                VALUES ({placeholders})
                ON CONFLICT (id) DO NOTHING
                """,
                list(params.values())
            )
            return cur.rowcount > 0

    def create(self, entity: T, owner_id: Optional[str] = None) -> T:
        """Insert, raising DuplicateError if the id is taken."""
        if not self.insert(entity, owner_id):
            raise DuplicateError(
                f"{self.table_name} {self._entity_to_params(entity).get('id')} already exists"
            )
        return entity

    def save(self, entity: T, owner_id: Optional[str] = None) -> T:
        """Upsert on ``id`` and return the stored row.

        Raises:
            DuplicateError: If another unique constraint rejects the row
        """
        params = self._params(entity, owner_id)
        column_list = ", ".join(params)
        placeholders = ", ".join(["%s"] * len(params))
        updates = ", ".join(f"{col} = EXCLUDED.{col}" for col in params if col != "id")

        try:
            with self._cursor(commit=True) as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.table_name} ({column_list})
                    VALUES ({placeholders})
                    ON CONFLICT (id) DO UPDATE SET {updates}
                    RETURNING {self._select_list}
                    """,
                    list(params.values())
                )
                row = cur.fetchone()
        except pg_errors.UniqueViolation as e:
            raise DuplicateError(str(e)) from e

        return self._row_to_entity(row) if row else entity

    def update_fields(
        self,
        entity_id: str,
        fields: Dict[str, Any],
        owner_id: Optional[str] = None,
    ) -> bool:
        """Set some columns of one row.

        Args:
            entity_id: Row id
            fields: Column values to set
            owner_id: When given, only a row whose ``user_column`` matches
                is updated

        Returns:
            False if no matching row exists
        """
        if not fields:
            return False

        assignments = ", ".join(f"{col} = %s" for col in fields)
        condition = "id = %s"
        params = [*fields.values(), entity_id]
        if owner_id is not None:
            condition += f" AND {self.user_column} = %s"
            params.append(owner_id)

        with self._cursor(commit=True) as cur:
            cur.execute(
                f"UPDATE {self.table_name} SET {assignments} WHERE {condition}",
                params
            )
            return cur.rowcount > 0

    def delete(self, entity_id: str) -> bool:
        with self._cursor(commit=True) as cur:
            cur.execute(f"DELETE FROM {self.table_name} WHERE id = %s", (entity_id,))
            return cur.rowcount > 0
