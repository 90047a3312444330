"""Persistent config storage in PostgreSQL."""

import re
from typing import Any

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from src.database.postgres import PostgresClient
from src.domain.errors import ConfigurationError, StorageError
from src.logger.logger import get_logger
from src.logger.types import Category, param

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PostgresStorage:
    """Storage of persistent config values in a PostgreSQL table."""

    def __init__(
        self,
        postgres_client: PostgresClient,
        table: str = "persistent_config",
        updated_by: str = "system",
    ) -> None:
        """
        Initialize PostgresStorage.

        Args:
            postgres_client: PostgreSQL client instance
            table: Table holding key/value rows
            updated_by: Who writes values (system, admin, api)
        """
        if not TABLE_NAME_PATTERN.match(table):
            raise ConfigurationError(f"Invalid table name: {table!r}")
        self.postgres = postgres_client
        self.table = table
        self.updated_by = updated_by
        self.logger = get_logger().with_category(Category.DATABASE)

    def ensure_table(self) -> None:
        """Create storage table if it does not exist."""
        self._execute(
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {table} (
                    key VARCHAR(255) PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    updated_by VARCHAR(64) NOT NULL DEFAULT 'system'
                )
                """
            ),
            (),
            "Failed to create persistent config table",
        )

    def read_all(self) -> dict[str, Any]:
        """
        Get all persisted values.

        Returns:
            Dict of config key -> stored text value

        Raises:
            StorageError: If the query fails
        """
        try:
            conn = self.postgres.get_connection()
        except (ConnectionError, psycopg2.Error) as e:
            raise StorageError(f"PostgreSQL unavailable: {e}") from e
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    sql.SQL("SELECT key, value FROM {table} ORDER BY key").format(
                        table=sql.Identifier(self.table)
                    )
                )
                rows = cur.fetchall()
            conn.commit()
            return {row["key"]: row["value"] for row in rows}
        except psycopg2.Error as e:
            conn.rollback()
            self.logger.error(
                "Failed to read persistent config",
                e,
                param("table", self.table),
            )
            raise StorageError(f"Failed to read persistent config: {e}") from e
        finally:
            self.postgres.put_connection(conn)

    def write(self, key: str, value: Any) -> None:
        """
        Insert or update config value.

        Raises:
            StorageError: If the write fails (transaction rolled back)
        """
        self._execute(
            sql.SQL(
                """
                INSERT INTO {table} (key, value, updated_by, updated_at)
                VALUES (%s, %s, %s, NOW())
                ON CONFLICT (key) DO UPDATE SET
                    value = EXCLUDED.value,
                    updated_by = EXCLUDED.updated_by,
                    updated_at = NOW()
                """
            ),
            (key, value, self.updated_by),
            "Failed to write persistent config",
            key,
        )
        self.logger.info(
            "Persistent config updated",
            param("key", key),
            param("updated_by", self.updated_by),
        )

    def delete(self, key: str) -> None:
        """Delete single persisted value."""
        self._execute(
            sql.SQL("DELETE FROM {table} WHERE key = %s"),
            (key,),
            "Failed to delete persistent config value",
            key,
        )

    def clear(self) -> None:
        """Delete all persisted values."""
        self._execute(
            sql.SQL("DELETE FROM {table}"),
            (),
            "Failed to clear persistent config",
        )

    def _execute(
        self,
        query: sql.SQL,
        params: tuple[Any, ...],
        failure: str,
        key: str | None = None,
    ) -> None:
        """Run a statement in its own transaction."""
        try:
            conn = self.postgres.get_connection()
        except (ConnectionError, psycopg2.Error) as e:
            raise StorageError(f"PostgreSQL unavailable: {e}") from e
        try:
            with conn.cursor() as cur:
                cur.execute(query.format(table=sql.Identifier(self.table)), params)
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            self.logger.error(failure, e, param("table", self.table), param("key", key))
            raise StorageError(f"{failure}: {e}") from e
        finally:
            self.postgres.put_connection(conn)
