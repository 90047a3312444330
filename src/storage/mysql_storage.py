"""Persistent config storage in MySQL."""

from typing import Any

import pymysql

from src.database.mysql import MySQLClient
from src.domain.errors import ConfigurationError, StorageError
from src.logger.logger import get_logger
from src.logger.types import Category, param
from src.storage.postgres_storage import TABLE_NAME_PATTERN


class MySQLStorage:
    """Storage of persistent config values in a MySQL table."""

    def __init__(
        self,
        mysql_client: MySQLClient,
        table: str = "persistent_config",
        updated_by: str = "system",
    ) -> None:
        if not TABLE_NAME_PATTERN.match(table):
            raise ConfigurationError(f"Invalid table name: {table!r}")
        self.mysql = mysql_client
        self.table = table
        self.updated_by = updated_by
        self.logger = get_logger().with_category(Category.DATABASE)

    def ensure_table(self) -> None:
        """Create storage table if it does not exist."""
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS `{self.table}` (
                `key` VARCHAR(255) NOT NULL PRIMARY KEY,
                `value` TEXT NULL,
                `updated_at` DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                    ON UPDATE CURRENT_TIMESTAMP,
                `updated_by` VARCHAR(64) NOT NULL DEFAULT 'system'
            )
            """,
            None,
            "Failed to create persistent config table",
        )

    def read_all(self) -> dict[str, Any]:
        """
        Get all persisted values.

        Raises:
            StorageError: If the query fails
        """
        try:
            rows = self.mysql.fetch_all(
                f"SELECT `key`, `value` FROM `{self.table}` ORDER BY `key`"
            )
        except (pymysql.Error, RuntimeError, ConnectionError) as e:
            self.logger.error(
                "Failed to read persistent config",
                e,
                param("table", self.table),
            )
            raise StorageError(f"Failed to read persistent config: {e}") from e
        return {row["key"]: row["value"] for row in rows}

    def write(self, key: str, value: Any) -> None:
        """Insert or update config value."""
        self._execute(
            f"""
            INSERT INTO `{self.table}` (`key`, `value`, `updated_by`)
            VALUES (%s, %s, %s)
            ON DUPLICATE KEY UPDATE
                `value` = VALUES(`value`),
                `updated_by` = VALUES(`updated_by`)
            """,
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
            f"DELETE FROM `{self.table}` WHERE `key` = %s",
            (key,),
            "Failed to delete persistent config value",
            key,
        )

    def clear(self) -> None:
        """Delete all persisted values."""
        self._execute(
            f"DELETE FROM `{self.table}`",
            None,
            "Failed to clear persistent config",
        )

    def _execute(
        self,
        query: str,
        params: tuple[Any, ...] | None,
        failure: str,
        key: str | None = None,
    ) -> None:
        try:
            self.mysql.execute(query, params)
        except (pymysql.Error, RuntimeError, ConnectionError) as e:
            self.logger.error(failure, e, param("table", self.table), param("key", key))
            raise StorageError(f"{failure}: {e}") from e
