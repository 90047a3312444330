"""MySQL client for persistent config storage.

Подключаемся через PyMySQL. Подходит и для MySQL-совместимых БД
(MariaDB, StarRocks FE на порту 9030).
"""

import os
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import pymysql
from pymysql.connections import Connection
from pymysql.cursors import DictCursor

from src.logger.logger import get_logger
from src.logger.types import Category, param


class MySQLConfig:
    """MySQL connection configuration."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        connect_timeout: int = 5,
        read_timeout: int = 10,
        write_timeout: int = 10,
        charset: str = "utf8mb4",
    ) -> None:
        self.host = host or os.getenv("MYSQL_HOST", "localhost")
        self.port = port or int(os.getenv("MYSQL_PORT", "3306"))
        self.database = database or os.getenv("MYSQL_DATABASE", "app")
        self.user = user or os.getenv("MYSQL_USER", "app")
        self.password = password or self._read_password()
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.charset = charset

    @staticmethod
    def _read_password() -> str:
        """Read password from Docker secret or env."""
        secret_file = "/run/secrets/mysql_password"
        if os.path.exists(secret_file):
            with open(secret_file) as f:
                return f.read().strip()
        return os.getenv("MYSQL_PASSWORD", "")

    def to_dict(self) -> dict[str, Any]:
        """Convert config to PyMySQL connection kwargs."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "charset": self.charset,
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
            "write_timeout": self.write_timeout,
            "cursorclass": DictCursor,
            "autocommit": False,
        }


class MySQLClient:
    """MySQL client with a single lazily (re)connected connection."""

    def __init__(self, config: MySQLConfig | None = None) -> None:
        """
        Initialize MySQL client.

        Args:
            config: MySQLConfig instance or None for defaults
        """
        self.config = config or MySQLConfig()
        self._connection: Connection | None = None
        self._lock = threading.Lock()
        self.logger = get_logger().with_category(Category.DATABASE)

    def connect(self) -> Connection:
        """Connect to MySQL."""
        try:
            connection = pymysql.connect(**self.config.to_dict())
            self.logger.info(
                "Connected to MySQL",
                param("host", self.config.host),
                param("port", self.config.port),
                param("database", self.config.database),
            )
        except pymysql.Error as e:
            self.logger.error(
                "Failed to connect to MySQL",
                e,
                param("host", self.config.host),
                param("port", self.config.port),
            )
            raise ConnectionError(f"Failed to connect to MySQL: {e}") from e
        self._connection = connection
        return connection

    def close(self) -> None:
        """Close MySQL connection."""
        if self._connection:
            try:
                self._connection.close()
            except pymysql.Error:
                pass
            finally:
                self._connection = None

    def _ensure_connected(self) -> Connection:
        """Ensure we have a valid connection, reconnect if needed."""
        if self._connection is None:
            return self.connect()

        try:
            self._connection.ping(reconnect=True)
        except pymysql.Error as e:
            self.logger.warn(
                "MySQL connection lost, reconnecting...",
                param("error", str(e)),
            )
            self._connection = pymysql.connect(**self.config.to_dict())

        return self._connection

    @contextmanager
    def transaction(self) -> Generator[DictCursor, None, None]:
        """Cursor inside a transaction: commit on success, rollback on error."""
        with self._lock:
            conn = self._ensure_connected()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def execute(self, query: str, params: tuple[Any, ...] | None = None) -> int:
        """
        Execute query without returning results.

        Returns:
            Number of affected rows
        """
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(
        self, query: str, params: tuple[Any, ...] | None = None
    ) -> list[dict[str, Any]]:
        """
        Execute query and fetch all results.

        Returns:
            List of dicts with column names as keys
        """
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return list(cursor.fetchall())
