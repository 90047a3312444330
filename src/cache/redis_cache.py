"""Redis cache for persistent config."""

from typing import TYPE_CHECKING

import redis
from redis.exceptions import RedisError

from src.domain.errors import CacheError
from src.logger.logger import get_logger
from src.logger.types import Category, param

if TYPE_CHECKING:
    from src.config.settings import CacheConfig


class RedisCache:
    """Cache handle backed by Redis strings (SET ... EX)."""

    def __init__(self, client: redis.Redis, prefix: str = "") -> None:
        """
        Initialize RedisCache.

        Args:
            client: Redis client (binary responses, decode_responses=False)
            prefix: Prefix prepended to every key
        """
        self.client = client
        self.prefix = prefix
        self.logger = get_logger().with_category(Category.CACHE)

    @classmethod
    def from_config(cls, config: "CacheConfig") -> "RedisCache":
        """
        Create cache from settings.

        Connection is lazy: an unreachable Redis only shows up as CacheError
        on the first call.
        """
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=False,
            socket_connect_timeout=config.socket_timeout,
            socket_timeout=config.socket_timeout,
            socket_keepalive=True,
        )
        return cls(client, prefix=config.prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> bytes | None:
        """Get cached blob or None on miss."""
        try:
            value = self.client.get(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis GET failed for {key!r}: {e}") from e
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        """Store blob, expiring after ttl seconds (never if ttl is None)."""
        try:
            self.client.set(self._key(key), value, ex=ttl)
        except RedisError as e:
            raise CacheError(f"Redis SET failed for {key!r}: {e}") from e
        self.logger.debug(
            "Cache entry stored",
            param("key", key),
            param("ttl", ttl),
            param("bytes", len(value)),
        )

    def delete(self, key: str) -> None:
        """Delete cached blob."""
        try:
            self.client.delete(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis DEL failed for {key!r}: {e}") from e

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        """Close Redis connection pool."""
        self.client.close()
