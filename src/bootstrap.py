"""Composition root: builds the persistent config overlay from settings."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.cache.contract import CacheHandle
from src.cache.memory_cache import MemoryCache
from src.cache.redis_cache import RedisCache
from src.config.repository import BaseConfig, ConfigRepository
from src.config.settings import Settings
from src.database.mysql import MySQLClient
from src.database.postgres import PostgresClient
from src.domain.config import ItemRegistry
from src.domain.errors import ConfigurationError
from src.logger.logger import get_logger
from src.logger.types import Category, param
from src.persistent.repository import PersistentRepository
from src.storage.array_storage import ArrayStorage
from src.storage.contract import StorageContract
from src.storage.mysql_storage import MySQLStorage
from src.storage.postgres_storage import PostgresStorage


@dataclass
class PersistentConfig:
    """Overlay plus the connections it owns."""

    repository: PersistentRepository
    _closers: list[Callable[[], None]] = field(default_factory=list)

    def close(self) -> None:
        """Release database and cache connections."""
        for closer in reversed(self._closers):
            closer()
        self._closers.clear()


def build_storage(settings: Settings) -> tuple[StorageContract, Callable[[], None] | None]:
    """
    Create storage backend selected by PERSISTENT_CONFIG_STORAGE.

    Database connections are opened on first use, so an unreachable
    database degrades the first load instead of failing startup.

    Returns:
        Storage and an optional close callback
    """
    backend = settings.persistent.storage
    table = settings.persistent.table

    if backend == "postgres":
        postgres_client = PostgresClient(settings.postgres)
        return PostgresStorage(postgres_client, table=table), postgres_client.close
    if backend == "mysql":
        mysql_client = MySQLClient(settings.mysql)
        return MySQLStorage(mysql_client, table=table), mysql_client.close
    if backend == "array":
        return ArrayStorage(), None

    raise ConfigurationError(f"Unsupported storage backend: {backend!r}")


def build_cache(settings: Settings) -> tuple[CacheHandle | None, Callable[[], None] | None]:
    """Create cache backend selected by PERSISTENT_CONFIG_CACHE."""
    backend = settings.persistent.cache
    if backend == "redis":
        cache = RedisCache.from_config(settings.cache)
        return cache, cache.close
    if backend == "memory":
        return MemoryCache(), None
    return None, None


def load_items(settings: Settings, items_path: str | None = None) -> ItemRegistry:
    """Load item registry from --items path or PERSISTENT_CONFIG_ITEMS."""
    path = items_path or settings.persistent.items_path
    if not path:
        raise ConfigurationError(
            "No persistent config items declared (set PERSISTENT_CONFIG_ITEMS or pass --items)"
        )
    return ItemRegistry.from_json_file(path)


def load_defaults(settings: Settings, defaults_path: str | None = None) -> ConfigRepository:
    """Load base config from --defaults path or PERSISTENT_CONFIG_DEFAULTS (optional)."""
    path = defaults_path or settings.persistent.defaults_path
    if not path:
        return ConfigRepository()
    return ConfigRepository.from_json_file(path)


def build_persistent_config(
    settings: Settings,
    items: ItemRegistry | dict[str, Any] | None = None,
    base: BaseConfig | None = None,
    storage: StorageContract | None = None,
    cache: CacheHandle | None = None,
) -> PersistentConfig:
    """
    Build the overlay once at process startup.

    Explicit arguments win over settings, so an application can pass its own
    item declarations, base config or backends.

    Args:
        settings: Application settings
        items: Item declarations (loaded from PERSISTENT_CONFIG_ITEMS if None)
        base: Base config (loaded from PERSISTENT_CONFIG_DEFAULTS if None)
        storage: Storage backend (built from settings if None)
        cache: Cache backend (built from settings if None)

    Returns:
        PersistentConfig holding the repository; call close() on shutdown
    """
    logger = get_logger().with_category(Category.CONFIG)
    closers: list[Callable[[], None]] = []

    registry = ItemRegistry.from_mapping(items) if items is not None else load_items(settings)
    base_config = base if base is not None else load_defaults(settings)

    if storage is None:
        storage, close_storage = build_storage(settings)
        if close_storage:
            closers.append(close_storage)
    if cache is None:
        cache, close_cache = build_cache(settings)
        if close_cache:
            closers.append(close_cache)

    repository = PersistentRepository(
        base=base_config,
        storage=storage,
        items=registry,
        cache=cache,
        cache_key=settings.persistent.cache_key,
        cache_ttl=settings.persistent.cache_ttl,
    )

    logger.info(
        "Persistent config initialized",
        param("storage", type(storage).__name__),
        param("cache", type(cache).__name__ if cache else None),
        param("cache_key", settings.persistent.cache_key),
        param("cache_ttl", settings.persistent.cache_ttl),
        param("items", len(registry)),
    )
    return PersistentConfig(repository=repository, _closers=closers)
