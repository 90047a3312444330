"""
Persistent configuration overlay.

Decorates a base configuration: values of registered items are taken from
persistent storage when present, the rest pass through to the base config.
The overridden subset is cached as a JSON object under a single cache key.

Lifecycle:
1. First read triggers load(): cache hit -> apply cached overrides;
   miss -> storage.read_all(), keep registered keys, apply, write cache.
2. Reads after that go straight to the base config (no locking).
3. set()/save() validate, write through to storage, then update the base
   config and the cache entry.
4. invalidate() drops the cache entry and makes the next read re-query storage;
   rebuild_cache() does the same eagerly and reports failures.
"""

import copy
import json
import threading
import time
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from src.cache.contract import CacheHandle
from src.config.repository import BaseConfig
from src.domain.config import ConfigItem, ItemRegistry
from src.domain.errors import CacheError, ConfigurationError, StorageError
from src.logger.logger import Logger, get_logger
from src.logger.types import Category, duration_ms, param
from src.storage.contract import StorageContract
from src.validation.rules import ValidationResult, Validator

DEFAULT_CACHE_KEY = "application.persistent.config"
DEFAULT_CACHE_TTL = 3600 * 24

# Cache TTL meaning the entry never expires
FOREVER = None


def normalize_ttl(ttl: int | timedelta | None) -> int | None:
    """
    Convert TTL to whole seconds.

    Raises:
        ConfigurationError: If TTL is not positive
    """
    if ttl is FOREVER:
        return None
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
        if seconds <= 0:
            raise ConfigurationError(f"Cache TTL must be positive, got {ttl}")
        return max(1, int(seconds))
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise ConfigurationError(f"Cache TTL must be int seconds or timedelta, got {ttl!r}")
    if ttl <= 0:
        raise ConfigurationError(f"Cache TTL must be positive, got {ttl}")
    return ttl


class PersistentRepository:
    """Base config decorated with persisted, cached overrides."""

    def __init__(
        self,
        base: BaseConfig,
        storage: StorageContract,
        items: ItemRegistry | Mapping[str, Any] | list[Any],
        cache: CacheHandle | None = None,
        cache_key: str = DEFAULT_CACHE_KEY,
        cache_ttl: int | timedelta | None = DEFAULT_CACHE_TTL,
        logger: Logger | None = None,
    ) -> None:
        """
        Initialize PersistentRepository.

        Args:
            base: Configuration holding defaults (get/has/set/all)
            storage: Source of persisted values
            items: Keys allowed to be persisted, with label and rules
            cache: Cache handle, or None to always load from storage
            cache_key: Key of the cache entry with overrides
            cache_ttl: Seconds, timedelta or FOREVER

        Raises:
            ConfigurationError: If cache key, TTL or an item key is malformed
        """
        if not isinstance(cache_key, str) or not cache_key.strip():
            raise ConfigurationError("Cache key must be a non-empty string")

        self.base = base
        self.storage = storage
        self.cache = cache
        self.cache_key = cache_key
        self.cache_ttl = normalize_ttl(cache_ttl)
        self._items = ItemRegistry.from_mapping(items)
        self._validator = Validator(self._items)
        self.logger = (logger or get_logger()).with_category(Category.CONFIG)

        self._lock = threading.RLock()
        self._loaded = False
        self._degraded = False
        self._overrides: dict[str, Any] = {}
        self._defaults: dict[str, tuple[bool, Any]] | None = None

    # Read interface

    @property
    def items(self) -> ItemRegistry:
        """Registered persistent items."""
        return self._items

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_degraded(self) -> bool:
        """True if the last load fell back to defaults because storage failed."""
        return self._degraded

    def get(self, key: str, default: Any = None) -> Any:
        """Get effective value by dotted key."""
        self.load()
        return self.base.get(key, default)

    def has(self, key: str) -> bool:
        """Check if key is present in the effective config."""
        self.load()
        return self.base.has(key)

    def all(self) -> dict[str, Any]:
        """Get the whole effective config."""
        self.load()
        return self.base.all()

    def overrides(self) -> dict[str, Any]:
        """Persisted values currently applied over the defaults."""
        self.load()
        return dict(self._overrides)

    def default(self, key: str) -> Any:
        """Value the base config had for a registered key before overlaying."""
        self.load()
        return copy.deepcopy((self._defaults or {}).get(key, (False, None))[1])

    # Loading

    def load(self) -> None:
        """
        Apply persisted values over the base config, at most once.

        Concurrent first callers wait for one cache/storage round trip.
        Storage failure leaves the defaults in place (degraded mode).
        """
        if self._loaded:
            return

        with self._lock:
            if self._loaded:
                return

            started = time.monotonic()
            self._capture_defaults()
            source = "cache"
            overrides = self._read_cache()

            if overrides is None:
                source = "storage"
                try:
                    overrides = self._read_storage()
                except StorageError as e:
                    self.logger.warn(
                        "Persistent config storage unavailable, using defaults",
                        param("error", str(e)),
                        param("error_type", type(e).__name__),
                    )
                    self._degraded = True
                    overrides = {}
                    source = "defaults"
                else:
                    self._degraded = False
                    self._write_cache(overrides)
            else:
                # Cached overlay was built from a successful storage read
                self._degraded = False

            self._apply(overrides)
            self._loaded = True

            self.logger.info(
                "Persistent config loaded",
                param("source", source),
                param("overrides", len(overrides)),
                duration_ms(int((time.monotonic() - started) * 1000)),
            )

    def invalidate(self) -> None:
        """Drop the cache entry; the next read re-queries storage."""
        with self._lock:
            self._delete_cache()
            self._loaded = False
            self.logger.info("Persistent config invalidated", param("cache_key", self.cache_key))

    def rebuild_cache(self) -> dict[str, Any]:
        """
        Reload persisted values from storage and rewrite the cache entry.

        Returns:
            Overrides now in effect

        Raises:
            StorageError: If storage can't be read (state unchanged)
            CacheError: If the cache entry can't be written
        """
        with self._lock:
            self._capture_defaults()
            overrides = self._read_storage()
            self._apply(overrides)
            self._loaded = True
            self._degraded = False

            if self.cache is not None:
                try:
                    self.cache.delete(self.cache_key)
                    self.cache.set(self.cache_key, self._encode(overrides), self.cache_ttl)
                except CacheError:
                    raise
                except Exception as e:
                    raise CacheError(f"Failed to write cache entry {self.cache_key!r}: {e}") from e

            self.logger.info(
                "Persistent config cache rebuilt",
                param("cache_key", self.cache_key),
                param("overrides", len(overrides)),
            )
            return dict(overrides)

    def clear_cache(self) -> None:
        """
        Delete the cache entry without reloading.

        Raises:
            CacheError: If the cache backend fails
        """
        if self.cache is None:
            return
        try:
            self.cache.delete(self.cache_key)
        except CacheError:
            raise
        except Exception as e:
            raise CacheError(f"Failed to delete cache entry {self.cache_key!r}: {e}") from e

    # Write interface

    def validate(self, values: Mapping[str, Any]) -> ValidationResult:
        """Check values against item rules without writing anything."""
        return self._validator.validate(values)

    def set(self, key: str, value: Any) -> None:
        """
        Set config value.

        Registered items are validated and written through to storage;
        other keys are only changed in-process.

        Raises:
            ValidationError: If a rule rejects the value
            StorageError: If the write fails (nothing changed)
        """
        self.save({key: value})

    def save(self, values: Mapping[str, Any]) -> None:
        """
        Validate all values, then write registered ones through to storage.

        Validation is all-or-nothing. A storage failure stops at the failing
        key; values written before it stay in effect.

        Raises:
            ValidationError: If any value is rejected (nothing written)
            StorageError: If a write fails
        """
        self.load()
        with self._lock:
            result = self._validator.validate(values)
            if not result.is_valid:
                self.logger.with_category(Category.VALIDATION).warn(
                    "Persistent config values rejected",
                    param("errors", result.errors),
                )
                result.raise_for_errors()

            written: dict[str, Any] = {}
            try:
                for key, value in values.items():
                    item = self._items.get(key)
                    if item is None:
                        self.base.set(key, value)
                        continue
                    written[key] = self._persist(item, value)
            finally:
                if written:
                    for key, typed in written.items():
                        self.base.set(key, copy.deepcopy(typed))
                        self._overrides[key] = typed
                    self._sync_cache()

    def reset_value(self, key: str) -> None:
        """
        Remove persisted value for key, restoring its default.

        Raises:
            ConfigurationError: If key is not a registered item
            StorageError: If the delete fails
        """
        if key not in self._items:
            raise ConfigurationError(f"{key!r} is not a persistent config item")
        self.load()
        with self._lock:
            self._storage_call("delete", self.storage.delete, key)
            self._overrides.pop(key, None)
            self._restore_default(key)
            self._sync_cache()

    def reset(self) -> None:
        """
        Remove all persisted values, restoring defaults.

        Raises:
            StorageError: If storage can't be cleared
        """
        self.load()
        with self._lock:
            self._storage_call("clear", self.storage.clear)
            for key in list(self._overrides):
                self._restore_default(key)
            self._overrides = {}
            self._delete_cache()
            self.logger.info("Persistent config reset")

    # Internals

    def _capture_defaults(self) -> None:
        if self._defaults is not None:
            return
        self._defaults = {
            key: (self.base.has(key), copy.deepcopy(self.base.get(key)))
            for key in self._items
        }

    def _restore_default(self, key: str) -> None:
        present, value = (self._defaults or {}).get(key, (False, None))
        if present:
            self.base.set(key, copy.deepcopy(value))
            return
        forget = getattr(self.base, "forget", None)
        if callable(forget):
            forget(key)
        else:
            self.base.set(key, None)

    def _apply(self, overrides: dict[str, Any]) -> None:
        """Make overrides effective, restoring defaults of dropped keys."""
        for key in self._overrides:
            if key not in overrides:
                self._restore_default(key)
        for key, value in overrides.items():
            self.base.set(key, copy.deepcopy(value))
        self._overrides = dict(overrides)

    def _read_storage(self) -> dict[str, Any]:
        """Read persisted values, keeping registered keys only."""
        stored = self._storage_call("read", self.storage.read_all)

        overrides: dict[str, Any] = {}
        for key, raw in stored.items():
            item = self._items.get(key)
            if item is None:
                continue
            try:
                overrides[key] = item.restore(raw)
            except ValueError as e:
                self.logger.warn(
                    "Skipping persisted value that can't be cast",
                    param("key", key),
                    param("cast", item.cast),
                    param("error", str(e)),
                )
        return overrides

    def _persist(self, item: ConfigItem, value: Any) -> Any:
        """Write value to storage, returning the typed value to apply."""
        stored = item.serialize(value)
        self._storage_call("write", self.storage.write, item.key, stored)
        return item.restore(stored)

    def _storage_call(self, operation: str, func: Any, *args: Any) -> Any:
        try:
            return func(*args)
        except StorageError as e:
            self.logger.error(
                f"Persistent config storage {operation} failed", e, param("args", list(args))
            )
            raise
        except Exception as e:
            self.logger.error(
                f"Persistent config storage {operation} failed", e, param("args", list(args))
            )
            raise StorageError(f"Storage {operation} failed: {e}") from e

    def _read_cache(self) -> dict[str, Any] | None:
        """Get cached overrides, or None on miss / cache failure / bad payload."""
        if self.cache is None:
            return None
        try:
            payload = self.cache.get(self.cache_key)
        except Exception as e:
            self.logger.with_category(Category.CACHE).warn(
                "Cache unavailable, reading persistent config from storage",
                param("cache_key", self.cache_key),
                param("error", str(e)),
            )
            return None
        if payload is None:
            return None

        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            self.logger.with_category(Category.CACHE).warn(
                "Discarding undecodable cache entry",
                param("cache_key", self.cache_key),
                param("error", str(e)),
            )
            return None
        if not isinstance(data, dict):
            return None
        return {key: value for key, value in data.items() if key in self._items}

    def _write_cache(self, overrides: dict[str, Any]) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(self.cache_key, self._encode(overrides), self.cache_ttl)
        except Exception as e:
            self.logger.with_category(Category.CACHE).warn(
                "Failed to write persistent config cache",
                param("cache_key", self.cache_key),
                param("error", str(e)),
            )

    def _delete_cache(self) -> None:
        if self.cache is None:
            return
        try:
            self.cache.delete(self.cache_key)
        except Exception as e:
            self.logger.with_category(Category.CACHE).warn(
                "Failed to delete persistent config cache",
                param("cache_key", self.cache_key),
                param("error", str(e)),
            )

    def _sync_cache(self) -> None:
        """Rewrite cache after a write; in degraded mode only drop it."""
        if self._degraded:
            self._delete_cache()
        else:
            self._write_cache(self._overrides)

    @staticmethod
    def _encode(overrides: dict[str, Any]) -> bytes:
        return json.dumps(overrides, sort_keys=True, ensure_ascii=False, default=str).encode(
            "utf-8"
        )
