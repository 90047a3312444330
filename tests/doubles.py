"""Test doubles for storage and cache backends."""

from __future__ import annotations

import threading
import time
from typing import Any

from src.cache.memory_cache import MemoryCache
from src.domain.errors import CacheError, StorageError
from src.storage.array_storage import ArrayStorage


class CountingStorage(ArrayStorage):
    """Array storage that counts calls and can be told to fail."""

    def __init__(self, values: dict[str, Any] | None = None, read_delay: float = 0.0) -> None:
        super().__init__(values)
        self.read_calls = 0
        self.write_calls = 0
        self.read_delay = read_delay
        self.fail_reads = False
        self.fail_writes = False
        self._count_lock = threading.Lock()

    def read_all(self) -> dict[str, Any]:
        with self._count_lock:
            self.read_calls += 1
        if self.read_delay:
            time.sleep(self.read_delay)
        if self.fail_reads:
            raise StorageError("storage down")
        return super().read_all()

    def write(self, key: str, value: Any) -> None:
        self.write_calls += 1
        if self.fail_writes:
            raise StorageError("write rejected")
        super().write(key, value)


class BrokenStorage:
    """Storage raising a non-contract error on every call."""

    def read_all(self) -> dict[str, Any]:
        raise ConnectionRefusedError("connection refused")

    def write(self, key: str, value: Any) -> None:
        raise ConnectionRefusedError("connection refused")

    def delete(self, key: str) -> None:
        raise ConnectionRefusedError("connection refused")

    def clear(self) -> None:
        raise ConnectionRefusedError("connection refused")


class CountingCache(MemoryCache):
    """Memory cache that records set calls and their TTLs."""

    def __init__(self) -> None:
        super().__init__()
        self.set_calls: list[tuple[str, bytes, int | None]] = []
        self.delete_calls: list[str] = []

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        self.set_calls.append((key, value, ttl))
        super().set(key, value, ttl)

    def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        super().delete(key)


class FailingCache:
    """Cache whose backend is unreachable."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or CacheError("cache unreachable")
        self.calls = 0

    def get(self, key: str) -> bytes | None:
        self.calls += 1
        raise self.error

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        self.calls += 1
        raise self.error

    def delete(self, key: str) -> None:
        self.calls += 1
        raise self.error
