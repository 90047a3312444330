"""In-process TTL cache."""

import threading
import time


class MemoryCache:
    """Thread-safe dict cache with per-entry expiry."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[bytes, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        """Get value from cache."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if expiry is not None and expiry <= time.monotonic():
                # Expired
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        """Set value in cache with TTL (None = forever)."""
        expiry = time.monotonic() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expiry)

    def delete(self, key: str) -> None:
        """Delete key from cache."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._entries.clear()
