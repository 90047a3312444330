"""Cache handle contract."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CacheHandle(Protocol):
    """
    Named blob cache with expiration.

    Implementations raise CacheError when the backend is unreachable.
    A ttl of None means the entry never expires.
    """

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes, ttl: int | None) -> None: ...

    def delete(self, key: str) -> None: ...
