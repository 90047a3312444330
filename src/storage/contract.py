"""Storage contract for persisted config values."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageContract(Protocol):
    """
    Authoritative source of persisted config values.

    Implementations raise StorageError on any backend failure.
    """

    def read_all(self) -> dict[str, Any]:
        """Return all persisted {key: value} pairs."""
        ...

    def write(self, key: str, value: Any) -> None:
        """Insert or update a single value."""
        ...

    def delete(self, key: str) -> None:
        """Remove a single persisted value (no error if absent)."""
        ...

    def clear(self) -> None:
        """Remove all persisted values."""
        ...
