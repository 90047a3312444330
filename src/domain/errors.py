"""Error types for persistent configuration."""

from typing import Any


class PersistentConfigError(Exception):
    """Base error for persistent configuration failures."""


class ConfigurationError(PersistentConfigError):
    """Raised when the overlay, an item or the settings are malformed."""


class StorageError(PersistentConfigError):
    """Raised when the storage backend is unreachable or rejects a read/write."""


class CacheError(PersistentConfigError):
    """Raised when the cache backend is unreachable. Never fatal for reads."""


class ValidationError(PersistentConfigError):
    """
    Raised when a value is rejected by its item rules.

    Attributes:
        key: First config key that failed
        rule: Rule that rejected the value (e.g. "email", "max:255")
        errors: All failures as {key: [messages]}
    """

    def __init__(
        self,
        key: str,
        rule: str,
        message: str,
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.rule = rule
        self.message = message
        self.errors: dict[str, list[str]] = errors or {key: [message]}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for admin UIs and CLI output."""
        return {"key": self.key, "rule": self.rule, "errors": self.errors}
