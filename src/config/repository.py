"""In-memory configuration with dotted-path access."""

import copy
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from src.domain.errors import ConfigurationError


class BaseConfig(Protocol):
    """Read/write interface the persistent overlay decorates."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def has(self, key: str) -> bool: ...

    def set(self, key: str, value: Any) -> None: ...

    def all(self) -> dict[str, Any]: ...


class ConfigRepository:
    """
    Nested dict configuration addressed by dotted keys.

    Example:
        config = ConfigRepository({"mail": {"contact": {"address": None}}})
        config.get("mail.contact.address")
        config.set("mail.from.name", "Support")
    """

    def __init__(self, items: Mapping[str, Any] | None = None) -> None:
        self._items: dict[str, Any] = {}
        for key, value in (items or {}).items():
            self.set(key, copy.deepcopy(value))

    def has(self, key: str) -> bool:
        """Check if key is present (a None value counts as present)."""
        node: Any = self._items
        for segment in key.split("."):
            if not isinstance(node, dict) or segment not in node:
                return False
            node = node[segment]
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dotted key."""
        node: Any = self._items
        for segment in key.split("."):
            if not isinstance(node, dict) or segment not in node:
                return default
            node = node[segment]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set value by dotted key, creating intermediate sections."""
        segments = key.split(".")
        node = self._items
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        if isinstance(value, Mapping):
            value = dict(value)
        node[segments[-1]] = value

    def forget(self, key: str) -> None:
        """Remove key if present."""
        segments = key.split(".")
        node: Any = self._items
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)

    def all(self) -> dict[str, Any]:
        """Get the whole configuration tree (copy)."""
        return copy.deepcopy(self._items)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "ConfigRepository":
        """Load configuration defaults from a JSON file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config defaults file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config defaults file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config defaults file {path} must contain an object")
        return cls(data)
