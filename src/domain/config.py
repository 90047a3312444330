"""Configuration domain models."""

import json
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.domain.errors import ConfigurationError

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+(\.[A-Za-z0-9_\-]+)*$")

CASTS = ("string", "int", "integer", "float", "bool", "boolean", "json", "array")

RULE_NAMES = frozenset(
    {
        "sometimes", "nullable", "bail", "required", "string", "email", "url",
        "integer", "int", "numeric", "boolean", "bool", "array", "json",
        "min", "max", "between", "in", "not_in", "regex",
    }
)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}

Rule = str | Callable[[Any], bool | str]


@dataclass(frozen=True)
class ConfigItem:
    """
    Configuration item whose value may be placed in persistent storage.

    Stored values are text; `cast` restores them to a typed value on read
    and `serialize` turns a typed value back into text on write.
    """

    key: str
    label: str = ""
    rules: tuple[Rule, ...] = ()
    hint: str | None = None
    cast: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not KEY_PATTERN.match(self.key):
            raise ConfigurationError(f"Invalid config item key: {self.key!r}")
        if self.cast is not None and self.cast not in CASTS:
            raise ConfigurationError(
                f"Unsupported cast {self.cast!r} for config item {self.key!r}"
            )
        if not self.label:
            object.__setattr__(self, "label", self.key)
        if isinstance(self.rules, str):
            object.__setattr__(self, "rules", tuple(self.rules.split("|")))
        elif not isinstance(self.rules, tuple):
            object.__setattr__(self, "rules", tuple(self.rules))
        for rule in self.rules:
            if callable(rule):
                continue
            if not isinstance(rule, str) or rule.partition(":")[0].strip() not in RULE_NAMES:
                raise ConfigurationError(
                    f"Unknown validation rule {rule!r} for config item {self.key!r}"
                )

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any] | str) -> "ConfigItem":
        """
        Create item from declaration dict.

        A plain string is accepted as a label-only declaration.
        """
        if isinstance(data, str):
            return cls(key=key, label=data)
        return cls(
            key=data.get("key", key),
            label=data.get("label", ""),
            rules=data.get("rules", ()),
            hint=data.get("hint"),
            cast=data.get("cast"),
        )

    def restore(self, value: Any) -> Any:
        """Convert a stored value into its typed form."""
        if value is None or self.cast is None:
            return value
        try:
            if self.cast == "string":
                return str(value)
            if self.cast in ("int", "integer"):
                return int(value)
            if self.cast == "float":
                return float(value)
            if self.cast in ("bool", "boolean"):
                return _to_bool(value)
            # json / array
            return json.loads(value) if isinstance(value, (str, bytes)) else value
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"Cannot cast stored value of {self.key!r} to {self.cast}: {e}"
            ) from e

    def serialize(self, value: Any) -> str | None:
        """Convert a typed value into text for storage."""
        if value is None:
            return None
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, ensure_ascii=False)
        if self.cast in ("json", "array") and not isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)
        # Text for json items is taken as already encoded
        return str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class ItemRegistry:
    """Allow-list of keys eligible for persistence, each with its rules."""

    items: dict[str, ConfigItem] = field(default_factory=dict)

    def __contains__(self, key: object) -> bool:
        return key in self.items

    def __iter__(self) -> Iterator[str]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, key: str) -> ConfigItem | None:
        """Get item by key."""
        return self.items.get(key)

    def keys(self) -> list[str]:
        """Registered keys."""
        return list(self.items)

    def values(self) -> list[ConfigItem]:
        """Registered items."""
        return list(self.items.values())

    def add(self, item: ConfigItem) -> None:
        """Register item, rejecting duplicate keys."""
        if item.key in self.items:
            raise ConfigurationError(f"Duplicate config item key: {item.key!r}")
        self.items[item.key] = item

    @classmethod
    def from_mapping(
        cls,
        items: "ItemRegistry | Mapping[str, Any] | Iterable[ConfigItem | str]",
    ) -> "ItemRegistry":
        """
        Build registry from an application declaration.

        Accepts:
            - {"mail.contact.address": {"label": ..., "rules": [...]}}
            - [ConfigItem(...), ...]
            - ["site.name", ...] (keys only)

        An existing registry is copied, so later changes to it don't reach
        an overlay built from it.

        Raises:
            ConfigurationError: If a key is malformed or duplicated
        """
        if isinstance(items, ItemRegistry):
            return cls(dict(items.items))

        registry = cls()
        if isinstance(items, Mapping):
            for key, data in items.items():
                if isinstance(data, ConfigItem):
                    registry.add(data)
                else:
                    registry.add(ConfigItem.from_dict(key, data or {}))
            return registry

        for entry in items:
            if isinstance(entry, ConfigItem):
                registry.add(entry)
            elif isinstance(entry, str):
                registry.add(ConfigItem(key=entry))
            else:
                raise ConfigurationError(f"Unsupported config item declaration: {entry!r}")
        return registry

    @classmethod
    def from_json_file(cls, path: str | Path) -> "ItemRegistry":
        """Load registry declaration from a JSON file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config items file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config items file {path}: {e}") from e
        return cls.from_mapping(data)
