"""
Validation of persistent config values against item rules.

Rules are declared per item as strings, optionally with arguments after a colon:

    required, nullable, sometimes, string, email, url, integer, numeric,
    boolean, array, json, min:N, max:N, between:A,B, in:a,b,c, not_in:a,b,
    regex:PATTERN

or as callables returning True/False (or an error message string).
An empty value (None or blank string) fails only "required"; the remaining
rules are skipped for it.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from src.domain.config import ConfigItem, ItemRegistry, Rule
from src.domain.errors import ConfigurationError, ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

# Rules that don't check the value itself
MARKER_RULES = {"sometimes", "nullable", "bail"}


class ValidationResult:
    """Result of a validation operation."""

    def __init__(self) -> None:
        self.errors: dict[str, list[str]] = {}
        self.failed_rules: dict[str, str] = {}

    @property
    def is_valid(self) -> bool:
        """Whether validation passed."""
        return not self.errors

    def add_error(self, key: str, rule: str, message: str) -> None:
        """Add an error message for key and mark as invalid."""
        self.errors.setdefault(key, []).append(message)
        self.failed_rules.setdefault(key, rule)

    def merge(self, other: "ValidationResult") -> None:
        """Merge another validation result into this one."""
        for key, messages in other.errors.items():
            self.errors.setdefault(key, []).extend(messages)
        for key, rule in other.failed_rules.items():
            self.failed_rules.setdefault(key, rule)

    def raise_for_errors(self) -> None:
        """
        Raise ValidationError describing the first failure.

        Raises:
            ValidationError: If any value was rejected
        """
        if self.is_valid:
            return
        key = next(iter(self.errors))
        raise ValidationError(
            key=key,
            rule=self.failed_rules[key],
            message=self.errors[key][0],
            errors=dict(self.errors),
        )


class Validator:
    """Checks values against the rules of registered config items."""

    def __init__(self, items: ItemRegistry) -> None:
        self.items = items

    def validate(self, values: Mapping[str, Any]) -> ValidationResult:
        """
        Validate several values at once.

        Keys outside the registry are not validated.

        Args:
            values: {config key: new value}

        Returns:
            ValidationResult with errors per key
        """
        result = ValidationResult()
        for key, value in values.items():
            item = self.items.get(key)
            if item is None:
                continue
            result.merge(self.validate_value(item, value))
        return result

    def validate_value(self, item: ConfigItem, value: Any) -> ValidationResult:
        """Validate single value, stopping at the first rule that fails."""
        result = ValidationResult()
        rule_names = [_rule_name(r) for r in item.rules]
        empty = _is_empty(value)

        if empty:
            if "required" in rule_names:
                result.add_error(item.key, "required", f"{item.label} is required")
            return result

        for rule in item.rules:
            message = self._check(item, rule, value, rule_names)
            if message is not None:
                result.add_error(item.key, _rule_name(rule), message)
                return result

        if item.cast is not None:
            try:
                item.restore(item.serialize(value))
            except ValueError:
                result.add_error(item.key, "cast", f"{item.label} must be a valid {item.cast}")
        return result

    def _check(
        self, item: ConfigItem, rule: Rule, value: Any, rule_names: list[str]
    ) -> str | None:
        """Return error message if rule rejects value, else None."""
        label = item.label

        if callable(rule):
            outcome = rule(value)
            if outcome is True or outcome is None:
                return None
            if isinstance(outcome, str):
                return outcome
            return f"{label} is invalid"

        name, _, arg = rule.partition(":")
        name = name.strip()

        if name in MARKER_RULES or name == "required":
            return None
        if name == "string":
            return None if isinstance(value, str) else f"{label} must be a string"
        if name == "email":
            ok = isinstance(value, str) and EMAIL_PATTERN.match(value)
            return None if ok else f"{label} must be a valid email address"
        if name == "url":
            ok = isinstance(value, str) and URL_PATTERN.match(value)
            return None if ok else f"{label} must be a valid URL"
        if name in ("integer", "int"):
            return None if _is_integer(value) else f"{label} must be an integer"
        if name == "numeric":
            return None if _to_number(value) is not None else f"{label} must be a number"
        if name in ("boolean", "bool"):
            ok = isinstance(value, bool) or str(value).lower() in ("0", "1", "true", "false")
            return None if ok else f"{label} must be true or false"
        if name == "array":
            return None if isinstance(value, (list, dict)) else f"{label} must be an array"
        if name == "json":
            return None if _is_json(value) else f"{label} must be a valid JSON string"
        if name in ("min", "max"):
            limit = _parse_number(rule, arg)
            size = _size(value, rule_names)
            if name == "min" and size < limit:
                return f"{label} must be at least {arg}"
            if name == "max" and size > limit:
                return f"{label} must not be greater than {arg}"
            return None
        if name == "between":
            low, _, high = arg.partition(",")
            size = _size(value, rule_names)
            if not _parse_number(rule, low) <= size <= _parse_number(rule, high):
                return f"{label} must be between {low} and {high}"
            return None
        if name == "in":
            return None if str(value) in arg.split(",") else f"The selected {label} is invalid"
        if name == "not_in":
            return None if str(value) not in arg.split(",") else f"The selected {label} is invalid"
        if name == "regex":
            pattern = _strip_delimiters(arg)
            return None if re.search(pattern, str(value)) else f"{label} format is invalid"

        raise ConfigurationError(f"Unknown validation rule {rule!r} for {item.key!r}")


def _rule_name(rule: Rule) -> str:
    if callable(rule):
        return getattr(rule, "__name__", "callback")
    return rule.partition(":")[0].strip()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return isinstance(value, (list, dict)) and not value


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()) is not None


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value))
    except ValueError:
        return None


def _is_json(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        json.loads(value)
    except json.JSONDecodeError:
        return False
    return True


def _size(value: Any, rule_names: list[str]) -> float:
    """Size used by min/max: numeric value for numbers, length otherwise."""
    numeric = "numeric" in rule_names or "integer" in rule_names or "int" in rule_names
    if numeric or (isinstance(value, (int, float)) and not isinstance(value, bool)):
        number = _to_number(value)
        if number is not None:
            return number
    if isinstance(value, (str, list, dict)):
        return len(value)
    return len(str(value))


def _parse_number(rule: str, text: str) -> float:
    try:
        return float(text)
    except ValueError as e:
        raise ConfigurationError(f"Invalid argument in validation rule {rule!r}") from e


def _strip_delimiters(pattern: str) -> str:
    """Accept "/pattern/" style regex as well as bare patterns."""
    if len(pattern) >= 2 and pattern[0] == "/" and pattern.rfind("/") > 0:
        return pattern[1 : pattern.rfind("/")]
    return pattern
