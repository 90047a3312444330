"""Types and constants for structured logging."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Log level определяет уровень важности лога."""

    TRACE = "trace"  # Детальная трассировка выполнения
    DEBUG = "debug"  # Отладочная информация
    INFO = "info"  # Информационные сообщения
    WARN = "warn"  # Предупреждения
    ERROR = "error"  # Ошибки (recoverable)

    @property
    def severity(self) -> int:
        """Numeric order used for level filtering."""
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: str) -> "Level":
        """Parse LOG_LEVEL value, accepting "warning" as an alias."""
        normalized = value.strip().lower()
        if normalized == "warning":
            normalized = "warn"
        return cls(normalized)


_SEVERITY = {
    Level.TRACE: 0,
    Level.DEBUG: 1,
    Level.INFO: 2,
    Level.WARN: 3,
    Level.ERROR: 4,
}


class Category(str, Enum):
    """Category определяет категорию события для группировки логов."""

    CONFIG = "config"  # Persistent config overlay
    DATABASE = "database"  # Операции с БД
    CACHE = "cache"  # Кеширование
    VALIDATION = "validation"  # Проверка значений по правилам
    CLI = "cli"  # Maintenance commands


@dataclass
class LogEntry:
    """LogEntry представляет одну запись лога."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    category: Category | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert entry to a JSON-friendly dict, skipping empty fields."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "category": self.category.value if self.category else None,
            "message": self.message,
            "service_name": self.service_name,
            "instance_id": self.instance_id,
            "environment": self.environment,
            "caller": (
                f"{self.file_path}:{self.line_number} {self.function_name}"
                if self.file_path
                else None
            ),
        }
        if self.error_message:
            data["error"] = self.error_message
        if self.stack_trace:
            data["stack_trace"] = self.stack_trace
        if self.context:
            data["context"] = self.context
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class Field:
    """Field для структурированных данных в логах."""

    key: str
    value: Any


def category(cat: Category) -> Field:
    """Создаёт поле для категории лога."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    """Универсальная функция для добавления параметра."""
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    """Создаёт поле для duration в миллисекундах."""
    return Field(key="duration_ms", value=value)


def error(err: Exception) -> Field:
    """Создаёт поле для ошибки."""
    return Field(key="error", value=str(err))

