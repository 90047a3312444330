"""Log writers: JSON lines to a stream, or in-memory for tests."""

import json
import sys
import threading
from typing import Any, TextIO

from src.logger.types import Level, LogEntry


class StreamWriter:
    """StreamWriter пишет логи в stderr по одной JSON-записи на строку."""

    def __init__(self, stream: TextIO | None = None, level: Level = Level.INFO) -> None:
        """
        Initialize StreamWriter.

        Args:
            stream: Target stream (stderr by default)
            level: Минимальный уровень для записи
        """
        self.stream = stream or sys.stderr
        self.level = level
        self._lock = threading.Lock()

    def write(self, entry: LogEntry) -> None:
        """Записывает одну запись, если уровень не ниже порога."""
        if entry.level.severity < self.level.severity:
            return

        try:
            line = json.dumps(entry.to_dict(), default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            # Последний fallback - простой текст
            line = f"[{entry.level.value}] {entry.category}: {entry.message}"

        with self._lock:
            print(line, file=self.stream, flush=True)


class MemoryWriter:
    """MemoryWriter собирает записи в список (для тестов)."""

    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    def write(self, entry: LogEntry) -> None:
        """Append entry to buffer."""
        self.entries.append(entry)

    def messages(self, level: Level | None = None) -> list[str]:
        """Return logged messages, optionally filtered by level."""
        return [e.message for e in self.entries if level is None or e.level == level]

    def contexts(self) -> list[dict[str, Any]]:
        """Return context dicts of all entries."""
        return [e.context or {} for e in self.entries]

    def clear(self) -> None:
        """Drop collected entries."""
        self.entries.clear()
