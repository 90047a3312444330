"""In-memory storage, for tests and single-process setups."""

import threading
from typing import Any


class ArrayStorage:
    """Keeps persisted values in a dict. Nothing survives the process."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})
        self._lock = threading.Lock()

    def read_all(self) -> dict[str, Any]:
        with self._lock:
            return dict(self.values)

    def write(self, key: str, value: Any) -> None:
        with self._lock:
            self.values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self.values.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self.values.clear()
