"""Durable key/value state that survives a host restart."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from loguru import logger


class DurableStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def has(self, key: str) -> bool: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class MemoryStateStore:
    """Dict-backed store.

    Two instances built over the same dict behave like one store seen from
    two successive processes.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data if data is not None else {}
        self._lock = threading.RLock()

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(key for key in self._data if key.startswith(prefix))


class JSONStateStore:
    """
    A JSON file-backed key/value store.

    Every mutation rewrites the whole file through a temporary sibling and
    ``os.replace``, so a crash leaves either the old or the new content.
    There is no multi-key transaction; callers order their writes.
    """

    def __init__(self, file_path: str | Path) -> None:
        self.file_path = Path(file_path)
        self._lock = threading.RLock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        """Load state from the JSON file."""
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("state.load.error path={} error={}", self.file_path, e)
            return {}
        if not isinstance(loaded, dict):
            logger.error("state.load.error path={} error=top-level value is not an object", self.file_path)
            return {}
        return loaded

    def _save(self, data: dict[str, Any]) -> None:
        """Save state to the JSON file."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.file_path.name}.", dir=self.file_path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self.file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def reload(self) -> None:
        with self._lock:
            self._data = self._load()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = dict(self._data)
            data[key] = value
            # Memory only changes once the file holds the new state.
            self._save(data)
            self._data = data

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            data = dict(self._data)
            del data[key]
            self._save(data)
            self._data = data

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(key for key in self._data if key.startswith(prefix))
