"""
Key/value persistence for Agentic Copilot.

The memory store persists through any object with async `get`/`set`. Two
backends ship here: an in-memory dict and a single JSON document on disk.
"""

import asyncio
import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger("agentic_copilot.storage")


class Storage(Protocol):
    """Async key/value storage."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class InMemoryStorage:
    """Process-lifetime storage; values are deep-copied in and out."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage:
    """Thread-safe storage backed by one JSON document.

    Writes go to a temporary sibling file which then replaces the document,
    so a crash mid-write leaves the previous version intact.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._file_lock = threading.Lock()

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set, key, value)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _get(self, key: str) -> Optional[Any]:
        with self._file_lock:
            return self._read().get(key)

    def _set(self, key: str, value: Any) -> None:
        with self._file_lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
            os.replace(tmp_path, self.path)
