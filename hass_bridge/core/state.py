"""
Connection status shared with the hosting platform.

The bridge publishes two states: ``info.connection`` (gateway up) and
``info.clients`` (displays that completed the login flow since start).
"""

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONNECTION_STATE = "info.connection"
CLIENTS_STATE = "info.clients"


class ClientCounter:
    """Thread-safe count of authenticated displays."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


class StatusStore(ABC):
    """Small key/value store the hosting platform reads status flags from."""

    @abstractmethod
    async def set_state(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def get_state(self, key: str) -> Any:
        ...


class MemoryStatusStore(StatusStore):
    def __init__(self):
        self._states: dict[str, Any] = {}

    async def set_state(self, key: str, value: Any) -> None:
        self._states[key] = value
        logger.debug(f"State {key} = {value!r}")

    def get_state(self, key: str) -> Any:
        return self._states.get(key)


class JsonFileStatusStore(StatusStore):
    """
    Status store persisted as a flat JSON object.

    The whole mapping is rewritten on every update. Writes run in a worker
    thread so request handlers never wait on disk.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._states: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable status file {self.path}: {e}")
            return {}

    def _write(self, key: str, value: Any) -> None:
        with self._lock:
            self._states[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump(self._states, f, indent=2, sort_keys=True)
            tmp_path.replace(self.path)

    async def set_state(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)
        logger.debug(f"State {key} = {value!r} written to {self.path}")

    def get_state(self, key: str) -> Any:
        with self._lock:
            return self._states.get(key)


def create_status_store(status_file: str | None) -> StatusStore:
    if status_file:
        logger.info(f"Status states persisted to {status_file}")
        return JsonFileStatusStore(status_file)
    return MemoryStatusStore()
