"""Durable key/value snapshotting of active and completed journeys.

Active journeys live under one key as a ``vehicle_id -> journey`` map;
completed journeys are appended (newest first) to a history list.
Every write is best-effort: a failing backend is logged and tracking
carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError

from pyjourney.exceptions import PersistenceWriteFailure
from pyjourney.models.journey import Journey

_logger = logging.getLogger(__name__)

ACTIVE_JOURNEYS_KEY = "active_journeys"
ROUTE_HISTORY_KEY = "route_history"

_JOURNEY_LIST = TypeAdapter(list[Journey])

_UNREAD: Any = object()


class KeyValueStore(Protocol):
    """Minimal durable string key/value store."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store; survives manager restarts but not the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys in one JSON object on disk, replaced atomically on write.

    The file is read once; later reads are served from memory. Methods may
    be called from a worker thread.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ignoring corrupt journey store at %s", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)} if isinstance(data, dict) else {}

    def _loaded(self) -> dict[str, str]:
        if self._data is None:
            self._data = self._read_all()
        return self._data

    def _write_all(self, data: dict[str, str]) -> None:
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".journeys-", dir=self._path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
            raise PersistenceWriteFailure(f"Cannot write {self._path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._loaded().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = dict(self._loaded())
            data[key] = value
            self._write_all(data)
            self._data = data

    def delete(self, key: str) -> None:
        with self._lock:
            data = dict(self._loaded())
            if data.pop(key, None) is not None:
                self._write_all(data)
                self._data = data


class PersistenceStore:
    """In-memory mirror of journey state, written through to a :class:`KeyValueStore`.

    The active map and the history list are read from the backend once and
    then only mutated in memory; every mutation writes the whole mirror back.
    A failed backend read leaves the mirror unloaded and blocks writes for
    that key, so stored data is never replaced by an empty default.

    Inside a running event loop backend writes run on a worker thread and
    :meth:`save_active` and friends return as soon as the write is queued.
    Writes for one key are applied in order; only the newest pending
    snapshot is kept. Call :meth:`flush` to wait for them.
    """

    def __init__(self, backend: KeyValueStore | None = None) -> None:
        self._backend: KeyValueStore = backend if backend is not None else MemoryKeyValueStore()
        self._active: dict[str, Any] | None = None
        self._history: list[Any] | None = None
        self._pending: dict[str, Any] = {}
        self._writers: dict[str, asyncio.Task[None]] = {}

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, key: str, default: Any) -> Any:
        """Backend value for *key*, or ``_UNREAD`` when the read itself failed."""
        try:
            text = self._backend.get(key)
        except Exception:
            _logger.error("Error reading %s from journey store", key, exc_info=True)
            return _UNREAD
        if not text:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            _logger.error("Corrupt %s entry in journey store", key)
            return default

    def _write_now(self, key: str, value: Any) -> bool:
        try:
            self._backend.set(key, json.dumps(value))
        except Exception:
            _logger.warning("Error saving %s to journey store", key, exc_info=True)
            return False
        return True

    def _write(self, key: str, value: Any) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return self._write_now(key, value)
        self._pending[key] = value
        if key not in self._writers:
            self._writers[key] = loop.create_task(self._drain(key))
        return True

    async def _drain(self, key: str) -> None:
        try:
            while key in self._pending:
                value = self._pending.pop(key)
                await asyncio.to_thread(self._write_now, key, value)
        finally:
            self._writers.pop(key, None)

    async def flush(self) -> None:
        """Wait until every queued backend write has been attempted."""
        while self._writers:
            await asyncio.gather(*self._writers.values())

    def _active_map(self) -> dict[str, Any] | None:
        if self._active is None:
            data = self._read_json(ACTIVE_JOURNEYS_KEY, {})
            if data is _UNREAD:
                return None
            self._active = data if isinstance(data, dict) else {}
        return self._active

    def _history_list(self) -> list[Any] | None:
        if self._history is None:
            data = self._read_json(ROUTE_HISTORY_KEY, [])
            if data is _UNREAD:
                return None
            self._history = data if isinstance(data, list) else []
        return self._history

    # ------------------------------------------------------------------
    # Active journeys
    # ------------------------------------------------------------------

    def save_active(self, journey: Journey) -> bool:
        """Mirror an in-flight journey. Returns ``False`` if it was not written."""
        active = self._active_map()
        if active is None:
            _logger.warning("Skipping save of vehicle=%s: active journeys not loaded", journey.vehicle_id)
            return False
        active[journey.vehicle_id] = journey.model_dump(mode="json")
        return self._write(ACTIVE_JOURNEYS_KEY, dict(active))

    def remove_active(self, vehicle_id: str) -> bool:
        active = self._active_map()
        if active is None:
            _logger.warning("Skipping removal of vehicle=%s: active journeys not loaded", vehicle_id)
            return False
        if active.pop(vehicle_id, None) is None:
            return True
        return self._write(ACTIVE_JOURNEYS_KEY, dict(active))

    def load_active(self) -> list[Journey]:
        journeys: list[Journey] = []
        for vehicle_id, payload in (self._active_map() or {}).items():
            try:
                journeys.append(Journey.model_validate(payload))
            except ValidationError:
                _logger.warning("Dropping unreadable persisted journey for vehicle=%s", vehicle_id, exc_info=True)
        return journeys

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_history(self, journey: Journey) -> bool:
        """Prepend a completed journey to the stored history (newest first)."""
        history = self._history_list()
        if history is None:
            _logger.warning("Skipping history append of %s: route history not loaded", journey.journey_id)
            return False
        history.insert(0, journey.model_dump(mode="json"))
        return self._write(ROUTE_HISTORY_KEY, list(history))

    def load_history(self) -> list[Journey]:
        try:
            return _JOURNEY_LIST.validate_python(self._history_list() or [])
        except ValidationError:
            _logger.error("Unreadable route history in journey store", exc_info=True)
            return []
