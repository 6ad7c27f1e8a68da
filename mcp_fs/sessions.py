"""Persistent, thread-safe session storage.

One JSON file per store name holds every session of that store. The
in-memory map keeps each value in its serialized form, so readers always get
a fresh object and what is on disk round-trips exactly.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Protocol, Tuple, Type, TypeVar

from .errors import PersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionValue(Protocol):
    """Explicit codec a value must provide to live in a ``SessionStore``."""

    def to_dict(self) -> Dict[str, Any]: ...

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionValue": ...


T = TypeVar("T", bound=SessionValue)


@dataclass
class FsContext:
    """Working-directory context of one filesystem session."""

    working_directory: Optional[str] = None
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "working_directory": self.working_directory,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FsContext":
        if not isinstance(data, dict):
            raise ValueError("context record must be an object")
        working_directory = data.get("working_directory")
        last_updated = data.get("last_updated")
        for field_name, value in (
            ("working_directory", working_directory),
            ("last_updated", last_updated),
        ):
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{field_name} must be a string or null")
        return cls(working_directory=working_directory, last_updated=last_updated)

    @property
    def path(self) -> Optional[Path]:
        return Path(self.working_directory) if self.working_directory else None


class SessionStore(Generic[T]):
    """Map of session id to ``T`` mirrored to ``<directory>/<name>.json``.

    Every access runs under one lock; ``set`` writes the whole file while
    holding it so concurrent writers never interleave. If the file changed
    on disk since this instance last saw it, the map is reloaded first."""

    def __init__(self, directory: Path, name: str, value_type: Type[T]):
        self.directory = Path(directory)
        self.name = name
        self.value_type = value_type
        self.path = self.directory / f"{name}.json"
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._stamp: Optional[Tuple[int, int]] = None
        self._loaded = False

    @classmethod
    def load(cls, directory: Path, name: str, value_type: Type[T]) -> "SessionStore[T]":
        store = cls(directory, name, value_type)
        with store._lock:
            store._reload()
        return store

    # ------------------------------------------------------------------ reads

    def get_or_default(self, session_id: str) -> T:
        with self._lock:
            self._refresh()
            entry = self._entries.get(session_id)
        if entry is None:
            return self.value_type()
        return self.value_type.from_dict(entry["data"])

    def session_ids(self) -> List[str]:
        with self._lock:
            self._refresh()
            return sorted(self._entries)

    # --------------------------------------------------------------- mutation

    def set(self, session_id: str, value: T) -> None:
        data = value.to_dict()
        with self._lock:
            self._refresh()
            previous = self._entries.get(session_id)
            now = now_iso()
            self._entries[session_id] = {
                "data": data,
                "created_at": previous["created_at"] if previous else now,
                "last_used": now,
            }
            try:
                self._flush()
            except (OSError, TypeError, ValueError) as exc:
                if previous is None:
                    del self._entries[session_id]
                else:
                    self._entries[session_id] = previous
                raise PersistenceError(
                    f"Failed to persist session '{session_id}' to {self.path}: {exc}",
                    session_id=session_id,
                ) from exc

    def remove(self, session_id: str) -> bool:
        with self._lock:
            self._refresh()
            previous = self._entries.pop(session_id, None)
            if previous is None:
                return False
            try:
                self._flush()
            except (OSError, TypeError, ValueError) as exc:
                self._entries[session_id] = previous
                raise PersistenceError(
                    f"Failed to persist removal of session '{session_id}': {exc}",
                    session_id=session_id,
                ) from exc
            return True

    # ---------------------------------------------------------------- storage

    def _current_stamp(self) -> Optional[Tuple[int, int]]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _refresh(self) -> None:
        if not self._loaded or self._current_stamp() != self._stamp:
            self._reload()

    def _reload(self) -> None:
        self._loaded = True
        self._stamp = self._current_stamp()
        self._entries = {}
        if self._stamp is None:
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session store %s: %s", self.path, exc)
            return
        sessions = raw.get("sessions") if isinstance(raw, dict) else None
        if not isinstance(sessions, dict):
            logger.warning("Ignoring malformed session store %s", self.path)
            return
        for session_id, entry in sessions.items():
            try:
                self.value_type.from_dict(entry["data"])
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping corrupt session %r from %s: %s", session_id, self.path, exc)
                continue
            self._entries[session_id] = {
                "data": entry["data"],
                "created_at": entry.get("created_at") or now_iso(),
                "last_used": entry.get("last_used") or now_iso(),
            }
        logger.debug("Loaded %d sessions from %s", len(self._entries), self.path)

    def _flush(self) -> None:
        payload = json.dumps(
            {"version": FORMAT_VERSION, "sessions": self._entries},
            indent=2,
            ensure_ascii=False,
            sort_keys=True,
        )
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            tmp.replace(self.path)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
        self._stamp = self._current_stamp()
