"""
Concierge - User key mapping.

Maps opaque external user keys to (user_id, session_id) pairs and keeps
that mapping in step with a session store that expires records on its own.

Persistence is a whole-map JSON snapshot (``user_keys.json``):

    {
      "<user_key>": {"user_id": "...", "session_id": "..."},
      ...
    }

Every mutation runs under a lock shared by all KeyMap instances that point
at the same snapshot file, re-reads the snapshot, applies its change and
rewrites the file atomically. Two orchestrators on one desk therefore do
not overwrite each other's entries.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from .faults import StoreCorruptedFault, StoreUnavailableFault, fingerprint

logger = logging.getLogger("concierge.keymap")

USER_KEYS_FILE = "user_keys.json"

_registry_lock = threading.Lock()
_desk_locks: dict[str, threading.RLock] = {}


def _lock_for(path: Path | None) -> threading.RLock:
    if path is None:
        return threading.RLock()
    name = str(path.resolve())
    with _registry_lock:
        lock = _desk_locks.get(name)
        if lock is None:
            lock = _desk_locks[name] = threading.RLock()
        return lock


@dataclass(frozen=True)
class UserKeyEntry:
    key: str
    user_id: str
    session_id: str

    def to_dict(self) -> dict[str, str]:
        return {"user_id": self.user_id, "session_id": self.session_id}


class KeyMap:
    """
    Persisted mapping user_key -> UserKeyEntry.

    Args:
        path: Snapshot file. ``None`` keeps the map in memory only.

    Example:
        >>> keymap = KeyMap.load(Path("desk/user_keys.json"))
        >>> entry = keymap.put("k1", "alice", "sess_abc")
        >>> keymap.find_by_session("sess_abc")
        'k1'
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self._entries: dict[str, UserKeyEntry] = {}
        self._lock = _lock_for(self.path)
        self._stamp: tuple[int, int] | None = None

    @classmethod
    def load(cls, path: Path | str | None) -> KeyMap:
        keymap = cls(path)
        with keymap._lock:
            keymap._reload(force=True)
        return keymap

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> UserKeyEntry | None:
        with self._lock:
            self._reload()
            return self._entries.get(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            self._reload()
            return len(self._entries)

    def __iter__(self) -> Iterator[UserKeyEntry]:
        return iter(self.entries())

    def entries(self) -> list[UserKeyEntry]:
        with self._lock:
            self._reload()
            return list(self._entries.values())

    def find_by_session(self, session_id: str) -> str | None:
        """Return the first key mapped to ``session_id``."""
        with self._lock:
            self._reload()
            for key, entry in self._entries.items():
                if entry.session_id == session_id:
                    return key
            return None

    def find_by_user(self, user_id: str) -> list[UserKeyEntry]:
        """All entries for ``user_id``, stale ones from earlier logins included."""
        with self._lock:
            self._reload()
            return [e for e in self._entries.values() if e.user_id == user_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put(self, key: str, user_id: str, session_id: str) -> UserKeyEntry:
        entry = UserKeyEntry(key=key, user_id=user_id, session_id=session_id)
        with self._lock:
            self._reload(force=True)
            self._entries[key] = entry
            self._persist()
        logger.debug("Mapped key %s to user %s", fingerprint(key), user_id)
        return entry

    def remove(self, key: str) -> bool:
        return self.remove_many([key]) == 1

    def remove_many(self, keys: Iterable[str]) -> int:
        with self._lock:
            self._reload(force=True)
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            if removed:
                self._persist()
        return removed

    def synchronize(self, active_session_ids: Iterable[str]) -> int:
        """
        Drop every entry whose session is not in ``active_session_ids``.

        Called right after the session store has purged its own expired
        records. Persists only when something was removed.

        Returns:
            Number of entries removed
        """
        active = set(active_session_ids)
        with self._lock:
            self._reload(force=True)
            stale = [k for k, e in self._entries.items() if e.session_id not in active]
            for key in stale:
                del self._entries[key]
            if stale:
                self._persist()
        if stale:
            logger.info("Synchronized user keys: removed %d stale entries", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Snapshot I/O
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, dict[str, str]]:
        with self._lock:
            return {k: e.to_dict() for k, e in self._entries.items()}

    def _file_stamp(self) -> tuple[int, int] | None:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _reload(self, force: bool = False) -> None:
        if self.path is None:
            return
        stamp = self._file_stamp()
        if not force and stamp == self._stamp:
            return
        if stamp is None:
            self._entries = {}
            self._stamp = None
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise StoreCorruptedFault(
                message=f"User keys file corrupted: {e}",
                metadata={"path": str(self.path)},
            )
        except OSError as e:
            raise StoreUnavailableFault(store_name="user_keys", cause=str(e))

        if not isinstance(raw, dict):
            raise StoreCorruptedFault(message="User keys file must hold a JSON object")

        self._entries = {
            key: UserKeyEntry(key=key, user_id=str(value["user_id"]), session_id=str(value["session_id"]))
            for key, value in raw.items()
            if isinstance(value, dict) and "user_id" in value and "session_id" in value
        }
        self._stamp = stamp

    def _persist(self) -> None:
        if self.path is None:
            return
        data: dict[str, Any] = {k: e.to_dict() for k, e in self._entries.items()}
        temp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as e:
            raise StoreUnavailableFault(store_name="user_keys", cause=str(e))
        self._stamp = self._file_stamp()
        logger.debug("Persisted %d user keys to %s", len(data), self.path)
