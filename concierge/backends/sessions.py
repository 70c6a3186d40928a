"""
Concierge - Session stores (the Sessions collaborator).

Defines the Session value and two stores:
- MemorySessionStore: In-memory storage (dev/testing)
- FileSessionStore: One JSON file per session

Both stores keep at most one session per user_id: ``create`` deletes any
earlier session of the same user before saving the new one. Expired
sessions stay on disk until ``purge_expired`` runs, but ``get`` refuses
them with ExpiredFault.
"""

from __future__ import annotations

import asyncio
import json
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from ..faults import (
    ExpiredFault,
    SessionNotFoundFault,
    StoreCorruptedFault,
    StoreUnavailableFault,
)
from ..keys import SESSION_ID_PREFIX, generate_session_id

logger = logging.getLogger("concierge.backends.sessions")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Session - Core Data Object
# ============================================================================

@dataclass
class Session:
    """
    Session state container bound to the store that loaded it.

    Attributes:
        id: Opaque session identifier (``sess_...``)
        user_id: Owner (a registered user or a guest id)
        data: Application state
        created_at: When session was created
        last_accessed_at: When session was last loaded or saved
        expires_at: When session expires (None = no expiry)

    Example:
        >>> session = await store.create("alice", timeout=3600)
        >>> session.set_data({"cart": ["x"]})
        >>> await session.save()
    """

    id: str
    user_id: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    _store: Any = field(default=None, repr=False, compare=False)

    def get_data(self) -> dict[str, Any]:
        return deepcopy(self.data)

    def set_data(self, data: dict[str, Any]) -> None:
        self.data = dict(data)

    async def save(self) -> None:
        if self._store is None:
            raise StoreUnavailableFault(store_name="session", cause="session is not bound to a store")
        await self._store.save(self)

    def _now(self) -> datetime:
        clock = getattr(self._store, "clock", None)
        return clock() if clock else utcnow()

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.expires_at:
            return False
        if now is None:
            now = self._now()
        return now >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return not self.is_expired(now)

    # ========================================================================
    # Serialization
    # ========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], store: Any = None) -> Session:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            data=deepcopy(data.get("data") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_accessed_at=datetime.fromisoformat(data["last_accessed_at"]),
            expires_at=(
                datetime.fromisoformat(data["expires_at"])
                if data.get("expires_at")
                else None
            ),
            _store=store,
        )


# ============================================================================
# MemorySessionStore
# ============================================================================

class MemorySessionStore:
    """
    In-memory session storage for development and testing.

    Sessions are held as serialized dicts, so every ``get`` returns an
    independent Session and unsaved changes never leak between handles.

    Args:
        clock: Returns the current UTC time (injectable for tests)
    """

    store_name = "memory"

    def __init__(self, clock: Clock | None = None):
        self.clock: Clock = clock or utcnow
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        user_id: str,
        *,
        timeout: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> Session:
        now = self.clock()
        session = Session(
            id=generate_session_id(),
            user_id=user_id,
            data=dict(data or {}),
            created_at=now,
            last_accessed_at=now,
            expires_at=now + timedelta(seconds=timeout) if timeout is not None else None,
            _store=self,
        )
        async with self._lock:
            for record in self._all_records():
                if record["user_id"] == user_id:
                    self._remove_record(record["id"])
                    logger.debug("Replaced earlier session for %s", user_id)
            self._write_record(session.to_dict())
        return session

    async def get(self, session_id: str) -> Session:
        async with self._lock:
            record = self._read_record(session_id)
        if record is None:
            raise SessionNotFoundFault(message="Session not found")
        session = Session.from_dict(record, store=self)
        if session.is_expired(self.clock()):
            raise ExpiredFault(session_id=session_id)
        return session

    async def save(self, session: Session) -> None:
        session.last_accessed_at = self.clock()
        async with self._lock:
            self._write_record(session.to_dict())

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._remove_record(session_id)

    async def purge_expired(self) -> set[str]:
        now = self.clock()
        active: set[str] = set()
        removed = 0
        async with self._lock:
            for record in self._all_records():
                session = Session.from_dict(record)
                if session.is_expired(now):
                    self._remove_record(session.id)
                    removed += 1
                else:
                    active.add(session.id)
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return active

    # Record access, overridden by FileSessionStore
    def _all_records(self) -> list[dict[str, Any]]:
        return [deepcopy(r) for r in self._records.values()]

    def _read_record(self, session_id: str) -> dict[str, Any] | None:
        record = self._records.get(session_id)
        return deepcopy(record) if record is not None else None

    def _write_record(self, record: dict[str, Any]) -> None:
        self._records[record["id"]] = deepcopy(record)

    def _remove_record(self, session_id: str) -> None:
        self._records.pop(session_id, None)


# ============================================================================
# FileSessionStore
# ============================================================================

class FileSessionStore(MemorySessionStore):
    """
    File-based session storage.

    Features:
    - One file per session (``<directory>/sess_....json``)
    - Human-readable format
    - Atomic writes (write to temp, then rename)

    Example:
        >>> store = FileSessionStore(directory="desk/sessions")
        >>> session = await store.create("alice", timeout=1800)
        >>> loaded = await store.get(session.id)
    """

    store_name = "file"

    def __init__(self, directory: str | Path, clock: Clock | None = None):
        super().__init__(clock=clock)
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableFault(store_name="session file", cause=str(e))

    def _get_path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    @staticmethod
    def _is_valid_id(session_id: str) -> bool:
        # Ids are generated url-safe tokens; anything else cannot name a file here.
        return session_id.startswith(SESSION_ID_PREFIX) and "/" not in session_id and "\\" not in session_id

    def _all_records(self) -> list[dict[str, Any]]:
        records = []
        for path in self.directory.glob(f"{SESSION_ID_PREFIX}*.json"):
            try:
                records.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable session file %s: %s", path.name, e)
        return records

    def _read_record(self, session_id: str) -> dict[str, Any] | None:
        if not self._is_valid_id(session_id):
            return None
        path = self._get_path(session_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreCorruptedFault(message=f"Session file corrupted: {e}")
        except OSError as e:
            raise StoreUnavailableFault(store_name="session file", cause=str(e))

    def _write_record(self, record: dict[str, Any]) -> None:
        path = self._get_path(record["id"])
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(record, indent=2), encoding="utf-8")
            temp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreUnavailableFault(store_name="session file", cause=str(e))

    def _remove_record(self, session_id: str) -> None:
        if not self._is_valid_id(session_id):
            return
        path = self._get_path(session_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailableFault(store_name="session file", cause=str(e))
