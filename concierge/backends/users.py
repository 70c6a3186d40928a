"""
Concierge - User-record stores (the Users collaborator).

Stores:
- MemoryUserStore: Dev/testing user storage
- FileUserStore: All records in one JSON document (``users.json``)

Records are flat dicts keyed by ``user_id``. Field schemas are the
application's business; the store only fills in status defaults and
timestamps.
"""

from __future__ import annotations

import asyncio
import json
import logging
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..faults import (
    BackendFault,
    DuplicateUserFault,
    StoreCorruptedFault,
    StoreUnavailableFault,
    UserNotFoundFault,
)

logger = logging.getLogger("concierge.backends.users")

RECORD_DEFAULTS = {
    "user_status": "active",
    "access_level": "member",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_filter(filter: str) -> tuple[str, str] | None:
    """
    Parse a list filter.

    ``""`` matches everything; ``"field=value"`` matches records whose
    field, as a string, equals value.
    """
    filter = (filter or "").strip()
    if not filter:
        return None
    field_name, sep, value = filter.partition("=")
    if not sep or not field_name.strip():
        raise BackendFault(message=f"Invalid filter '{filter}': expected field=value")
    return field_name.strip(), value.strip()


class MemoryUserStore:
    """In-memory user storage for development/testing."""

    store_name = "memory"

    def __init__(self):
        self._users: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def register(self, record: dict[str, Any]) -> str:
        user_id = record.get("user_id")
        if not user_id:
            raise BackendFault(message="user_id is required")

        async with self._lock:
            self._load()
            if user_id in self._users:
                raise DuplicateUserFault(message=f"User '{user_id}' already exists")

            now = _timestamp()
            stored = {**RECORD_DEFAULTS, **deepcopy(record)}
            stored.setdefault("created_at", now)
            stored["updated_at"] = now
            self._users[user_id] = stored
            self._flush()
        return f"User '{user_id}' registered"

    async def get(self, user_id: str) -> dict[str, Any]:
        async with self._lock:
            self._load()
            record = self._users.get(user_id)
        if record is None:
            raise UserNotFoundFault(message=f"User '{user_id}' not found")
        return deepcopy(record)

    async def update(self, user_id: str, updates: dict[str, Any]) -> str:
        async with self._lock:
            self._load()
            record = self._users.get(user_id)
            if record is None:
                raise UserNotFoundFault(message=f"User '{user_id}' not found")
            record.update(deepcopy(updates))
            record["user_id"] = user_id
            record["updated_at"] = _timestamp()
            self._flush()
        return f"User '{user_id}' updated"

    async def delete(self, user_id: str) -> str:
        async with self._lock:
            self._load()
            if self._users.pop(user_id, None) is None:
                raise UserNotFoundFault(message=f"User '{user_id}' not found")
            self._flush()
        return f"User '{user_id}' deleted"

    async def list(self, filter: str = "") -> list[str]:
        criterion = parse_filter(filter)
        async with self._lock:
            self._load()
            if criterion is None:
                return sorted(self._users)
            field_name, value = criterion
            return sorted(
                user_id
                for user_id, record in self._users.items()
                if field_name in record and str(record[field_name]) == value
            )

    # Persistence hooks (no-ops in memory)
    def _load(self) -> None:
        pass

    def _flush(self) -> None:
        pass


class FileUserStore(MemoryUserStore):
    """
    User storage in a single JSON document.

    Re-read before every operation, rewritten atomically after every change.
    """

    store_name = "users file"

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)

    def _load(self) -> None:
        if not self.path.exists():
            self._users = {}
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise StoreCorruptedFault(message=f"Users file corrupted: {e}")
        except OSError as e:
            raise StoreUnavailableFault(store_name=self.store_name, cause=str(e))
        if not isinstance(data, dict):
            raise StoreCorruptedFault(message="Users file must hold a JSON object")
        self._users = data

    def _flush(self) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(self._users, indent=2, sort_keys=True), encoding="utf-8")
            temp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreUnavailableFault(store_name=self.store_name, cause=str(e))
        logger.debug("Wrote %d user records to %s", len(self._users), self.path)
