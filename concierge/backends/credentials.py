"""
Concierge - Credential stores (the Auth collaborator).

Stores:
- MemoryCredentialStore: Dev/testing credential storage
- FileCredentialStore: JSON file of user_id -> argon2 hash (``auth.pwd``)

Only user ids and password hashes live here. Profile data never does.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from ..faults import (
    AuthenticationFault,
    DuplicateUserFault,
    PasswordRejectedFault,
    StoreCorruptedFault,
    StoreUnavailableFault,
    UserNotFoundFault,
)
from .hashing import PasswordHasher, PasswordPolicy

logger = logging.getLogger("concierge.backends.credentials")


class MemoryCredentialStore:
    """In-memory credential storage for development/testing."""

    store_name = "memory"

    def __init__(
        self,
        hasher: PasswordHasher | None = None,
        policy: PasswordPolicy | None = None,
    ):
        self.hasher = hasher or PasswordHasher()
        self.policy = policy or PasswordPolicy()
        self._hashes: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def check_password(self, user_id: str, password: str) -> str:
        async with self._lock:
            self._load()
            password_hash = self._hashes.get(user_id)
            if password_hash is None or not self.hasher.verify(password_hash, password):
                raise AuthenticationFault(message="Invalid user_id or password")

            if self.hasher.check_needs_rehash(password_hash):
                self._hashes[user_id] = self.hasher.hash(password)
                self._flush()
        return "Password verified"

    async def set_password(self, user_id: str, password: str) -> str:
        self._enforce_policy(password)
        async with self._lock:
            self._load()
            if user_id in self._hashes:
                raise DuplicateUserFault(message=f"User ID '{user_id}' already has a password")
            self._hashes[user_id] = self.hasher.hash(password)
            self._flush()
        return "Password set"

    async def reset_password(self, user_id: str, password: str) -> str:
        self._enforce_policy(password)
        async with self._lock:
            self._load()
            if user_id not in self._hashes:
                raise UserNotFoundFault(message=f"User ID '{user_id}' not found")
            self._hashes[user_id] = self.hasher.hash(password)
            self._flush()
        return "Password reset successful"

    async def delete_identity(self, user_id: str) -> str:
        async with self._lock:
            self._load()
            if self._hashes.pop(user_id, None) is None:
                raise UserNotFoundFault(message=f"User ID '{user_id}' not found")
            self._flush()
        return f"User ID '{user_id}' deleted"

    async def identity_exists(self, user_id: str) -> bool:
        async with self._lock:
            self._load()
            return user_id in self._hashes

    def _enforce_policy(self, password: str) -> None:
        ok, errors = self.policy.validate(password)
        if not ok:
            raise PasswordRejectedFault(message="; ".join(errors))

    # Persistence hooks (no-ops in memory)
    def _load(self) -> None:
        pass

    def _flush(self) -> None:
        pass


class FileCredentialStore(MemoryCredentialStore):
    """
    Credential storage in a single JSON file.

    The file is re-read before every operation and rewritten atomically
    (write to temp, then rename) after every change.

    Example:
        >>> store = FileCredentialStore("desk/auth.pwd")
        >>> await store.set_password("alice", "secret")
        >>> await store.check_password("alice", "secret")
        'Password verified'
    """

    store_name = "auth file"

    def __init__(
        self,
        path: str | Path,
        hasher: PasswordHasher | None = None,
        policy: PasswordPolicy | None = None,
    ):
        super().__init__(hasher=hasher, policy=policy)
        self.path = Path(path)

    def _load(self) -> None:
        if not self.path.exists():
            self._hashes = {}
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise StoreCorruptedFault(message=f"Auth file corrupted: {e}")
        except OSError as e:
            raise StoreUnavailableFault(store_name=self.store_name, cause=str(e))
        if not isinstance(data, dict):
            raise StoreCorruptedFault(message="Auth file must hold a JSON object")
        self._hashes = {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(self._hashes, indent=2, sort_keys=True), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as e:
            raise StoreUnavailableFault(store_name=self.store_name, cause=str(e))
        logger.debug("Wrote %d credentials to %s", len(self._hashes), self.path)
