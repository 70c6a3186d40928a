"""
Concierge - User handles.

A UserHandle is what the orchestrator gives back to the application. Its
identity (user_id, user_key, session_id) and tier are fixed at
construction; its session data and user-data snapshot can change.

Tiers:
- VISITOR: identity only, no session, no stored data
- GUEST: identity + session
- LOGGED_IN: identity + session + user-data snapshot + backend access
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .faults import Fault
from .filters import PROFILE_UPDATE_FILTER

if TYPE_CHECKING:
    from .backends.base import SessionHandle, UserBackend

logger = logging.getLogger("concierge.user")


class Tier(str, Enum):
    """User participation level."""

    VISITOR = "visitor"
    GUEST = "guest"
    LOGGED_IN = "logged_in"


@dataclass(frozen=True)
class UserRecordAccess:
    """
    Read/write access to one user's record in the Users backend.

    Bound to a single user_id, so a handle can reach its own record and
    nothing else.
    """

    users: UserBackend
    user_id: str

    async def read(self, *fields: str) -> dict[str, Any]:
        record = await self.users.get(self.user_id)
        if fields:
            return {f: record[f] for f in fields if f in record}
        return record

    async def write(self, updates: dict[str, Any]) -> dict[str, Any]:
        """
        Write a patch and return the fields actually written.

        Identity and credential fields are dropped by the profile-update
        filter before the backend sees the patch.
        """
        allowed = PROFILE_UPDATE_FILTER(updates)
        if allowed:
            await self.users.update(self.user_id, allowed)
        return allowed


class UserHandle:
    """
    A user of the application, as enabled by the orchestrator.

    Handles are created by Concierge lifecycle calls (``admit_visitor``,
    ``checkin_guest``, ``login_user``, ``login_guest``, ``restore_user``),
    not by applications.

    Example:
        >>> result = await concierge.login_user({"user_id": "alice", "password": "pw"})
        >>> user = result.user
        >>> user.is_logged_in
        True
        >>> await user.update_session_data({"last_page": "/dashboard"})
        True
        >>> user.moniker
        'Alice'
    """

    def __init__(
        self,
        user_id: str,
        user_key: str,
        *,
        session: SessionHandle | None = None,
        user_data: dict[str, Any] | None = None,
        record_access: UserRecordAccess | None = None,
    ):
        if user_data is not None and session is None:
            raise ValueError("user_data requires a session")
        if (record_access is not None) != (user_data is not None):
            raise ValueError("record_access is required for, and only for, logged-in users")

        self._user_id = user_id
        self._user_key = user_key
        self._session = session
        self._session_id = session.id if session is not None else None
        self._user_data = dict(user_data) if user_data is not None else None
        self._record_access = record_access

        if session is None:
            self._tier = Tier.VISITOR
        elif user_data is None:
            self._tier = Tier.GUEST
        else:
            self._tier = Tier.LOGGED_IN

    def __repr__(self) -> str:
        return f"UserHandle(user_id={self._user_id!r}, tier={self._tier.value})"

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def user_key(self) -> str:
        return self._user_key

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def session(self) -> SessionHandle | None:
        return self._session

    # ------------------------------------------------------------------
    # Tier
    # ------------------------------------------------------------------

    @property
    def tier(self) -> Tier:
        return self._tier

    @property
    def is_visitor(self) -> bool:
        return self._tier is Tier.VISITOR

    @property
    def is_guest(self) -> bool:
        return self._tier is Tier.GUEST

    @property
    def is_logged_in(self) -> bool:
        return self._tier is Tier.LOGGED_IN

    # ------------------------------------------------------------------
    # Session data
    # ------------------------------------------------------------------

    def get_session_data(self) -> dict[str, Any] | None:
        if self._session is None:
            return None
        return self._session.get_data()

    async def update_session_data(self, updates: dict[str, Any]) -> bool | None:
        """
        Merge ``updates`` into the session data and save.

        Keys absent from ``updates`` are kept; keys present are overwritten.
        A failed save leaves the handle holding the data it had before.

        Returns:
            None for visitors, otherwise whether the save succeeded
        """
        if self._session is None:
            return None

        previous = self._session.get_data()
        merged = self._session.get_data()
        merged.update(updates)
        self._session.set_data(merged)
        try:
            await self._session.save()
        except Fault as fault:
            self._session.set_data(previous)
            logger.warning("Session save failed for %s: %s", self._user_id, fault)
            return False
        return True

    # ------------------------------------------------------------------
    # User data snapshot
    # ------------------------------------------------------------------

    @property
    def user_data(self) -> dict[str, Any] | None:
        return dict(self._user_data) if self._user_data is not None else None

    def get_user_field(self, name: str) -> Any:
        if self._user_data is None:
            return None
        return self._user_data.get(name)

    @property
    def moniker(self) -> str | None:
        return self.get_user_field("moniker")

    @property
    def email(self) -> str | None:
        return self.get_user_field("email")

    @property
    def user_status(self) -> str | None:
        return self.get_user_field("user_status")

    @property
    def access_level(self) -> str | None:
        return self.get_user_field("access_level")

    # ------------------------------------------------------------------
    # User data backend (logged-in only)
    # ------------------------------------------------------------------

    async def refresh_user_data(self) -> bool | None:
        """Replace the snapshot with a fresh read from the Users backend."""
        if self._record_access is None:
            return None
        try:
            record = await self._record_access.read()
        except Fault as fault:
            logger.warning("Refresh failed for %s: %s", self._user_id, fault)
            return False
        self._user_data = record
        return True

    async def update_user_data(self, updates: dict[str, Any]) -> bool | None:
        """
        Write ``updates`` to the Users backend, then to the snapshot.

        The snapshot is untouched when the backend write fails.
        """
        if self._record_access is None:
            return None
        try:
            written = await self._record_access.write(updates)
        except Fault as fault:
            logger.warning("User data update failed for %s: %s", self._user_id, fault)
            return False
        if not written:
            return False
        self._user_data.update(written)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self._user_id,
            "user_key": self._user_key,
            "session_id": self._session_id,
            "tier": self._tier.value,
            "user_data": self.user_data,
        }
