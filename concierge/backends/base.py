"""
Concierge - Collaborator contracts.

The orchestrator depends on these protocols only. Backends are responsible
ONLY for persistence and their own consistency (one live session per
user_id, password policy); coordination between them happens in the
orchestrator.

All methods are async. On failure they raise a Fault from
``concierge.faults``; they never return error records.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CredentialBackend(Protocol):
    """Password storage and verification (the Auth collaborator)."""

    async def check_password(self, user_id: str, password: str) -> str:
        """
        Verify a password.

        Returns:
            Confirmation message

        Raises:
            AuthenticationFault: Unknown id or wrong password
        """
        ...

    async def set_password(self, user_id: str, password: str) -> str:
        """
        Store the first password for a new identity.

        Raises:
            DuplicateUserFault: Identity already has a password
            PasswordRejectedFault: Password fails the store's policy
        """
        ...

    async def reset_password(self, user_id: str, password: str) -> str:
        """
        Replace the password of an existing identity.

        Raises:
            UserNotFoundFault: No such identity
            PasswordRejectedFault: Password fails the store's policy
        """
        ...

    async def delete_identity(self, user_id: str) -> str:
        """
        Raises:
            UserNotFoundFault: No such identity
        """
        ...

    async def identity_exists(self, user_id: str) -> bool:
        ...


@runtime_checkable
class SessionHandle(Protocol):
    """A session loaded from a SessionBackend."""

    @property
    def id(self) -> str:
        ...

    @property
    def user_id(self) -> str:
        ...

    def get_data(self) -> dict[str, Any]:
        """Return a copy of the session data."""
        ...

    def set_data(self, data: dict[str, Any]) -> None:
        """Replace the session data (in memory until ``save``)."""
        ...

    async def save(self) -> None:
        ...

    def is_active(self) -> bool:
        ...

    def is_expired(self) -> bool:
        ...


@runtime_checkable
class SessionBackend(Protocol):
    """Session persistence (the Sessions collaborator)."""

    async def create(
        self,
        user_id: str,
        *,
        timeout: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> SessionHandle:
        """
        Create and persist a session for ``user_id``.

        MUST delete every pre-existing session for the same user_id.
        ``timeout`` is in seconds; ``None`` means the session never expires.
        """
        ...

    async def get(self, session_id: str) -> SessionHandle:
        """
        Raises:
            SessionNotFoundFault: No such session
            ExpiredFault: Session exists but has expired
        """
        ...

    async def delete(self, session_id: str) -> None:
        """Delete a session. Deleting an unknown id is not an error."""
        ...

    async def purge_expired(self) -> set[str]:
        """
        Remove expired sessions.

        Returns:
            Ids of the sessions that survived
        """
        ...


@runtime_checkable
class UserBackend(Protocol):
    """User-record storage (the Users collaborator)."""

    async def register(self, record: dict[str, Any]) -> str:
        """
        Raises:
            DuplicateUserFault: user_id already registered
        """
        ...

    async def get(self, user_id: str) -> dict[str, Any]:
        """
        Raises:
            UserNotFoundFault: No such user
        """
        ...

    async def update(self, user_id: str, updates: dict[str, Any]) -> str:
        """
        Raises:
            UserNotFoundFault: No such user
        """
        ...

    async def delete(self, user_id: str) -> str:
        """
        Raises:
            UserNotFoundFault: No such user
        """
        ...

    async def list(self, filter: str = "") -> list[str]:
        """
        Return matching user ids, sorted.

        ``filter`` is ``""`` for all users or ``"field=value"``.
        """
        ...
