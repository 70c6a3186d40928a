"""
Concierge - Identity orchestrator.

Central coordinator for the three collaborators:
- Auth (credentials)
- Sessions (session lifecycle)
- Users (user records)

It owns the KeyMap, builds UserHandles and is the only component that
talks to all three collaborators. Every public operation returns a Result;
the only fault that escapes is DeskNotFoundFault from ``open_desk``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from .backends import CredentialBackend, SessionBackend, SessionHandle, UserBackend
from .config import DeskConfig, is_seconds
from .desk import build_backends
from .faults import (
    ConsistencyWarning,
    DeskNotFoundFault,
    ExpiredFault,
    Fault,
    NotFoundFault,
    SessionNotFoundFault,
    Severity,
    UserKeyNotFoundFault,
    UserNotFoundFault,
    ValidationFault,
    fingerprint,
)
from .filters import (
    CREDENTIAL_FILTER,
    PROFILE_FILTER,
    PROFILE_UPDATE_FILTER,
    SESSION_SEED_FILTER,
)
from .keymap import KeyMap
from .keys import generate_guest_id, generate_user_key
from .result import (
    AccountResult,
    DeskResult,
    LogoutResult,
    RemovalResult,
    UserDataResult,
    UserListResult,
    UserResult,
    VerificationResult,
)
from .user import UserHandle, UserRecordAccess

logger = logging.getLogger("concierge.orchestrator")

DEFAULT_GUEST_TIMEOUT = 1800
DEFAULT_SESSION_TIMEOUT = 3600

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


def _require(value: Any, message: str) -> None:
    if value is None or value == "":
        raise ValidationFault(message)


def _require_seconds(value: Any) -> None:
    if not is_seconds(value):
        raise ValidationFault(f"timeout must be a positive number of seconds, got {value!r}")


# ============================================================================
# Concierge
# ============================================================================


class Concierge:
    """
    Identity orchestrator for one desk.

    Participation lifecycle:
    - admit_visitor: key only
    - checkin_guest: key + session
    - login_user: key + session + user record
    - login_guest: guest -> logged-in, carrying the guest's session data
    - restore_user: rebuild a handle from a key
    - logout_user: end a session

    Account administration:
    - add_user, remove_user, verify_user
    - update_user_data, get_user_data, list_users
    - verify_password, reset_password

    Example:
        >>> desk = await Concierge.open_desk("./desk")
        >>> concierge = desk.concierge
        >>> await concierge.add_user({"user_id": "alice", "moniker": "Alice", "password": "pw"})
        >>> login = await concierge.login_user({"user_id": "alice", "password": "pw"})
        >>> restored = await concierge.restore_user(login.user.user_key)
    """

    def __init__(
        self,
        auth: CredentialBackend,
        sessions: SessionBackend,
        users: UserBackend,
        keymap: KeyMap | None = None,
        config: DeskConfig | None = None,
        guest_timeout: float | None = None,
        session_timeout: float | None = DEFAULT_SESSION_TIMEOUT,
    ):
        self.auth = auth
        self.sessions = sessions
        self.users = users
        self.keymap = keymap if keymap is not None else KeyMap()
        self.config = config

        if config is not None:
            self.guest_timeout = config.guest_timeout
            self.session_timeout = config.session_timeout
        else:
            self.guest_timeout = guest_timeout if guest_timeout is not None else DEFAULT_GUEST_TIMEOUT
            self.session_timeout = session_timeout

    @property
    def desk_location(self) -> Path | None:
        return self.config.desk_location if self.config is not None else None

    # ========================================================================
    # Desk
    # ========================================================================

    @classmethod
    async def open_desk(
        cls,
        desk_location: str | Path,
        *,
        auth: CredentialBackend | None = None,
        sessions: SessionBackend | None = None,
        users: UserBackend | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> DeskResult:
        """
        Open an existing desk.

        Loads ``concierge.conf``, builds the collaborators that were not
        supplied, loads the KeyMap snapshot, purges expired sessions and
        drops the KeyMap entries whose sessions did not survive.

        Raises:
            DeskNotFoundFault: ``desk_location`` is not an existing directory
        """
        location = Path(desk_location)
        if not location.is_dir():
            logger.critical("Desk location does not exist: %s", location)
            raise DeskNotFoundFault(str(location))

        try:
            config = DeskConfig.load(location, environ=environ)
            backends = build_backends(config, auth=auth, sessions=sessions, users=users)
        except Fault as fault:
            return cls._failed("open_desk", fault, DeskResult, desk=str(location))

        concierge = cls(
            backends.auth,
            backends.sessions,
            backends.users,
            backends.keymap,
            config=config,
        )

        warnings = []
        try:
            await concierge._synchronize_keys()
        except Fault as fault:
            logger.warning("Session cleanup skipped for %s: %s", location, fault)
            warnings.append(f"Session cleanup skipped: {fault.message}")

        logger.info("Desk opened: %s", location)
        return DeskResult(
            success=True,
            message="Welcome!",
            concierge=concierge,
            desk=str(location),
            warnings=warnings,
        )

    async def _synchronize_keys(self) -> int:
        active = await self.sessions.purge_expired()
        return self.keymap.synchronize(active)

    # ========================================================================
    # Participation lifecycle
    # ========================================================================

    async def admit_visitor(self) -> UserResult:
        """Hand out a key with no session and no stored data."""
        visitor_key = generate_user_key()
        user = UserHandle(visitor_key, visitor_key)
        return UserResult(
            success=True,
            message="Visitor admitted",
            user=user,
            is_visitor=True,
        )

    async def checkin_guest(
        self,
        timeout: float | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> UserResult:
        """
        Give a new guest a session and a key.

        Args:
            timeout: Session lifetime in seconds (defaults to the desk's guest timeout)
            data: Initial session data
        """
        try:
            _require_seconds(timeout)
            guest_id = generate_guest_id()
            seed = self._session_seed(guest_id, data)
            session = await self.sessions.create(
                guest_id,
                timeout=timeout if timeout is not None else self.guest_timeout,
                data=seed,
            )
            user_key = await self._register_key(guest_id, session)
        except Fault as fault:
            return self._failed("checkin_guest", fault, UserResult)

        logger.info("Guest checked in: %s", guest_id)
        return UserResult(
            success=True,
            message="Guest checked in",
            user=UserHandle(guest_id, user_key, session=session),
            is_guest=True,
        )

    async def login_user(
        self,
        credentials: Mapping[str, Any],
        session_opts: Mapping[str, Any] | None = None,
    ) -> UserResult:
        """
        Authenticate and start a session.

        Any earlier session of the same user is replaced by the session
        store. The earlier key stays in the KeyMap until the next
        synchronization or an explicit logout.

        Args:
            credentials: ``user_id`` and ``password``; other fields are ignored
            session_opts: Optional ``timeout`` (seconds) and ``data`` (initial session data)
        """
        try:
            user = await self._login(credentials, session_opts)
        except Fault as fault:
            return self._failed("login_user", fault, UserResult)
        return UserResult(success=True, message="Login successful", user=user)

    async def _login(
        self,
        credentials: Mapping[str, Any],
        session_opts: Mapping[str, Any] | None = None,
    ) -> UserHandle:
        try:
            creds = CREDENTIAL_FILTER(credentials)
        except ValidationFault as fault:
            raise ValidationFault("Missing user_id or password", missing=fault.missing)
        user_id = creds["user_id"]

        try:
            record = await self.users.get(user_id)
        except NotFoundFault:
            raise UserNotFoundFault()

        await self.auth.check_password(user_id, creds["password"])

        opts = dict(session_opts or {})
        timeout = opts.get("timeout", self.session_timeout)
        _require_seconds(timeout)
        session = await self.sessions.create(
            user_id,
            timeout=timeout,
            data=self._session_seed(user_id, opts.get("data")),
        )
        user_key = await self._register_key(user_id, session)

        logger.info("User logged in: %s", user_id)
        return UserHandle(
            user_id,
            user_key,
            session=session,
            user_data=record,
            record_access=UserRecordAccess(self.users, user_id),
        )

    async def login_guest(
        self,
        credentials: Mapping[str, Any],
        guest_key: str,
    ) -> UserResult:
        """
        Turn a guest into a registered, logged-in user.

        Creates the account from ``credentials`` (the same record
        ``add_user`` takes), logs it in, copies the guest's session data
        into the new session (guest keys win), then deletes the guest's
        session and key. Steps already completed when a later step fails
        are not undone, apart from the account rollback in ``add_user``.
        """
        try:
            _require(guest_key, "Guest user_key not found")
            entry = self.keymap.get(guest_key)
            if entry is None:
                raise UserKeyNotFoundFault(message="Guest user_key not found")

            try:
                guest_session = await self.sessions.get(entry.session_id)
            except SessionNotFoundFault:
                raise SessionNotFoundFault(message="Guest session not found")
            guest_data = guest_session.get_data()

            user_id = await self._register_account(credentials)
            user = await self._login(credentials)

            if guest_data:
                session = user.session
                merged = session.get_data()
                merged.update(guest_data)
                session.set_data(merged)
                await session.save()

            await self.sessions.delete(entry.session_id)
            self.keymap.remove(guest_key)
        except Fault as fault:
            return self._failed("login_guest", fault, UserResult)

        logger.info("Guest %s converted to user %s", entry.user_id, user_id)
        return UserResult(
            success=True,
            message="Guest converted to logged-in user",
            user=user,
        )

    async def restore_user(self, user_key: str) -> UserResult:
        """
        Rebuild a handle from a key (e.g. a cookie value).

        A key whose session is gone or expired is removed from the KeyMap
        and the call fails with ``Session expired``. The tier comes from
        the Users store: a user record means logged in, none means guest.
        """
        try:
            _require(user_key, "user_key is required")
            entry = self.keymap.get(user_key)
            if entry is None:
                raise UserKeyNotFoundFault()

            try:
                session = await self.sessions.get(entry.session_id)
            except (SessionNotFoundFault, ExpiredFault):
                self.keymap.remove(user_key)
                logger.warning(
                    "Removed key %s: session %s is gone",
                    fingerprint(user_key),
                    fingerprint(entry.session_id),
                )
                raise ExpiredFault(session_id=entry.session_id)

            try:
                record = await self.users.get(entry.user_id)
            except NotFoundFault:
                record = None
        except Fault as fault:
            return self._failed("restore_user", fault, UserResult)

        if record is None:
            return UserResult(
                success=True,
                message="Guest restored",
                user=UserHandle(entry.user_id, user_key, session=session),
                is_guest=True,
            )

        return UserResult(
            success=True,
            message="User restored",
            user=UserHandle(
                entry.user_id,
                user_key,
                session=session,
                user_data=record,
                record_access=UserRecordAccess(self.users, entry.user_id),
            ),
        )

    async def logout_user(self, session_id: str) -> LogoutResult:
        """End a session and drop its key."""
        try:
            _require(session_id, "No session provided for logout")
            try:
                session = await self.sessions.get(session_id)
            except (SessionNotFoundFault, ExpiredFault):
                raise SessionNotFoundFault(message="Session not found for logout")

            user_key = self.keymap.find_by_session(session_id)
            await self.sessions.delete(session_id)
            if user_key is not None:
                self.keymap.remove(user_key)
        except Fault as fault:
            return self._failed("logout_user", fault, LogoutResult, session_id=session_id)

        logger.info("User logged out: %s", session.user_id)
        return LogoutResult(
            success=True,
            message="Logout successful",
            session_id=session_id,
            user_id=session.user_id,
        )

    # ========================================================================
    # Account administration
    # ========================================================================

    async def add_user(self, record: Mapping[str, Any]) -> AccountResult:
        """
        Register a user record and its password.

        ``record`` holds ``user_id``, ``moniker`` and ``password`` plus any
        profile fields. The password never reaches the Users store. If the
        Auth store refuses the password the new record is deleted again.
        """
        try:
            user_id = await self._register_account(record)
        except Fault as fault:
            user_id = record.get("user_id") if isinstance(record, Mapping) else None
            return self._failed("add_user", fault, AccountResult, user_id=user_id)

        return AccountResult(
            success=True,
            message=f"User '{user_id}' added successfully",
            user_id=user_id,
        )

    async def _register_account(self, record: Mapping[str, Any]) -> str:
        profile = PROFILE_FILTER(record)
        try:
            creds = CREDENTIAL_FILTER(record)
        except ValidationFault as fault:
            raise ValidationFault("Missing required field: password", missing=fault.missing)
        user_id = creds["user_id"]

        await self.users.register(profile)
        try:
            await self.auth.set_password(user_id, creds["password"])
        except Fault as fault:
            logger.warning("Password rejected for %s, removing new record", user_id)
            try:
                await self.users.delete(user_id)
            except Fault as rollback_fault:
                fault.warnings.append(f"Rollback failed: {rollback_fault.message}")
                logger.error("Rollback of %s failed: %s", user_id, rollback_fault)
            raise

        logger.info("User added: %s", user_id)
        return user_id

    async def remove_user(self, user_id: str) -> RemovalResult:
        """
        Delete a user from every store, continuing past failures.

        Succeeds even when nothing was deleted. ``deleted_from`` names the
        stores that changed; ``warnings`` holds one line per store that
        failed.
        """
        try:
            _require(user_id, "user_id is required")
        except Fault as fault:
            return self._failed("remove_user", fault, RemovalResult, user_id=user_id)

        deleted_from: list[str] = []
        warnings: list[str] = []

        try:
            await self.users.delete(user_id)
            deleted_from.append("Users")
        except Fault as fault:
            warnings.append(f"Users: {fault.message}")

        try:
            await self.auth.delete_identity(user_id)
            deleted_from.append("Auth")
        except Fault as fault:
            warnings.append(f"Auth: {fault.message}")

        try:
            entries = self.keymap.find_by_user(user_id)
        except Fault as fault:
            entries = []
            warnings.append(f"KeyMap: {fault.message}")

        session_ids = {e.session_id for e in entries}
        if session_ids:
            deleted = 0
            for session_id in session_ids:
                try:
                    await self.sessions.delete(session_id)
                    deleted += 1
                except Fault as fault:
                    warnings.append(f"Sessions: {fault.message}")
            if deleted:
                deleted_from.append("Sessions")

        if entries:
            try:
                self.keymap.remove_many(e.key for e in entries)
                deleted_from.append("KeyMap")
            except Fault as fault:
                warnings.append(f"KeyMap: {fault.message}")

        if deleted_from:
            message = f"User '{user_id}' removed from: {', '.join(deleted_from)}"
        else:
            message = f"User '{user_id}' not found in any component"
        if warnings:
            logger.warning("Partial removal of %s: %s", user_id, "; ".join(warnings))
        logger.info(message)

        return RemovalResult(
            success=True,
            message=message,
            user_id=user_id,
            deleted_from=deleted_from,
            warnings=warnings,
        )

    async def verify_user(self, user_id: str) -> VerificationResult:
        """
        Check that a user exists in both Auth and Users.

        A user present in exactly one of them is reported with a
        consistency warning; the call itself still succeeds.
        """
        try:
            _require(user_id, "user_id is required")
            in_auth = await self.auth.identity_exists(user_id)
            try:
                record = await self.users.get(user_id)
            except NotFoundFault:
                record = None
        except Fault as fault:
            return self._failed("verify_user", fault, VerificationResult, user_id=user_id)

        in_users = record is not None
        verified = in_auth and in_users
        warnings = []
        if in_auth != in_users:
            drift = ConsistencyWarning(metadata={"user_id": user_id})
            logger.warning("%s (user %s)", drift.message, user_id)
            warnings.append(drift.message)

        return VerificationResult(
            success=True,
            message=f"User '{user_id}' {'verified' if verified else 'not verified'}",
            user_id=user_id,
            verified=verified,
            exists_in_auth=in_auth,
            exists_in_users=in_users,
            user_status=record.get("user_status") if record else None,
            warnings=warnings,
        )

    async def update_user_data(self, user_id: str, updates: Mapping[str, Any]) -> AccountResult:
        """Write profile fields. ``user_id`` and passwords cannot be changed here."""
        try:
            _require(user_id, "user_id is required")
            allowed = PROFILE_UPDATE_FILTER(updates)
            if not allowed:
                raise ValidationFault("No valid fields to update")
            await self.users.update(user_id, allowed)
        except Fault as fault:
            return self._failed("update_user_data", fault, AccountResult, user_id=user_id)

        return AccountResult(
            success=True,
            message=f"User '{user_id}' updated successfully",
            user_id=user_id,
        )

    async def get_user_data(self, user_id: str, *fields: str) -> UserDataResult:
        """Fetch a user record, or only the named fields that it has."""
        try:
            _require(user_id, "user_id is required")
            record = await self.users.get(user_id)
        except Fault as fault:
            return self._failed("get_user_data", fault, UserDataResult, user_id=user_id)

        if fields:
            record = {f: record[f] for f in fields if f in record}
        return UserDataResult(
            success=True,
            message="User data retrieved",
            user_id=user_id,
            user=record,
        )

    async def list_users(
        self,
        filter: str = "",
        *,
        include_data: bool = False,
        fields: list[str] | tuple[str, ...] | None = None,
    ) -> UserListResult:
        """
        List user ids, optionally with their records.

        Args:
            filter: ``""`` for all users or ``"field=value"``
            include_data: Also return ``users``, a map of user_id to record
            fields: With ``include_data``, only these fields per record
        """
        try:
            user_ids = await self.users.list(filter)
        except Fault as fault:
            return self._failed("list_users", fault, UserListResult)

        if not include_data:
            return UserListResult(
                success=True,
                message=f"Found {len(user_ids)} users",
                user_ids=user_ids,
                count=len(user_ids),
            )

        users: dict[str, dict[str, Any]] = {}
        for user_id in user_ids:
            data = await self.get_user_data(user_id, *(fields or ()))
            if data.success:
                users[user_id] = data.user

        return UserListResult(
            success=True,
            message=f"Found {len(users)} users",
            user_ids=user_ids,
            users=users,
            count=len(users),
        )

    async def verify_password(self, user_id: str, password: str) -> AccountResult:
        try:
            _require(user_id, "user_id is required")
            _require(password, "password is required")
            message = await self.auth.check_password(user_id, password)
        except Fault as fault:
            return self._failed("verify_password", fault, AccountResult, user_id=user_id)
        return AccountResult(success=True, message=message, user_id=user_id)

    async def reset_password(self, user_id: str, new_password: str) -> AccountResult:
        """Replace a password. Checking the old one is the caller's business."""
        try:
            _require(user_id, "user_id is required")
            _require(new_password, "new_password is required")
            message = await self.auth.reset_password(user_id, new_password)
        except Fault as fault:
            return self._failed("reset_password", fault, AccountResult, user_id=user_id)

        logger.info("Password reset for %s", user_id)
        return AccountResult(success=True, message=message, user_id=user_id)

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _session_seed(owner_id: str, data: Mapping[str, Any] | None) -> dict[str, Any]:
        """Initial session data, minus credentials. The owner id is not stored in it."""
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise ValidationFault("Session data must be a mapping")
        seed = SESSION_SEED_FILTER({**data, "user_id": owner_id})
        seed.pop("user_id")
        return seed

    async def _register_key(self, user_id: str, session: SessionHandle) -> str:
        """Map a fresh key to ``session``. The session is dropped if the map cannot be written."""
        user_key = generate_user_key()
        try:
            self.keymap.put(user_key, user_id, session.id)
        except Fault as fault:
            try:
                await self.sessions.delete(session.id)
            except Fault as cleanup_fault:
                fault.warnings.append(f"Session cleanup failed: {cleanup_fault.message}")
            raise
        return user_key

    @staticmethod
    def _failed(operation: str, fault: Fault, result_cls, **payload: Any):
        logger.log(
            _LOG_LEVELS.get(fault.severity, logging.ERROR),
            "%s failed: %s",
            operation,
            fault,
        )
        return result_cls.failed(fault, **payload)
