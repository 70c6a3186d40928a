"""
Concierge - Desk assembly.

Turns a DeskConfig into the three collaborators the orchestrator talks to.
Applications may pass their own collaborators instead; only the missing
ones are built from the config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .backends import (
    CredentialBackend,
    FileCredentialStore,
    FileSessionStore,
    FileUserStore,
    MemorySessionStore,
    MemoryUserStore,
    PasswordHasher,
    PasswordPolicy,
    SessionBackend,
    UserBackend,
)
from .config import DeskConfig
from .keymap import KeyMap

logger = logging.getLogger("concierge.desk")


@dataclass(frozen=True)
class DeskBackends:
    auth: CredentialBackend
    sessions: SessionBackend
    users: UserBackend
    keymap: KeyMap


def build_hasher(config: DeskConfig) -> PasswordHasher:
    return PasswordHasher(
        time_cost=config.hash_time_cost,
        memory_cost=config.hash_memory_cost,
        parallelism=config.hash_parallelism,
    )


def build_backends(
    config: DeskConfig,
    *,
    auth: CredentialBackend | None = None,
    sessions: SessionBackend | None = None,
    users: UserBackend | None = None,
) -> DeskBackends:
    """
    Build whatever collaborators were not supplied.

    Auth is always file-backed: credentials are the one store that must
    outlive the process.

    Raises:
        Fault: A store could not be created or the KeyMap snapshot is unreadable
    """
    if auth is None:
        auth = FileCredentialStore(
            config.auth_file,
            hasher=build_hasher(config),
            policy=PasswordPolicy(min_length=config.password_min_length),
        )

    if sessions is None:
        if config.sessions_backend == "memory":
            sessions = MemorySessionStore()
        else:
            sessions = FileSessionStore(config.sessions_dir)

    if users is None:
        if config.users_backend == "memory":
            users = MemoryUserStore()
        else:
            users = FileUserStore(config.users_file)

    keymap = KeyMap.load(config.user_keys_file)
    logger.debug(
        "Desk %s: sessions=%s users=%s keys=%d",
        config.desk_location,
        getattr(sessions, "store_name", type(sessions).__name__),
        getattr(users, "store_name", type(users).__name__),
        len(keymap),
    )
    return DeskBackends(auth=auth, sessions=sessions, users=users, keymap=keymap)
