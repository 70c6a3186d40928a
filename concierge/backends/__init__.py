"""
Concierge backends - the three collaborators behind the orchestrator.

- Auth: credential storage and verification (``credentials``)
- Sessions: session lifecycle and persistence (``sessions``)
- Users: user records (``users``)

Any object satisfying the protocols in ``base`` can replace the bundled
stores.
"""

from .base import (
    CredentialBackend,
    SessionBackend,
    SessionHandle,
    UserBackend,
)
from .credentials import FileCredentialStore, MemoryCredentialStore
from .hashing import PasswordHasher, PasswordPolicy
from .sessions import FileSessionStore, MemorySessionStore, Session
from .users import FileUserStore, MemoryUserStore

__all__ = [
    "CredentialBackend",
    "SessionBackend",
    "SessionHandle",
    "UserBackend",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "PasswordHasher",
    "PasswordPolicy",
    "Session",
    "MemorySessionStore",
    "FileSessionStore",
    "MemoryUserStore",
    "FileUserStore",
]
