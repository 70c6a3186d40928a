"""
Shared test fixtures and helpers for the Concierge test suite.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from concierge import Concierge, KeyMap
from concierge.backends import (
    MemoryCredentialStore,
    MemorySessionStore,
    MemoryUserStore,
    PasswordHasher,
)


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Settable UTC clock for session expiry tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ============================================================================
# Collaborators
# ============================================================================

# Cheapest argon2 parameters argon2-cffi accepts; hashing stays real.
FAST_HASH = {"hash_time_cost": 1, "hash_memory_cost": 1024, "hash_parallelism": 1}


def fast_hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth():
    return MemoryCredentialStore(hasher=fast_hasher())


@pytest.fixture
def sessions(clock):
    return MemorySessionStore(clock=clock)


@pytest.fixture
def users():
    return MemoryUserStore()


@pytest.fixture
def keymap():
    return KeyMap()


@pytest.fixture
def concierge(auth, sessions, users, keymap):
    return Concierge(auth, sessions, users, keymap)


# ============================================================================
# Records
# ============================================================================


def alice(**extra: Any) -> Dict[str, Any]:
    record = {
        "user_id": "alice",
        "moniker": "Alice",
        "email": "alice@example.com",
        "password": "p1",
    }
    record.update(extra)
    return record


ALICE_CREDENTIALS = {"user_id": "alice", "password": "p1"}


# ============================================================================
# Desks
# ============================================================================


def write_desk(directory: Path, **config: Any) -> Path:
    """Create a desk directory with a concierge.conf."""
    directory.mkdir(parents=True, exist_ok=True)
    conf = dict(FAST_HASH)
    conf.update(config)
    (directory / "concierge.conf").write_text(json.dumps(conf, indent=2), encoding="utf-8")
    return directory


@pytest.fixture
def desk(tmp_path):
    return write_desk(tmp_path / "desk")
