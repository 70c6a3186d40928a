"""
Concierge - Desk configuration.

A desk is a directory holding ``concierge.conf`` (JSON) plus the data files
of the three collaborators and the user-key snapshot. The config is read
once when the desk is opened and never changes afterwards.

Merge order (later overrides earlier):
1. Built-in defaults
2. ``concierge.conf``
3. Environment variables (``CONCIERGE_*``)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from .faults import DeskConfigFault

CONFIG_FILE = "concierge.conf"
ENV_PREFIX = "CONCIERGE_"

BACKEND_CHOICES = ("file", "memory")
PATH_FIELDS = ("sessions_dir", "auth_file", "users_file", "user_keys_file")
INT_FIELDS = ("password_min_length", "hash_time_cost", "hash_memory_cost", "hash_parallelism")


def is_seconds(value: Any) -> bool:
    """True for a positive number of seconds or None (no expiry)."""
    if value is None:
        return True
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > 0


@dataclass(frozen=True)
class DeskConfig:
    """
    Immutable desk configuration.

    Attributes:
        desk_location: The desk directory
        sessions_backend: ``file`` or ``memory``
        sessions_dir: Session files (file backend)
        auth_file: Password hashes
        users_backend: ``file`` or ``memory``
        users_file: User records (file backend)
        user_keys_file: KeyMap snapshot
        guest_timeout: Guest session lifetime in seconds
        session_timeout: Logged-in session lifetime in seconds (None = indefinite)
        password_min_length: Shortest password the Auth store accepts
        hash_time_cost / hash_memory_cost / hash_parallelism: argon2 parameters
    """

    desk_location: Path
    sessions_backend: str = "file"
    sessions_dir: Path | None = None
    auth_file: Path | None = None
    users_backend: str = "file"
    users_file: Path | None = None
    user_keys_file: Path | None = None
    guest_timeout: float = 1800
    session_timeout: float | None = 3600
    password_min_length: int = 1
    hash_time_cost: int = 2
    hash_memory_cost: int = 65536
    hash_parallelism: int = 4

    def __post_init__(self):
        base = Path(self.desk_location)
        object.__setattr__(self, "desk_location", base)
        defaults = {
            "sessions_dir": "sessions",
            "auth_file": "auth.pwd",
            "users_file": "users.json",
            "user_keys_file": "user_keys.json",
        }
        for name in PATH_FIELDS:
            value = getattr(self, name) or defaults[name]
            path = Path(value)
            if not path.is_absolute():
                path = base / path
            object.__setattr__(self, name, path)

        for name in ("sessions_backend", "users_backend"):
            if getattr(self, name) not in BACKEND_CHOICES:
                raise DeskConfigFault(
                    message=f"{name} must be one of {', '.join(BACKEND_CHOICES)}, got {getattr(self, name)!r}"
                )

        if not is_seconds(self.guest_timeout) or self.guest_timeout is None:
            raise DeskConfigFault(message=f"guest_timeout must be a number of seconds, got {self.guest_timeout!r}")
        if not is_seconds(self.session_timeout):
            raise DeskConfigFault(
                message=f"session_timeout must be a number of seconds or null, got {self.session_timeout!r}"
            )
        for name in INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise DeskConfigFault(message=f"{name} must be a positive integer, got {value!r}")

    @property
    def config_file(self) -> Path:
        return self.desk_location / CONFIG_FILE

    @classmethod
    def from_mapping(cls, desk_location: str | Path, data: Mapping[str, Any]) -> DeskConfig:
        known = {f.name for f in fields(cls)} - {"desk_location"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise DeskConfigFault(message=f"Unknown config keys: {', '.join(unknown)}")
        try:
            return cls(desk_location=Path(desk_location), **dict(data))
        except TypeError as e:
            raise DeskConfigFault(message=f"Invalid desk config: {e}")

    @classmethod
    def load(
        cls,
        desk_location: str | Path,
        environ: Mapping[str, str] | None = None,
    ) -> DeskConfig:
        """
        Load ``concierge.conf`` from a desk directory.

        Raises:
            DeskConfigFault: File missing, empty, or not a JSON object
        """
        conf_path = Path(desk_location) / CONFIG_FILE
        try:
            text = conf_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise DeskConfigFault(message=f"Config file not found: {conf_path}")
        except OSError as e:
            raise DeskConfigFault(message=f"Cannot read config file: {e}")

        if not text.strip():
            raise DeskConfigFault(message="Config file is empty")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DeskConfigFault(message=f"Invalid JSON in config file: {e}")
        if not isinstance(data, dict):
            raise DeskConfigFault(message="Config file must hold a JSON object")

        data.update(_load_from_env(os.environ if environ is None else environ))
        return cls.from_mapping(desk_location, data)


def _load_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect CONCIERGE_<FIELD> overrides, e.g. CONCIERGE_GUEST_TIMEOUT=600."""
    known = {f.name for f in fields(DeskConfig)} - {"desk_location"}
    overrides = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            overrides[name] = _parse_value(value)
    return overrides


def _parse_value(value: str) -> Any:
    """Parse string value to appropriate type."""
    lowered = value.lower()
    if lowered in ("null", "none"):
        return None
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False

    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass

    return value
