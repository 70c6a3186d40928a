"""
Concierge - Fault taxonomy.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (functional areas)
- Severity levels
- Concrete faults raised by filters, the KeyMap and the collaborators

Collaborators raise faults; the orchestrator catches them at its public
boundary and turns them into failed results. The only fault that reaches
an application is DeskNotFoundFault.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level and whether the fault aborts startup.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Desk configuration errors")
FaultDomain.VALIDATION = FaultDomain("validation", "Rejected input records")
FaultDomain.IDENTITY = FaultDomain("identity", "User and key lookups")
FaultDomain.SECURITY = FaultDomain("security", "Credentials and sessions")
FaultDomain.STORAGE = FaultDomain("storage", "Backend store failures")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.VALIDATION: {"severity": Severity.WARN, "retryable": False},
    FaultDomain.IDENTITY: {"severity": Severity.WARN, "retryable": False},
    FaultDomain.SECURITY: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.STORAGE: {"severity": Severity.ERROR, "retryable": True},
}


def fingerprint(token: str | None) -> str | None:
    """Short hash of a key or session id, safe to put in logs."""
    if not token:
        return None
    return f"sha256:{hashlib.sha256(token.encode()).hexdigest()[:16]}"


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    A fault is a first-class value with:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Public exposure control

    Subclasses set ``code``, ``message`` and ``domain`` as class attributes;
    any of them can be overridden per instance.

    Example:
        ```python
        raise UserNotFoundFault(message="User 'alice' not found")
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or getattr(type(self), "severity", None) or defaults["severity"]
        if retryable is None:
            retryable = getattr(type(self), "retryable", None)
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        if public is None:
            public = getattr(type(self), "public", False)
        self.public = public

        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    @property
    def warnings(self) -> list[str]:
        """Non-fatal notes gathered while this fault was propagating."""
        return self.metadata.setdefault("warnings", [])

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": {k: v for k, v in self.metadata.items() if not k.startswith("_")},
        }


# ============================================================================
# Validation
# ============================================================================

class ValidationFault(Fault):
    """
    A parameter filter rejected an input record.

    Raised before any backend is contacted.
    """

    code = "VALIDATION_FAILED"
    message = "Missing required fields"
    domain = FaultDomain.VALIDATION
    public = True

    def __init__(self, message: str | None = None, *, missing: tuple[str, ...] = (), **kwargs):
        super().__init__(message=message, **kwargs)
        self.missing = tuple(missing)
        if self.missing:
            self.metadata["missing"] = list(self.missing)


# ============================================================================
# Lookups
# ============================================================================

class NotFoundFault(Fault):
    """Unknown user_id, session_id or user_key."""

    code = "NOT_FOUND"
    message = "Not found"
    domain = FaultDomain.IDENTITY
    public = True


class UserNotFoundFault(NotFoundFault):
    code = "USER_NOT_FOUND"
    message = "User not found"


class SessionNotFoundFault(NotFoundFault):
    code = "SESSION_NOT_FOUND"
    message = "Session not found"


class UserKeyNotFoundFault(NotFoundFault):
    code = "USER_KEY_NOT_FOUND"
    message = "user_key not found"


# ============================================================================
# Security
# ============================================================================

class AuthenticationFault(Fault):
    """Password did not match. The message comes from the Auth collaborator."""

    code = "AUTH_FAILED"
    message = "Authentication failed"
    domain = FaultDomain.SECURITY
    severity = Severity.WARN
    public = True


class ExpiredFault(Fault):
    """
    Session was found but is no longer valid.

    Kept apart from SessionNotFoundFault because restoring a user key whose
    session expired removes the key from the KeyMap.
    """

    code = "SESSION_EXPIRED"
    message = "Session expired"
    domain = FaultDomain.SECURITY
    severity = Severity.WARN
    public = True

    def __init__(self, message: str | None = None, *, session_id: str | None = None, **kwargs):
        super().__init__(message=message, **kwargs)
        if session_id:
            self.metadata["session_id_hash"] = fingerprint(session_id)


# ============================================================================
# Backends
# ============================================================================

class BackendFault(Fault):
    """Opaque failure relayed from a collaborator, never reinterpreted."""

    code = "BACKEND_ERROR"
    message = "Backend operation failed"
    domain = FaultDomain.STORAGE
    retryable = False


class DuplicateUserFault(BackendFault):
    code = "USER_EXISTS"
    message = "User already exists"
    public = True


class PasswordRejectedFault(BackendFault):
    code = "PASSWORD_REJECTED"
    message = "Password rejected"
    public = True


class StoreUnavailableFault(BackendFault):
    """A file-backed store could not be read or written."""

    code = "STORE_UNAVAILABLE"
    message = "Store unavailable"
    retryable = True

    def __init__(self, store_name: str, cause: str, **kwargs):
        super().__init__(message=f"{store_name} store unavailable: {cause}", **kwargs)
        self.store_name = store_name
        self.metadata["store"] = store_name


class StoreCorruptedFault(BackendFault):
    code = "STORE_CORRUPTED"
    message = "Store data corrupted"


# ============================================================================
# Desk
# ============================================================================

class DeskNotFoundFault(Fault):
    """Desk location does not exist. Raised, never returned."""

    code = "DESK_NOT_FOUND"
    message = "Desk location does not exist"
    domain = FaultDomain.CONFIG
    severity = Severity.FATAL

    def __init__(self, location: str, **kwargs):
        super().__init__(message=f"Desk location does not exist: {location}", **kwargs)
        self.location = location


class DeskConfigFault(Fault):
    code = "DESK_CONFIG_INVALID"
    message = "Desk configuration is invalid"
    domain = FaultDomain.CONFIG
    severity = Severity.ERROR


# ============================================================================
# Warnings
# ============================================================================

class ConsistencyWarning(Fault):
    """
    Two stores disagree about a user.

    Never raised. Its message is placed in a result's ``warnings`` and does
    not flip ``success``.
    """

    code = "CONSISTENCY_WARNING"
    message = "User exists in only one component - data inconsistency detected"
    domain = FaultDomain.IDENTITY
    severity = Severity.WARN
