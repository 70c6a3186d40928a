"""
Concierge - Identity and session coordination for applications

Sits in front of three collaborators:
- Auth: password storage and verification
- Sessions: session lifecycle with independent expiry
- Users: user records

and gives applications one lifecycle for visitors, guests and logged-in
users, tracked by opaque user keys.
"""

__version__ = "0.5.0"

# ============================================================================
# Orchestrator
# ============================================================================

from .orchestrator import Concierge
from .config import DeskConfig
from .keymap import KeyMap, UserKeyEntry
from .user import Tier, UserHandle, UserRecordAccess

# ============================================================================
# Filters & Results
# ============================================================================

from .filters import (
    CREDENTIAL_FILTER,
    PROFILE_FILTER,
    PROFILE_UPDATE_FILTER,
    SESSION_SEED_FILTER,
    ParameterFilter,
)
from .result import (
    AccountResult,
    DeskResult,
    LogoutResult,
    RemovalResult,
    Result,
    UserDataResult,
    UserListResult,
    UserResult,
    VerificationResult,
)

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    AuthenticationFault,
    BackendFault,
    ConsistencyWarning,
    DeskConfigFault,
    DeskNotFoundFault,
    DuplicateUserFault,
    ExpiredFault,
    Fault,
    FaultDomain,
    NotFoundFault,
    PasswordRejectedFault,
    SessionNotFoundFault,
    Severity,
    StoreCorruptedFault,
    StoreUnavailableFault,
    UserKeyNotFoundFault,
    UserNotFoundFault,
    ValidationFault,
)

__all__ = [
    "__version__",
    # Orchestrator
    "Concierge",
    "DeskConfig",
    "KeyMap",
    "UserKeyEntry",
    "Tier",
    "UserHandle",
    "UserRecordAccess",
    # Filters
    "ParameterFilter",
    "CREDENTIAL_FILTER",
    "PROFILE_FILTER",
    "SESSION_SEED_FILTER",
    "PROFILE_UPDATE_FILTER",
    # Results
    "Result",
    "DeskResult",
    "UserResult",
    "AccountResult",
    "RemovalResult",
    "VerificationResult",
    "UserDataResult",
    "UserListResult",
    "LogoutResult",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ValidationFault",
    "NotFoundFault",
    "UserNotFoundFault",
    "SessionNotFoundFault",
    "UserKeyNotFoundFault",
    "AuthenticationFault",
    "ExpiredFault",
    "BackendFault",
    "DuplicateUserFault",
    "PasswordRejectedFault",
    "StoreUnavailableFault",
    "StoreCorruptedFault",
    "DeskNotFoundFault",
    "DeskConfigFault",
    "ConsistencyWarning",
]
