"""
Concierge - Operation results.

Every orchestrator operation returns a Result instead of raising. A result
always carries ``success`` and ``message``; failed results also carry the
Fault that caused them. Each operation family adds its own payload fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

from .faults import Fault

if TYPE_CHECKING:
    from .orchestrator import Concierge
    from .user import UserHandle


@dataclass
class Result:
    """
    Base result.

    Attributes:
        success: Whether the operation completed
        message: Human-readable summary (relayed verbatim from backends on failure)
        fault: The fault behind a failure, if any
        warnings: Non-fatal notes (rollback failures, consistency drift)
    """

    success: bool = False
    message: str = ""
    fault: Fault | None = field(default=None, repr=False)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, fault: Fault, **payload: Any):
        return cls(
            success=False,
            message=fault.message,
            fault=fault,
            warnings=list(fault.metadata.get("warnings", [])),
            **payload,
        )

    @property
    def code(self) -> str | None:
        return self.fault.code if self.fault else None

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view. Handles and orchestrators are reduced to their ids."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "fault":
                if value is not None:
                    out["code"] = value.code
                continue
            if f.name == "concierge":
                continue
            if f.name == "warnings" and not value:
                continue
            if hasattr(value, "to_dict"):
                value = value.to_dict()
            out[f.name] = value
        return out


@dataclass
class DeskResult(Result):
    concierge: Concierge | None = field(default=None, repr=False)
    desk: str | None = None


@dataclass
class UserResult(Result):
    user: UserHandle | None = None
    is_visitor: bool = False
    is_guest: bool = False


@dataclass
class AccountResult(Result):
    user_id: str | None = None


@dataclass
class RemovalResult(AccountResult):
    deleted_from: list[str] = field(default_factory=list)


@dataclass
class VerificationResult(AccountResult):
    verified: bool = False
    exists_in_auth: bool = False
    exists_in_users: bool = False
    user_status: str | None = None


@dataclass
class UserDataResult(AccountResult):
    user: dict[str, Any] | None = None


@dataclass
class UserListResult(Result):
    user_ids: list[str] = field(default_factory=list)
    users: dict[str, dict[str, Any]] | None = None
    count: int = 0


@dataclass
class LogoutResult(AccountResult):
    session_id: str | None = None
