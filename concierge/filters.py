"""
Concierge - Parameter filters.

Filters are the data-segregation boundary between credentials, user
profiles and session data. Every free-form record an application hands to
the orchestrator passes through exactly one filter before it reaches a
backend.

| Filter          | Required           | Accepted   | Excluded                          |
|-----------------|--------------------|------------|-----------------------------------|
| credential      | user_id, password  | -          | -                                 |
| profile         | user_id, moniker   | all others | password, confirm_password        |
| session-seed    | user_id            | all others | password, confirm_password        |
| profile-update  | -                  | all others | user_id, password, confirm_password |
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .faults import ValidationFault

ACCEPT_ALL = "*"


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


@dataclass(frozen=True)
class ParameterFilter:
    """
    A named (required, accepted, excluded) field policy.

    Calling a filter returns a new dict holding the required and accepted
    fields present in the record, minus the excluded ones. If any required
    field is missing or empty a ValidationFault is raised and nothing is
    returned.

    Example:
        >>> CREDENTIAL_FILTER({"user_id": "alice", "password": "pw", "moniker": "A"})
        {'user_id': 'alice', 'password': 'pw'}
    """

    name: str
    required: tuple[str, ...] = ()
    accepted: tuple[str, ...] | str = ()
    excluded: tuple[str, ...] = ()

    def accepts(self, field_name: str) -> bool:
        if field_name in self.excluded:
            return False
        if field_name in self.required:
            return True
        if self.accepted == ACCEPT_ALL:
            return True
        return field_name in self.accepted

    def missing(self, record: Mapping[str, Any]) -> tuple[str, ...]:
        return tuple(f for f in self.required if not _is_present(record.get(f)))

    def __call__(self, record: Mapping[str, Any] | None) -> dict[str, Any]:
        if not isinstance(record, Mapping):
            raise ValidationFault(f"{self.name} input must be a mapping")

        missing = self.missing(record)
        if missing:
            raise ValidationFault(
                f"Missing required fields: {', '.join(missing)}",
                missing=missing,
                metadata={"filter": self.name},
            )

        return {k: v for k, v in record.items() if self.accepts(k)}


# Credentials only. Nothing else may ride along into the Auth store.
CREDENTIAL_FILTER = ParameterFilter(
    name="credential",
    required=("user_id", "password"),
)

# Everything except credentials.
PROFILE_FILTER = ParameterFilter(
    name="profile",
    required=("user_id", "moniker"),
    accepted=ACCEPT_ALL,
    excluded=("password", "confirm_password"),
)

SESSION_SEED_FILTER = ParameterFilter(
    name="session-seed",
    required=("user_id",),
    accepted=ACCEPT_ALL,
    excluded=("password", "confirm_password"),
)

# user_id is passed separately; passwords go through reset_password.
PROFILE_UPDATE_FILTER = ParameterFilter(
    name="profile-update",
    accepted=ACCEPT_ALL,
    excluded=("user_id", "password", "confirm_password"),
)


FILTERS = {
    f.name: f
    for f in (CREDENTIAL_FILTER, PROFILE_FILTER, SESSION_SEED_FILTER, PROFILE_UPDATE_FILTER)
}
