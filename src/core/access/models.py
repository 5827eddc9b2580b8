"""
Value types for role-based access decisions.

The authentication layer builds a Principal once per request. The gate
only reads it: id and role are all it needs to decide.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union


ADMIN_ROLES: frozenset[str] = frozenset({
    "admin",
    "college_admin",
    "master_admin",
    "exam_admin",
    "academic_admin",
})

# Platform-wide operations (colleges, audit trail)
MASTER_ROLES: frozenset[str] = frozenset({"master_admin", "superadmin"})


RoleSpec = Union[str, Iterable[str], None]


def normalize_roles(roles: RoleSpec = None) -> frozenset[str]:
    """
    Turn a single role, an iterable of roles or None into a RoleSet.

    None means the full admin vocabulary. An empty collection is a
    configuration mistake, not "nobody allowed", so it raises.
    """
    if roles is None:
        return ADMIN_ROLES
    if isinstance(roles, str):
        role_set = frozenset({roles})
    else:
        role_set = frozenset(roles)
    if not role_set or not all(isinstance(r, str) and r for r in role_set):
        raise ValueError("Required roles must be a non-empty set of role names")
    return role_set


@dataclass(frozen=True)
class Principal:
    """Authenticated actor attached to a request."""
    id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.id) and bool(self.role)


@dataclass(frozen=True)
class RequestContext:
    """Request metadata recorded alongside each decision."""
    path: Optional[str] = None
    method: Optional[str] = None
    source_address: Optional[str] = None


class AccessOutcome(Enum):
    GRANTED = "granted"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class AccessDecision:
    """Result of one `AccessGate.authorize` call."""
    outcome: AccessOutcome
    required_roles: frozenset[str] = field(default_factory=frozenset)
    principal: Optional[Principal] = None

    @property
    def granted(self) -> bool:
        return self.outcome is AccessOutcome.GRANTED

    @property
    def required_roles_label(self) -> str:
        """Human readable role list, e.g. 'admin or exam_admin'."""
        return " or ".join(sorted(self.required_roles))
