"""
Role-based access control for privileged operations.
"""

from .gate import AccessGate
from .models import (
    ADMIN_ROLES,
    MASTER_ROLES,
    AccessDecision,
    AccessOutcome,
    Principal,
    RequestContext,
    normalize_roles,
)

__all__ = [
    "ADMIN_ROLES",
    "MASTER_ROLES",
    "AccessDecision",
    "AccessGate",
    "AccessOutcome",
    "Principal",
    "RequestContext",
    "normalize_roles",
]
