"""
Role-based access gate for privileged operations.

Every privileged route passes through `AccessGate.authorize` before its
handler runs. A call ends in exactly one of three outcomes, and each one
is written to the security audit channel:

- UNAUTHENTICATED: no principal, or it lacks an id or a role
- FORBIDDEN: the principal's role is outside the required set
- GRANTED: the role is in the required set

Only the role decides between FORBIDDEN and GRANTED. The gate keeps no
state between calls.

If anything inside the gate fails (including writing the audit record)
the request is denied with an INTERNAL_FAULT error. The gate never
grants access it could not record. An empty or malformed role set given
to `authorize` is such a failure too, not a bare ValueError.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..audit import AuditLog, AuditWriteError
from ..errors import AccessError, ErrorKind
from .models import (
    AccessDecision,
    AccessOutcome,
    Principal,
    RequestContext,
    RoleSpec,
    normalize_roles,
)

logger = logging.getLogger(__name__)


class AccessGate:
    """Decides whether a principal may proceed past a protected operation."""

    def __init__(self, audit: AuditLog) -> None:
        self._audit = audit

    def authorize(
        self,
        principal: Optional[Principal],
        required_roles: RoleSpec = None,
        context: Optional[RequestContext] = None,
    ) -> AccessDecision:
        """
        Evaluate one request against a RoleSet.

        Args:
            principal: The authenticated actor, possibly absent or incomplete
            required_roles: Single role, iterable of roles, or None for all admin roles
            context: Path/method/source address for the audit record

        Returns:
            AccessDecision with the outcome. Denials are returned, not raised;
            use `enforce` to raise them.

        Raises:
            AccessError(INTERNAL_FAULT): the decision could not be made or recorded
        """
        context = context or RequestContext()

        try:
            roles = normalize_roles(required_roles)
            return self._decide(principal, roles, context)
        except Exception as e:
            logger.error(
                "Access gate fault, denying request",
                extra={"path": context.path, "error": str(e)},
                exc_info=e,
            )
            self._record_fault(principal, context, e)
            raise AccessError(
                ErrorKind.INTERNAL_FAULT,
                "Internal Server Error",
            ) from e

    def enforce(
        self,
        principal: Optional[Principal],
        required_roles: RoleSpec = None,
        context: Optional[RequestContext] = None,
    ) -> AccessDecision:
        """Authorize and raise AccessError unless the outcome is GRANTED."""
        decision = self.authorize(principal, required_roles, context)

        if decision.outcome is AccessOutcome.UNAUTHENTICATED:
            raise AccessError(ErrorKind.UNAUTHENTICATED, "Authentication required")

        if decision.outcome is AccessOutcome.FORBIDDEN:
            raise AccessError(
                ErrorKind.FORBIDDEN,
                "Insufficient permissions",
                details=f"Required role: {decision.required_roles_label}",
            )

        return decision

    def _decide(
        self,
        principal: Optional[Principal],
        roles: frozenset[str],
        context: RequestContext,
    ) -> AccessDecision:
        timestamp = datetime.now(timezone.utc).isoformat()

        if principal is None or not principal.is_complete:
            self._audit.warning(
                "Unauthorized access attempt",
                path=context.path,
                method=context.method,
                source_address=context.source_address,
                details={"timestamp": timestamp},
            )
            return AccessDecision(AccessOutcome.UNAUTHENTICATED, roles, principal)

        if principal.role not in roles:
            self._audit.warning(
                "Forbidden access attempt",
                principal_id=principal.id,
                principal_role=principal.role,
                path=context.path,
                method=context.method,
                source_address=context.source_address,
                details={"required_roles": sorted(roles), "timestamp": timestamp},
            )
            return AccessDecision(AccessOutcome.FORBIDDEN, roles, principal)

        self._audit.info(
            "Admin access granted",
            principal_id=principal.id,
            principal_role=principal.role,
            path=context.path,
            method=context.method,
            source_address=context.source_address,
            details={"timestamp": timestamp},
        )
        return AccessDecision(AccessOutcome.GRANTED, roles, principal)

    def _record_fault(
        self,
        principal: Optional[Principal],
        context: RequestContext,
        error: Exception,
    ) -> None:
        """
        Record the denial. Best effort: the audit sink itself may be the
        thing that failed.

        A grant that some sinks accepted before another one failed is
        superseded by this record, which names it in details.
        """
        details = {}
        if isinstance(error, AuditWriteError) and error.record.success:
            details["supersedes"] = str(error.record.id)

        try:
            self._audit.error(
                "Error in access gate",
                principal_id=principal.id if principal else None,
                principal_role=principal.role if principal else None,
                path=context.path,
                method=context.method,
                source_address=context.source_address,
                error=str(error),
                details=details,
            )
        except Exception as audit_error:
            logger.error(
                "Could not record access gate fault",
                extra={"path": context.path, "error": str(audit_error)},
            )
