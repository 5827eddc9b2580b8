"""
Audit trail endpoints.

Read-only view of the audit_logs table for platform (master) admins.
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ...core.access import MASTER_ROLES
from ..dependencies import AuditRepositoryDep, require_roles

logger = logging.getLogger(__name__)

router = APIRouter()


class AuditLogsResponse(BaseModel):
    """Audit rows, newest first."""
    entries: list[dict[str, Any]] = Field(description="Audit rows")
    total: int = Field(description="Number of rows returned")


@router.get(
    "",
    response_model=AuditLogsResponse,
    status_code=status.HTTP_200_OK,
    summary="List audit records",
    description="Master admins only. Filters are exact matches.",
    dependencies=[Depends(require_roles(MASTER_ROLES))],
)
async def list_audit_logs(
    repository: AuditRepositoryDep,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> AuditLogsResponse:
    entries = repository.list(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        limit=limit,
    )

    logger.debug("Listed audit logs", extra={"count": len(entries)})

    return AuditLogsResponse(entries=entries, total=len(entries))
