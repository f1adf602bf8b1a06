"""
Audit trail API (admin-only).
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity
from backend.finpanel.core.guards import require_admin
from backend.finpanel.schemas.admin import AuditTrailResponse, AuditLogResponse
from backend.finpanel.schemas.common import Pagination
from backend.finpanel.services.audit import get_audit_trail

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=AuditTrailResponse)
async def list_audit_logs(
    entity: Optional[str] = Query(None, description="Filter by entity kind"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    user_id: Optional[int] = Query(None, alias="userId", description="Filter by actor"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering.

    Returns recent audit logs for security monitoring and compliance, plus a
    count per action over the whole filtered set.
    """
    entries, total, action_stats = await get_audit_trail(
        db=db,
        entity=entity,
        action=action,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit
    )

    return AuditTrailResponse(
        data=[AuditLogResponse.model_validate(entry) for entry in entries],
        pagination=Pagination.build(page, limit, total),
        action_stats=action_stats
    )
