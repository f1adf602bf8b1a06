"""
Audit logging service.

Appends immutable records of mutating actions. ``record`` only flushes: the
audit row commits or rolls back together with the change it describes.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from sqlalchemy.orm import selectinload

from backend.finpanel.models.audit_log import AuditLog

logger = logging.getLogger("finpanel.audit")


class AuditAction:
    """Standardized audit action constants."""
    SIGN_IN = "SIGN_IN"
    SIGN_OUT = "SIGN_OUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_APPROVED = "USER_APPROVED"
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"

    FUND_POOL_UPDATED = "FUND_POOL_UPDATED"
    FUND_POOL_DEDUCT = "FUND_POOL_DEDUCT"
    REMITTANCE_POOL_CREDIT = "REMITTANCE_POOL_CREDIT"
    FUND_POOL_REFUND = "FUND_POOL_REFUND"

    BUDGET_CREATED = "BUDGET_CREATED"
    BUDGET_APPROVED = "BUDGET_APPROVED"
    BUDGET_REJECTED = "BUDGET_REJECTED"
    BUDGET_ITEMS_UPDATED = "BUDGET_ITEMS_UPDATED"
    BUDGET_REVISION_REQUESTED = "BUDGET_REVISION_REQUESTED"
    BUDGET_RESUBMITTED = "BUDGET_RESUBMITTED"
    BUDGET_DISBURSED = "BUDGET_DISBURSED"
    BUDGET_REVOKED = "BUDGET_REVOKED"

    REMITTANCE_CREATED = "REMITTANCE_CREATED"
    REMITTANCE_VERIFIED = "REMITTANCE_VERIFIED"
    REMITTANCE_REJECTED = "REMITTANCE_REJECTED"


class AuditEntity:
    USER = "USER"
    FUND_POOL = "FUND_POOL"
    BUDGET = "BUDGET"
    REMITTANCE = "REMITTANCE"


async def record(
    db: AsyncSession,
    action: str,
    entity: str,
    entity_id: Optional[Any] = None,
    user_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Append an audit entry to the current unit of work.

    Args:
        db: Database session (caller commits)
        action: Action being performed (use AuditAction constants)
        entity: Kind of entity acted upon (use AuditEntity constants)
        entity_id: Identifier of the entity, stored as text
        user_id: Actor performing the action
        changes: Action-specific payload
        ip_address: IP address of the request

    Returns:
        The pending AuditLog instance (flushed, so it has an id)
    """
    entry = AuditLog(
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        user_id=user_id,
        changes=changes,
        ip_address=ip_address
    )

    db.add(entry)
    await db.flush()

    logger.info("audit %s %s/%s by user %s", action, entity, entry.entity_id, user_id)
    return entry


async def get_audit_trail(
    db: AsyncSession,
    entity: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50
) -> Tuple[List[AuditLog], int, Dict[str, int]]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        (entries most recent first, total matching, count per action)
    """
    filters = []
    if entity:
        filters.append(AuditLog.entity == entity)
    if action:
        filters.append(AuditLog.action == action)
    if user_id:
        filters.append(AuditLog.user_id == user_id)
    if start_date:
        filters.append(AuditLog.created_at >= start_date)
    if end_date:
        filters.append(AuditLog.created_at <= end_date)

    query = (
        select(AuditLog)
        .options(selectinload(AuditLog.user))
        .where(*filters)
        .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    entries = list(result.scalars().all())

    total = (await db.execute(select(func.count(AuditLog.id)).where(*filters))).scalar_one()

    stats_result = await db.execute(
        select(AuditLog.action, func.count(AuditLog.id)).where(*filters).group_by(AuditLog.action)
    )
    action_stats = {row[0]: row[1] for row in stats_result.all()}

    return entries, total, action_stats


async def get_user_audit_history(
    db: AsyncSession,
    user_id: int,
    limit: int = 50
) -> List[AuditLog]:
    """
    Get audit history where the user was the actor or the target.
    """
    query = select(AuditLog).options(selectinload(AuditLog.user)).where(
        (AuditLog.user_id == user_id)
        | ((AuditLog.entity == AuditEntity.USER) & (AuditLog.entity_id == str(user_id)))
    ).order_by(desc(AuditLog.created_at), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
