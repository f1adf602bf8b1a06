"""
Remittance service.

Users report money they sent in; an admin verifies (crediting the pool) or
rejects each report exactly once. The decision is claimed with a conditional
UPDATE on the PENDING status before any money moves, so two admins deciding
the same remittance at once cannot both credit the pool.
"""

import logging
from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc
from sqlalchemy.orm import selectinload

from backend.finpanel.core.dependencies import Identity
from backend.finpanel.core.exceptions import ResourceNotFoundError, InvalidStateError
from backend.finpanel.models.enums import RemittanceStatus
from backend.finpanel.models.notification import NotificationType
from backend.finpanel.models.remittance import Remittance
from backend.finpanel.models.timestamps import utcnow
from backend.finpanel.services import fund_pool
from backend.finpanel.services.audit import record, AuditAction, AuditEntity
from backend.finpanel.services.notification_service import NotificationService

logger = logging.getLogger("finpanel.remittances")


async def _load(db: AsyncSession, remittance_id: int) -> Optional[Remittance]:
    result = await db.execute(
        select(Remittance)
        .options(selectinload(Remittance.user))
        .where(Remittance.id == remittance_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_remittance(
    db: AsyncSession,
    identity: Identity,
    amount: int,
    note: str = "",
    proof: str = ""
) -> Remittance:
    """Record a PENDING remittance and tell every admin about it."""
    remittance = Remittance(
        user_id=identity.id,
        amount=amount,
        note=note or "",
        proof=proof or "",
        status=RemittanceStatus.PENDING,
    )
    db.add(remittance)
    await db.flush()

    await record(
        db,
        action=AuditAction.REMITTANCE_CREATED,
        entity=AuditEntity.REMITTANCE,
        entity_id=remittance.id,
        user_id=identity.id,
        changes={"amount": amount, "note": note},
    )

    await NotificationService.notify_admins(
        db,
        title="New Remittance Submitted",
        message=f"{identity.name} submitted a remittance of KES {amount:,}",
        type=NotificationType.REMITTANCE_CREATED,
        data={"remittanceId": remittance.id, "amount": amount, "userName": identity.name},
    )

    return await _load(db, remittance.id)


async def list_remittances(
    db: AsyncSession,
    identity: Identity,
    status: Optional[RemittanceStatus] = None
) -> List[Remittance]:
    """Admins see everything (optionally by status); users see only their own."""
    query = select(Remittance).options(selectinload(Remittance.user))

    if identity.is_admin:
        if status:
            query = query.where(Remittance.status == status)
    else:
        query = query.where(Remittance.user_id == identity.id)

    result = await db.execute(query.order_by(desc(Remittance.created_at), desc(Remittance.id)))
    return list(result.scalars().all())


async def _claim(
    db: AsyncSession,
    remittance_id: int,
    status: RemittanceStatus,
    admin_id: int
) -> None:
    """
    Move a remittance out of PENDING, or fail if someone else already did.

    Raises:
        InvalidStateError: the remittance is no longer PENDING
    """
    stmt = (
        update(Remittance)
        .where(Remittance.id == remittance_id, Remittance.status == RemittanceStatus.PENDING)
        .values(status=status, verified_by=admin_id, verified_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        current = (await db.execute(
            select(Remittance.status).where(Remittance.id == remittance_id)
        )).scalar_one()
        raise InvalidStateError("Already processed", details={"status": current.value})


async def verify_remittance(
    db: AsyncSession,
    admin: Identity,
    remittance_id: int,
    approve: bool,
    note: Optional[str] = None
) -> Tuple[Remittance, Optional[int]]:
    """
    Verify or reject a PENDING remittance.

    Returns:
        (updated remittance, new pool balance when approved else None)

    Raises:
        ResourceNotFoundError: no such remittance
        InvalidStateError: already verified or rejected
    """
    remittance = await _load(db, remittance_id)
    if remittance is None:
        raise ResourceNotFoundError("Remittance", remittance_id)

    target = RemittanceStatus.VERIFIED if approve else RemittanceStatus.REJECTED
    await _claim(db, remittance.id, target, admin.id)

    new_balance = None

    if approve:
        new_balance = await fund_pool.credit(
            db, admin, remittance.amount, remittance_id=remittance.id, note=note
        )
        action = AuditAction.REMITTANCE_VERIFIED
        title = "Remittance Verified"
        message = f"Your remittance of {remittance.amount} has been verified and added to the pool."
        notification_type = NotificationType.REMITTANCE_VERIFIED
    else:
        action = AuditAction.REMITTANCE_REJECTED
        title = "Remittance Rejected"
        message = f"Your remittance of {remittance.amount} was rejected."
        notification_type = NotificationType.REMITTANCE_REJECTED

    await record(
        db,
        action=action,
        entity=AuditEntity.REMITTANCE,
        entity_id=remittance.id,
        user_id=admin.id,
        changes={
            "from": RemittanceStatus.PENDING.value,
            "to": target.value,
            "amount": remittance.amount,
            "note": note,
        },
    )

    await NotificationService.notify(
        db,
        user_id=remittance.user_id,
        title=title,
        message=message,
        type=notification_type,
        data={"remittanceId": remittance.id, "amount": remittance.amount},
    )

    logger.info("Remittance %s -> %s by %s", remittance.id, target.value, admin.id)
    return await _load(db, remittance.id), new_balance
