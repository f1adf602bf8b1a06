"""
Budget service.

Creation, listing, the admin approval workflow, payouts and item editing.

Every status change is a conditional UPDATE on the current status, claimed
before any money moves, so concurrent admins cannot approve, refund or pay
out the same budget twice. Approval then debits the fund pool; when that
fails the caller rolls back and the claim goes with it.

All functions flush; the endpoint commits or rolls back.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, desc, or_
from sqlalchemy.orm import selectinload

from backend.finpanel.core.config import settings
from backend.finpanel.core.dependencies import Identity
from backend.finpanel.core.exceptions import (
    ResourceNotFoundError,
    InsufficientPermissionsError,
    ValidationError,
    InvalidStateError,
    ConflictError,
)
from backend.finpanel.core.guards import ownership_guard
from backend.finpanel.models.budget import Budget, BudgetItem
from backend.finpanel.models.enums import (
    BudgetStatus,
    BudgetPriority,
    DisbursementMethod,
    TransactionType,
    TransactionStatus,
    UserRole,
    EDITABLE_BUDGET_STATUSES,
    DISBURSABLE_BUDGET_STATUSES,
    REVOCABLE_BUDGET_STATUSES,
)
from backend.finpanel.models.notification import NotificationType
from backend.finpanel.models.transaction import Transaction
from backend.finpanel.models.timestamps import utcnow
from backend.finpanel.schemas.budget import BudgetCreate, BudgetItemInput
from backend.finpanel.services import fund_pool
from backend.finpanel.services import transactions as transaction_service
from backend.finpanel.services.audit import record, AuditAction, AuditEntity
from backend.finpanel.services.notification_service import NotificationService

logger = logging.getLogger("finpanel.budgets")

LOGIN_PATH = "/auth/login"
BUDGETS_PATH = "/dashboard/user/budgets"


async def _load_budget(db: AsyncSession, budget_id: int, with_items: bool = False) -> Budget:
    options = [selectinload(Budget.user)]
    if with_items:
        options.append(selectinload(Budget.items))

    result = await db.execute(
        select(Budget)
        .options(*options)
        .where(Budget.id == budget_id)
        .execution_options(populate_existing=True)
    )
    budget = result.scalar_one_or_none()
    if budget is None:
        raise ResourceNotFoundError("Budget", budget_id)
    return budget


async def _check_pending_limit(db: AsyncSession, user_id: int) -> None:
    pending_count = (await db.execute(
        select(func.count(Budget.id)).where(
            Budget.created_by == user_id,
            Budget.status == BudgetStatus.PENDING
        )
    )).scalar_one()

    if pending_count >= settings.max_pending_budgets:
        raise ValidationError(
            f"You have reached the limit of {settings.max_pending_budgets} pending budgets",
            details={"pending": pending_count}
        )


async def create_budget(db: AsyncSession, identity: Identity, payload: BudgetCreate) -> Budget:
    """
    Submit a new budget as PENDING, with optional line items.

    Raises:
        InsufficientPermissionsError: the account has not been approved yet
        ValidationError: the creator already has the maximum number of pending budgets
    """
    if not identity.is_approved:
        raise InsufficientPermissionsError("Account is pending approval")

    await _check_pending_limit(db, identity.id)

    budget = Budget(
        title=payload.title,
        description=payload.description,
        amount=payload.amount,
        allocated_amount=0,
        priority=payload.priority,
        disbursement_type=payload.disbursement_type,
        status=BudgetStatus.PENDING,
        created_by=identity.id,
    )
    db.add(budget)
    await db.flush()

    for item in payload.items:
        db.add(BudgetItem(
            budget_id=budget.id,
            name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            created_by=identity.id,
        ))

    await record(
        db,
        action=AuditAction.BUDGET_CREATED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=identity.id,
        changes={
            "title": budget.title,
            "amount": budget.amount,
            "priority": budget.priority.value,
            "status": budget.status.value,
        },
    )

    return await _load_budget(db, budget.id)


async def list_budgets(
    db: AsyncSession,
    identity: Identity,
    status: Optional[BudgetStatus] = None,
    priority: Optional[BudgetPriority] = None,
    search: Optional[str] = None,
    user_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10
) -> Tuple[List[Budget], int, Optional[Dict[str, int]]]:
    """
    Page through budgets, newest first.

    Returns:
        (budgets, total matching, statistics for admins or None)
    """
    filters = []

    owner_id = ownership_guard.filter_by_ownership(identity)
    if owner_id is not None:
        filters.append(Budget.created_by == owner_id)
    elif user_id:
        filters.append(Budget.created_by == user_id)

    if status:
        filters.append(Budget.status == status)
    if priority:
        filters.append(Budget.priority == priority)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(Budget.title.ilike(pattern), Budget.description.ilike(pattern)))

    result = await db.execute(
        select(Budget)
        .options(selectinload(Budget.user))
        .where(*filters)
        .order_by(desc(Budget.created_at), desc(Budget.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    budgets = list(result.scalars().all())
    total = (await db.execute(select(func.count(Budget.id)).where(*filters))).scalar_one()

    statistics = None
    if identity.is_admin:
        sums = (await db.execute(
            select(
                func.coalesce(func.sum(Budget.amount), 0),
                func.coalesce(func.sum(Budget.allocated_amount), 0)
            )
        )).one()
        pending = (await db.execute(
            select(func.count(Budget.id)).where(Budget.status == BudgetStatus.PENDING)
        )).scalar_one()
        statistics = {
            "total_amount": int(sums[0]),
            "allocated_amount": int(sums[1]),
            "pending_count": pending,
        }

    return budgets, total, statistics


async def _claim(
    db: AsyncSession,
    budget_id: int,
    from_statuses,
    *conditions,
    **values
) -> bool:
    """
    Conditionally move a budget to a new state.

    The UPDATE only matches while the budget is still in one of ``from_statuses``
    (and satisfies ``conditions``), so of two concurrent requests exactly one wins.

    Returns:
        True if this call made the transition
    """
    stmt = (
        update(Budget)
        .where(Budget.id == budget_id, Budget.status.in_(list(from_statuses)), *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def _current_status(db: AsyncSession, budget_id: int) -> str:
    status = (await db.execute(select(Budget.status).where(Budget.id == budget_id))).scalar_one()
    return status.value


async def approve_budget(
    db: AsyncSession,
    admin: Identity,
    budget_id: int,
    allocated_amount: Optional[int] = None,
    notes: Optional[str] = None
) -> Tuple[Budget, int]:
    """
    Approve a PENDING budget and pay it out of the fund pool.

    The status change is claimed first and the pool debited second; if the
    debit fails the caller rolls back and the budget stays PENDING.

    Returns:
        (approved budget, new pool balance)

    Raises:
        ResourceNotFoundError: no such budget
        InvalidStateError: the budget is not PENDING
        InsufficientFundsError: the pool cannot cover the allocation
    """
    budget = await _load_budget(db, budget_id)
    allocation = allocated_amount or budget.amount

    claimed = await _claim(
        db, budget.id, {BudgetStatus.PENDING},
        status=BudgetStatus.APPROVED,
        allocated_amount=allocation,
        approved_by_id=admin.id,
        approved_at=utcnow(),
    )
    if not claimed:
        raise InvalidStateError(
            "Budget is not in pending status",
            details={"status": await _current_status(db, budget.id)}
        )

    new_balance = await fund_pool.debit(
        db, admin, allocation, budget_id=budget.id, reason="budget approval"
    )

    await record(
        db,
        action=AuditAction.BUDGET_APPROVED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=admin.id,
        changes={
            "from": BudgetStatus.PENDING.value,
            "to": BudgetStatus.APPROVED.value,
            "allocatedAmount": allocation,
            "approvedBy": admin.id,
            "notes": notes,
        },
    )

    await NotificationService.notify(
        db,
        user_id=budget.created_by,
        title="Budget Approved",
        message=f'Your budget "{budget.title}" has been approved.',
        type=NotificationType.BUDGET_APPROVED,
        data={"budgetId": budget.id, "allocatedAmount": allocation, "approvedBy": admin.id},
    )

    logger.info("Budget %s approved by %s for %s", budget.id, admin.id, allocation)
    return await _load_budget(db, budget.id), new_balance


async def reject_budget(
    db: AsyncSession,
    admin: Identity,
    budget_id: int,
    reason: Optional[str] = None
) -> Budget:
    """
    Reject a PENDING budget.

    Raises:
        ResourceNotFoundError: no such budget
        InvalidStateError: the budget is not PENDING
    """
    budget = await _load_budget(db, budget_id)

    if not await _claim(db, budget.id, {BudgetStatus.PENDING}, status=BudgetStatus.REJECTED):
        raise InvalidStateError(
            "Budget is not in pending status",
            details={"status": await _current_status(db, budget.id)}
        )

    await record(
        db,
        action=AuditAction.BUDGET_REJECTED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=admin.id,
        changes={
            "from": BudgetStatus.PENDING.value,
            "to": BudgetStatus.REJECTED.value,
            "reason": reason,
            "rejectedBy": admin.id,
        },
    )

    message = f'Your budget "{budget.title}" has been rejected.'
    if reason:
        message += f" Reason: {reason}"

    await NotificationService.notify(
        db,
        user_id=budget.created_by,
        title="Budget Rejected",
        message=message,
        type=NotificationType.BUDGET_REJECTED,
        data={"budgetId": budget.id, "reason": reason, "rejectedBy": admin.id},
    )

    return await _load_budget(db, budget.id)


async def request_revision(
    db: AsyncSession,
    admin: Identity,
    budget_id: int,
    reason: str
) -> Budget:
    """
    Send a PENDING budget back to its creator with the admin's reason.

    Raises:
        ResourceNotFoundError: no such budget
        InvalidStateError: the budget is not PENDING
    """
    budget = await _load_budget(db, budget_id)

    claimed = await _claim(
        db, budget.id, {BudgetStatus.PENDING},
        status=BudgetStatus.REVISION_REQUESTED,
        revision_notes=reason,
    )
    if not claimed:
        raise InvalidStateError(
            "Cannot request revision for budget in current status",
            details={"status": await _current_status(db, budget.id)}
        )

    await record(
        db,
        action=AuditAction.BUDGET_REVISION_REQUESTED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=admin.id,
        changes={
            "from": BudgetStatus.PENDING.value,
            "to": BudgetStatus.REVISION_REQUESTED.value,
            "reason": reason,
        },
    )

    await NotificationService.notify(
        db,
        user_id=budget.created_by,
        title="Revision Requested",
        message=f'Revision requested for your budget "{budget.title}". Reason: {reason}',
        type=NotificationType.BUDGET_REVISION_REQUESTED,
        data={"budgetId": budget.id, "reason": reason, "requestedBy": admin.name},
    )

    return await _load_budget(db, budget.id)


async def resubmit_budget(db: AsyncSession, identity: Identity, budget_id: int) -> Budget:
    """
    Put a budget the creator has revised back in the approval queue.

    Raises:
        InsufficientPermissionsError: the caller did not create the budget
        ValidationError: the creator is at the pending-budget limit
        InvalidStateError: no revision was requested
    """
    budget = await _load_budget(db, budget_id)
    if budget.created_by != identity.id:
        raise InsufficientPermissionsError("Only the creator can resubmit a budget")

    await _check_pending_limit(db, identity.id)

    claimed = await _claim(
        db, budget.id, {BudgetStatus.REVISION_REQUESTED}, status=BudgetStatus.PENDING
    )
    if not claimed:
        raise InvalidStateError(
            "Only budgets sent back for revision can be resubmitted",
            details={"status": await _current_status(db, budget.id)}
        )

    await record(
        db,
        action=AuditAction.BUDGET_RESUBMITTED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=identity.id,
        changes={
            "from": BudgetStatus.REVISION_REQUESTED.value,
            "to": BudgetStatus.PENDING.value,
        },
    )

    await NotificationService.notify_admins(
        db,
        title="Budget Resubmitted",
        message=f'{identity.name} resubmitted the budget "{budget.title}"',
        data={"budgetId": budget.id},
    )

    return await _load_budget(db, budget.id)


async def revoke_budget(
    db: AsyncSession,
    identity: Identity,
    budget_id: int,
    reason: Optional[str] = None
) -> Tuple[Budget, Optional[int]]:
    """
    Withdraw a budget.

    Creators may revoke a budget that has not been funded yet. Admins may also
    revoke an APPROVED budget with nothing paid out; its allocation goes back
    to the pool.

    Returns:
        (revoked budget, new pool balance when an allocation was refunded else None)

    Raises:
        InsufficientPermissionsError: neither creator nor admin
        InvalidStateError: the budget can no longer be revoked
    """
    budget = await _load_budget(db, budget_id)
    ownership_guard.enforce(budget.created_by, identity, "budget")

    previous_status = budget.status
    new_balance = None

    if not await _claim(db, budget.id, REVOCABLE_BUDGET_STATUSES, status=BudgetStatus.REVOKED):
        refundable = identity.is_admin and await _claim(
            db, budget.id, {BudgetStatus.APPROVED},
            Budget.disbursed_amount == 0,
            status=BudgetStatus.REVOKED,
        )
        if not refundable:
            raise InvalidStateError(
                "Budget can no longer be revoked",
                details={"status": await _current_status(db, budget.id)}
            )

        previous_status = BudgetStatus.APPROVED
        new_balance = await fund_pool.credit(
            db, identity, budget.allocated_amount,
            action=AuditAction.FUND_POOL_REFUND,
            budget_id=budget.id,
            reason="budget revoked",
        )

    await record(
        db,
        action=AuditAction.BUDGET_REVOKED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=identity.id,
        changes={
            "from": previous_status.value,
            "to": BudgetStatus.REVOKED.value,
            "reason": reason,
            "refunded": budget.allocated_amount if new_balance is not None else 0,
        },
    )

    if budget.created_by != identity.id:
        await NotificationService.notify(
            db,
            user_id=budget.created_by,
            title="Budget Revoked",
            message=f'Your budget "{budget.title}" has been revoked.',
            type=NotificationType.BUDGET_REVOKED,
            data={"budgetId": budget.id, "reason": reason},
        )

    return await _load_budget(db, budget.id), new_balance


async def disburse_budget(
    db: AsyncSession,
    admin: Identity,
    budget_id: int,
    amount: Optional[int] = None,
    method: DisbursementMethod = DisbursementMethod.BANK_TRANSFER,
    notes: Optional[str] = None
) -> Tuple[Budget, Transaction]:
    """
    Pay out (part of) an approved budget's allocation to its creator.

    Each payout is recorded as a COMPLETED DISBURSEMENT transaction. The
    budget becomes DISBURSED once the whole allocation is paid, otherwise
    PARTIALLY_DISBURSED. The pool is not touched; the allocation left it at
    approval.

    Args:
        amount: Amount to pay; defaults to everything still outstanding

    Returns:
        (updated budget, the new transaction with user and budget loaded)

    Raises:
        InvalidStateError: the budget is not approved (or already fully paid)
        ValidationError: amount is not positive or exceeds what is outstanding
        ConflictError: another payout for this budget landed first
    """
    budget = await _load_budget(db, budget_id)

    if budget.status not in DISBURSABLE_BUDGET_STATUSES:
        raise InvalidStateError(
            "Budget must be approved before disbursement",
            details={"status": budget.status.value}
        )

    remaining = budget.allocated_amount - budget.disbursed_amount
    if amount is None:
        amount = remaining

    if amount <= 0 or amount > remaining:
        raise ValidationError(
            f"Amount exceeds remaining allocated balance. Available: {remaining}",
            details={"amount": amount, "remaining": remaining}
        )

    disbursed = budget.disbursed_amount + amount
    if disbursed >= budget.allocated_amount:
        new_status = BudgetStatus.DISBURSED
    else:
        new_status = BudgetStatus.PARTIALLY_DISBURSED

    # Compare-and-swap on the paid-out total so two payouts cannot both spend the same remainder
    claimed = await _claim(
        db, budget.id, DISBURSABLE_BUDGET_STATUSES,
        Budget.disbursed_amount == budget.disbursed_amount,
        status=new_status,
        disbursed_amount=disbursed,
    )
    if not claimed:
        raise ConflictError("Budget was paid out concurrently, please retry")

    transaction = Transaction(
        type=TransactionType.DISBURSEMENT,
        amount=amount,
        status=TransactionStatus.COMPLETED,
        reference=f"DISB-{uuid.uuid4().hex[:12].upper()}",
        payment_method=method.value,
        notes=notes,
        user_id=budget.created_by,
        budget_id=budget.id,
    )
    db.add(transaction)
    await db.flush()

    await record(
        db,
        action=AuditAction.BUDGET_DISBURSED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=admin.id,
        changes={
            "from": budget.status.value,
            "to": new_status.value,
            "amount": amount,
            "method": method.value,
            "notes": notes,
            "disbursedAmount": disbursed,
            "allocatedAmount": budget.allocated_amount,
            "transactionId": transaction.id,
        },
    )

    fully = new_status == BudgetStatus.DISBURSED
    await NotificationService.notify(
        db,
        user_id=budget.created_by,
        title=f"Budget Disbursement - {'Full' if fully else 'Partial'}",
        message=(
            f"KES {amount:,} has been {'fully' if fully else 'partially'} "
            f'disbursed for budget "{budget.title}"'
        ),
        type=NotificationType.BUDGET_DISBURSED,
        data={
            "budgetId": budget.id,
            "transactionId": transaction.id,
            "amount": amount,
            "method": method.value,
        },
    )

    logger.info("Budget %s disbursed %s (%s) by %s", budget.id, amount, new_status.value, admin.id)
    transaction = await transaction_service.get_by_id(db, transaction.id, admin)
    return await _load_budget(db, budget.id), transaction


async def get_items(db: AsyncSession, identity: Identity, budget_id: int) -> List[BudgetItem]:
    """Items of a budget, for its owner or an admin."""
    budget = await _load_budget(db, budget_id, with_items=True)
    ownership_guard.enforce(budget.created_by, identity, "budget")
    return list(budget.items)


async def update_items(
    db: AsyncSession,
    identity: Identity,
    budget_id: int,
    items: List[BudgetItemInput],
    deleted_ids: List[int]
) -> int:
    """
    Apply item edits and recompute the budget amount.

    Rows with an ``id`` are updated in place, rows without one are created,
    and ``deleted_ids`` are removed. Ids that belong to another budget are ignored.

    Returns:
        The recomputed budget amount

    Raises:
        InvalidStateError: the budget is past DRAFT/PENDING
    """
    budget = await _load_budget(db, budget_id, with_items=True)
    ownership_guard.enforce(budget.created_by, identity, "budget")

    if budget.status not in EDITABLE_BUDGET_STATUSES:
        raise InvalidStateError(
            "Budget items can no longer be edited",
            details={"status": budget.status.value}
        )

    previous_amount = budget.amount

    if deleted_ids:
        await db.execute(
            delete(BudgetItem)
            .where(BudgetItem.id.in_(deleted_ids), BudgetItem.budget_id == budget.id)
            .execution_options(synchronize_session=False)
        )

    deleted = set(deleted_ids)
    existing = {item.id: item for item in budget.items if item.id not in deleted}
    for entry in items:
        if entry.id is not None:
            item = existing.get(entry.id)
            if item is None:
                continue
            item.name = entry.name
            item.unit_price = entry.unit_price
            item.quantity = entry.quantity
        else:
            db.add(BudgetItem(
                budget_id=budget.id,
                name=entry.name,
                unit_price=entry.unit_price,
                quantity=entry.quantity,
                created_by=identity.id,
            ))
    await db.flush()

    total = (await db.execute(
        select(func.coalesce(func.sum(BudgetItem.unit_price * BudgetItem.quantity), 0))
        .where(BudgetItem.budget_id == budget.id)
    )).scalar_one()
    total = int(total)

    budget.amount = total
    await db.flush()

    await record(
        db,
        action=AuditAction.BUDGET_ITEMS_UPDATED,
        entity=AuditEntity.BUDGET,
        entity_id=budget.id,
        user_id=identity.id,
        changes={
            "from": previous_amount,
            "to": total,
            "deleted": list(deleted_ids),
            "upserted": len(items),
        },
    )

    return total


@dataclass(frozen=True)
class EditDecision:
    """Outcome of the budget edit gate: either a redirect target or the editable budget."""
    redirect_to: Optional[str] = None
    budget: Optional[Budget] = None

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


async def check_budget_edit(
    db: AsyncSession,
    identity: Optional[Identity],
    budget_id: int
) -> EditDecision:
    """
    Decide whether the caller may open the item editor for a budget. Read-only.

    Raises:
        ResourceNotFoundError: the budget does not exist (after the login check)
    """
    if identity is None or identity.role != UserRole.USER:
        return EditDecision(redirect_to=LOGIN_PATH)

    budget = await _load_budget(db, budget_id, with_items=True)

    if budget.created_by != identity.id:
        return EditDecision(redirect_to=BUDGETS_PATH)

    if budget.status not in EDITABLE_BUDGET_STATUSES:
        return EditDecision(redirect_to=f"{BUDGETS_PATH}/{budget.id}")

    return EditDecision(budget=budget)
