"""
Transaction accessor.

Read-only: transactions are visible to their owner and to admins.
"""

from datetime import datetime
from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from sqlalchemy.orm import selectinload

from backend.finpanel.core.dependencies import Identity
from backend.finpanel.core.exceptions import ResourceNotFoundError
from backend.finpanel.core.guards import ownership_guard
from backend.finpanel.models.enums import TransactionType, TransactionStatus
from backend.finpanel.models.transaction import Transaction


async def get_by_id(db: AsyncSession, transaction_id: int, identity: Identity) -> Transaction:
    """
    Fetch one transaction with its user and budget loaded.

    Raises:
        ResourceNotFoundError: 404 if it does not exist
        InsufficientPermissionsError: 403 if the caller is neither owner nor admin
    """
    result = await db.execute(
        select(Transaction)
        .options(selectinload(Transaction.user), selectinload(Transaction.budget))
        .where(Transaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    transaction = result.scalar_one_or_none()

    if transaction is None:
        raise ResourceNotFoundError("Transaction", transaction_id)

    ownership_guard.enforce(transaction.user_id, identity, "transaction")
    return transaction


async def list_transactions(
    db: AsyncSession,
    identity: Identity,
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    user_id: Optional[int] = None,
    budget_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20
) -> Tuple[List[Transaction], int]:
    """
    Page through transactions, newest first.

    Non-admins only ever see their own rows; ``user_id`` is honoured for admins only.

    Returns:
        (page of transactions, total matching)
    """
    filters = []

    owner_id = ownership_guard.filter_by_ownership(identity)
    if owner_id is not None:
        filters.append(Transaction.user_id == owner_id)
    elif user_id:
        filters.append(Transaction.user_id == user_id)

    if type:
        filters.append(Transaction.type == type)
    if status:
        filters.append(Transaction.status == status)
    if budget_id:
        filters.append(Transaction.budget_id == budget_id)
    if start_date:
        filters.append(Transaction.created_at >= start_date)
    if end_date:
        filters.append(Transaction.created_at <= end_date)

    result = await db.execute(
        select(Transaction)
        .options(selectinload(Transaction.user), selectinload(Transaction.budget))
        .where(*filters)
        .order_by(desc(Transaction.created_at), desc(Transaction.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    transactions = list(result.scalars().all())

    total = (await db.execute(select(func.count(Transaction.id)).where(*filters))).scalar_one()
    return transactions, total
