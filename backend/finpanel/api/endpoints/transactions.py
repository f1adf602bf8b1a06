"""
Transaction API Endpoints (read-only).
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.models.enums import TransactionType, TransactionStatus
from backend.finpanel.schemas.common import Pagination
from backend.finpanel.schemas.transaction import (
    TransactionResponse, TransactionEnvelope, TransactionListResponse
)
from backend.finpanel.services import transactions as transaction_service

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    type: Optional[TransactionType] = Query(None),
    status: Optional[TransactionStatus] = Query(None),
    user_id: Optional[int] = Query(None, alias="userId"),
    budget_id: Optional[int] = Query(None, alias="budgetId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List transactions; non-admins only see their own."""
    rows, total = await transaction_service.list_transactions(
        db,
        identity,
        type=type,
        status=status,
        user_id=user_id,
        budget_id=budget_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit
    )
    return TransactionListResponse(
        data=[TransactionResponse.model_validate(t) for t in rows],
        pagination=Pagination.build(page, limit, total)
    )


@router.get("/{transaction_id}", response_model=TransactionEnvelope)
async def get_transaction(
    transaction_id: int,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one transaction with its user and budget. Owner or admin only."""
    transaction = await transaction_service.get_by_id(db, transaction_id, identity)
    return TransactionEnvelope(data=TransactionResponse.model_validate(transaction))
