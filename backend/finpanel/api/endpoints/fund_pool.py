"""
Fund Pool API Endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.schemas.fund_pool import (
    FundPoolAdjustRequest, FundPoolBalanceResponse, FundPoolAdjustResponse
)
from backend.finpanel.services import fund_pool

router = APIRouter(prefix="/fund-pool", tags=["Fund Pool"])


@router.get("", response_model=FundPoolBalanceResponse)
async def read_fund_pool(
    db: AsyncSession = Depends(get_db)
):
    """Current pool balance with its last updater. Open to any caller."""
    return FundPoolBalanceResponse(**await fund_pool.get_balance(db))


@router.post("", response_model=FundPoolAdjustResponse)
async def adjust_fund_pool(
    payload: FundPoolAdjustRequest,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a signed delta to the pool (admin-only).

    Non-admins get 401 and the balance is untouched; an overdraw gets 400.
    """
    balance = await fund_pool.apply_delta(db, identity, payload.delta, payload.note)
    await db.commit()
    return FundPoolAdjustResponse(balance=balance)
