"""
Remittance API Endpoints.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.core.guards import require_admin, require_user_role
from backend.finpanel.models.enums import RemittanceStatus
from backend.finpanel.schemas.remittance import (
    RemittanceCreate, RemittanceResponse, RemittanceCreateResponse,
    RemittanceVerifyRequest, RemittanceVerifyResponse
)
from backend.finpanel.services import remittances as remittance_service

router = APIRouter(prefix="/remittances", tags=["Remittances"])


@router.get("", response_model=List[RemittanceResponse])
async def list_remittances(
    status: Optional[RemittanceStatus] = Query(None),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    rows = await remittance_service.list_remittances(db, identity, status)
    return [RemittanceResponse.model_validate(r) for r in rows]


@router.post("", response_model=RemittanceCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_remittance(
    payload: RemittanceCreate,
    identity: Identity = Depends(require_user_role),
    db: AsyncSession = Depends(get_db)
):
    """Report a remittance; every admin is notified."""
    remittance = await remittance_service.create_remittance(
        db, identity, payload.amount, payload.note, payload.proof
    )
    await db.commit()
    return RemittanceCreateResponse(remittance=RemittanceResponse.model_validate(remittance))


@router.post("/{remittance_id}/verify", response_model=RemittanceVerifyResponse)
async def verify_remittance(
    remittance_id: int,
    payload: RemittanceVerifyRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Verify (credit the pool) or reject a pending remittance."""
    remittance, new_balance = await remittance_service.verify_remittance(
        db, admin, remittance_id, payload.approve, payload.note
    )
    await db.commit()
    return RemittanceVerifyResponse(
        remittance=RemittanceResponse.model_validate(remittance),
        new_balance=new_balance
    )
