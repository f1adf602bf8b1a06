"""
Budget API Endpoints.

Users submit, edit, resubmit and revoke their budgets; admins approve,
reject, send back for revision and pay them out.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.core.guards import require_admin, require_user_role
from backend.finpanel.models.enums import BudgetStatus, BudgetPriority
from backend.finpanel.schemas.common import Pagination
from backend.finpanel.schemas.transaction import TransactionResponse
from backend.finpanel.schemas.budget import (
    BudgetCreate, BudgetResponse, BudgetListResponse, BudgetStatistics,
    BudgetActionResponse, BudgetApproveRequest, BudgetRejectRequest, BudgetRevisionRequest,
    BudgetRevokeRequest, BudgetRevokeResponse, BudgetDisburseRequest, BudgetDisburseResponse,
    BudgetItemResponse, BudgetItemsResponse, BudgetItemsUpdateRequest, BudgetItemsUpdateResponse
)
from backend.finpanel.services import budgets as budget_service

router = APIRouter(prefix="/budgets", tags=["Budgets"])


@router.post("", response_model=BudgetActionResponse, status_code=status.HTTP_201_CREATED)
async def create_budget(
    payload: BudgetCreate,
    identity: Identity = Depends(require_user_role),
    db: AsyncSession = Depends(get_db)
):
    """Submit a budget for approval."""
    budget = await budget_service.create_budget(db, identity, payload)
    await db.commit()
    return BudgetActionResponse(
        message="Budget created successfully",
        budget=BudgetResponse.model_validate(budget)
    )


@router.get("", response_model=BudgetListResponse)
async def list_budgets(
    status: Optional[BudgetStatus] = Query(None),
    priority: Optional[BudgetPriority] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    user_id: Optional[int] = Query(None, alias="userId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List budgets; admins also get totals across all budgets."""
    budgets, total, statistics = await budget_service.list_budgets(
        db,
        identity,
        status=status,
        priority=priority,
        search=search,
        user_id=user_id,
        page=page,
        limit=limit
    )
    return BudgetListResponse(
        data=[BudgetResponse.model_validate(b) for b in budgets],
        pagination=Pagination.build(page, limit, total),
        statistics=BudgetStatistics(**statistics) if statistics else None
    )


@router.post("/{budget_id}/approve", response_model=BudgetActionResponse)
async def approve_budget(
    budget_id: int,
    payload: BudgetApproveRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending budget; the allocation is taken from the fund pool."""
    budget, _ = await budget_service.approve_budget(
        db, admin, budget_id, payload.allocated_amount, payload.notes
    )
    await db.commit()
    return BudgetActionResponse(
        message="Budget approved successfully",
        budget=BudgetResponse.model_validate(budget)
    )


@router.post("/{budget_id}/reject", response_model=BudgetActionResponse)
async def reject_budget(
    budget_id: int,
    payload: BudgetRejectRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Reject a pending budget."""
    budget = await budget_service.reject_budget(db, admin, budget_id, payload.reason)
    await db.commit()
    return BudgetActionResponse(
        message="Budget rejected successfully",
        budget=BudgetResponse.model_validate(budget)
    )


@router.post("/{budget_id}/request-revision", response_model=BudgetActionResponse)
async def request_budget_revision(
    budget_id: int,
    payload: BudgetRevisionRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Send a pending budget back to its creator."""
    budget = await budget_service.request_revision(db, admin, budget_id, payload.reason)
    await db.commit()
    return BudgetActionResponse(
        message="Revision requested successfully",
        budget=BudgetResponse.model_validate(budget)
    )


@router.post("/{budget_id}/resubmit", response_model=BudgetActionResponse)
async def resubmit_budget(
    budget_id: int,
    identity: Identity = Depends(require_user_role),
    db: AsyncSession = Depends(get_db)
):
    """Return a revised budget to the approval queue."""
    budget = await budget_service.resubmit_budget(db, identity, budget_id)
    await db.commit()
    return BudgetActionResponse(
        message="Budget resubmitted successfully",
        budget=BudgetResponse.model_validate(budget)
    )


@router.post("/{budget_id}/revoke", response_model=BudgetRevokeResponse)
async def revoke_budget(
    budget_id: int,
    payload: BudgetRevokeRequest,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a budget; an admin revoking an unpaid approval refunds the pool."""
    budget, new_balance = await budget_service.revoke_budget(db, identity, budget_id, payload.reason)
    await db.commit()
    return BudgetRevokeResponse(
        message="Budget revoked",
        budget=BudgetResponse.model_validate(budget),
        new_balance=new_balance
    )


@router.post("/{budget_id}/disburse", response_model=BudgetDisburseResponse)
async def disburse_budget(
    budget_id: int,
    payload: BudgetDisburseRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Pay out part or all of an approved budget's allocation."""
    budget, transaction = await budget_service.disburse_budget(
        db, admin, budget_id, payload.amount, payload.disbursement_method, payload.notes
    )
    await db.commit()
    fully = budget.status == BudgetStatus.DISBURSED
    return BudgetDisburseResponse(
        message=f"Budget {'fully' if fully else 'partially'} disbursed successfully",
        budget=BudgetResponse.model_validate(budget),
        transaction=TransactionResponse.model_validate(transaction)
    )


@router.get("/{budget_id}/items", response_model=BudgetItemsResponse)
async def get_budget_items(
    budget_id: int,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    items = await budget_service.get_items(db, identity, budget_id)
    return BudgetItemsResponse(items=[BudgetItemResponse.model_validate(i) for i in items])


@router.post("/{budget_id}/items", response_model=BudgetItemsUpdateResponse)
async def update_budget_items(
    budget_id: int,
    payload: BudgetItemsUpdateRequest,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Upsert and delete items, then recompute the budget amount from them."""
    total = await budget_service.update_items(
        db, identity, budget_id, payload.items, payload.deleted_ids
    )
    await db.commit()
    return BudgetItemsUpdateResponse(total=total)
