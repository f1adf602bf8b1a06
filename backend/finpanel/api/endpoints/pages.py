"""
Page-level gates.

These routes sit outside the API prefix and decide where a browser should
go; they answer with a redirect or with the data the page needs, never markup.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backend.finpanel.db.session import get_db
from backend.finpanel.core.dependencies import Identity, get_current_identity
from backend.finpanel.schemas.budget import BudgetEditContext, BudgetResponse, BudgetItemResponse
from backend.finpanel.services.budgets import check_budget_edit

router = APIRouter(prefix="/dashboard", tags=["Pages"])


@router.get("/user/budgets/{budget_id}/edit", response_model=BudgetEditContext)
async def budget_edit_page(
    budget_id: int,
    identity: Optional[Identity] = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Gate for the budget item editor.

    303 to login, to the budget list or to the budget detail page when the
    caller may not edit; 404 when the budget does not exist.
    """
    decision = await check_budget_edit(db, identity, budget_id)

    if not decision.allowed:
        return RedirectResponse(decision.redirect_to, status_code=status.HTTP_303_SEE_OTHER)

    budget = decision.budget
    return BudgetEditContext(
        budget=BudgetResponse.model_validate(budget),
        items=[BudgetItemResponse.model_validate(i) for i in budget.items]
    )
