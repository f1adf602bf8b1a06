"""
API Router.

Aggregates all API endpoints; mounted under ``settings.api_prefix``.
"""

from fastapi import APIRouter
from backend.finpanel.api.endpoints import (
    auth, admin, audit, fund_pool, notifications,
    transactions, budgets, remittances
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Administration
router.include_router(admin.router)
router.include_router(audit.router)

# Money
router.include_router(fund_pool.router)
router.include_router(budgets.router)
router.include_router(remittances.router)
router.include_router(transactions.router)

router.include_router(notifications.router)
