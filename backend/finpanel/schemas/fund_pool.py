"""
Fund Pool Schemas.
"""

from datetime import datetime
from typing import Optional
from pydantic import Field, StrictInt

from backend.finpanel.schemas.common import CamelModel, UserSummary


class FundPoolAdjustRequest(CamelModel):
    """Body of POST /fund-pool. Strict: ``"50"``, ``50.5`` and ``true`` are rejected."""
    delta: StrictInt = Field(..., description="Signed whole-unit amount to add to the pool")
    note: Optional[str] = Field(default=None, max_length=500)


class FundPoolBalanceResponse(CamelModel):
    balance: int
    updated_at: Optional[datetime] = None
    updated_by: Optional[UserSummary] = None


class FundPoolAdjustResponse(CamelModel):
    success: bool = True
    balance: int
