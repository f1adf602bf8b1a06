"""
Remittance Schemas.
"""

from datetime import datetime
from typing import Optional
from pydantic import Field, PositiveInt

from backend.finpanel.models.enums import RemittanceStatus
from backend.finpanel.schemas.common import CamelModel, UserSummary


class RemittanceCreate(CamelModel):
    amount: PositiveInt
    note: str = Field(default="", max_length=1000)
    proof: str = Field(default="", max_length=500)


class RemittanceResponse(CamelModel):
    id: int
    user_id: int
    amount: int
    status: RemittanceStatus
    note: str
    proof: str
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    created_at: datetime
    user: Optional[UserSummary] = None


class RemittanceCreateResponse(CamelModel):
    success: bool = True
    remittance: RemittanceResponse


class RemittanceVerifyRequest(CamelModel):
    approve: bool
    note: Optional[str] = None


class RemittanceVerifyResponse(CamelModel):
    success: bool = True
    remittance: RemittanceResponse
    new_balance: Optional[int] = None
