"""
Transaction Schemas.
"""

from datetime import datetime
from typing import Optional, List

from backend.finpanel.models.enums import TransactionType, TransactionStatus
from backend.finpanel.schemas.common import CamelModel, UserProfileSummary, Pagination


class BudgetSummary(CamelModel):
    id: int
    title: str
    amount: int
    allocated_amount: int


class TransactionResponse(CamelModel):
    id: int
    type: TransactionType
    amount: int
    reference: Optional[str] = None
    status: TransactionStatus
    mpesa_code: Optional[str] = None
    phone_number: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    user_id: int
    budget_id: Optional[int] = None
    created_at: datetime
    user: Optional[UserProfileSummary] = None
    budget: Optional[BudgetSummary] = None


class TransactionEnvelope(CamelModel):
    success: bool = True
    data: TransactionResponse


class TransactionListResponse(CamelModel):
    success: bool = True
    data: List[TransactionResponse]
    pagination: Pagination
