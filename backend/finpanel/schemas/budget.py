"""
Budget Schemas.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import Field, PositiveInt

from backend.finpanel.models.enums import BudgetStatus, BudgetPriority, DisbursementType, DisbursementMethod
from backend.finpanel.schemas.common import CamelModel, UserSummary, Pagination
from backend.finpanel.schemas.transaction import TransactionResponse


class BudgetItemInput(CamelModel):
    """Item row; ``id`` present means update, absent means create."""
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    unit_price: int = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)


class BudgetCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = None
    amount: PositiveInt
    priority: BudgetPriority = BudgetPriority.NORMAL
    disbursement_type: DisbursementType = DisbursementType.FULL
    items: List[BudgetItemInput] = Field(default_factory=list)


class BudgetItemResponse(CamelModel):
    id: int
    name: str
    unit_price: int
    quantity: int
    created_at: datetime


class BudgetResponse(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    amount: int
    allocated_amount: int
    disbursed_amount: int = 0
    status: BudgetStatus
    priority: BudgetPriority
    disbursement_type: DisbursementType
    created_by: int
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    revision_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


class BudgetStatistics(CamelModel):
    total_amount: int
    allocated_amount: int
    pending_count: int


class BudgetListResponse(CamelModel):
    success: bool = True
    data: List[BudgetResponse]
    pagination: Pagination
    statistics: Optional[BudgetStatistics] = None


class BudgetActionResponse(CamelModel):
    success: bool = True
    message: str
    budget: BudgetResponse


class BudgetApproveRequest(CamelModel):
    allocated_amount: Optional[PositiveInt] = None
    notes: Optional[str] = None


class BudgetRejectRequest(CamelModel):
    reason: Optional[str] = None


class BudgetRevisionRequest(CamelModel):
    reason: str = Field(..., min_length=10, description="What the creator should change")


class BudgetRevokeRequest(CamelModel):
    reason: Optional[str] = None


class BudgetRevokeResponse(BudgetActionResponse):
    new_balance: Optional[int] = None


class BudgetDisburseRequest(CamelModel):
    """Omit ``amount`` to pay out everything still outstanding."""
    amount: Optional[PositiveInt] = None
    disbursement_method: DisbursementMethod = DisbursementMethod.BANK_TRANSFER
    notes: Optional[str] = Field(default=None, max_length=500)


class BudgetDisburseResponse(BudgetActionResponse):
    transaction: TransactionResponse


class BudgetItemsResponse(CamelModel):
    items: List[BudgetItemResponse]


class BudgetItemsUpdateRequest(CamelModel):
    items: List[BudgetItemInput] = Field(default_factory=list)
    deleted_ids: List[int] = Field(default_factory=list)


class BudgetItemsUpdateResponse(CamelModel):
    success: bool = True
    total: int


class BudgetEditContext(CamelModel):
    """What the item editor needs once the edit gate lets the caller through."""
    budget: BudgetResponse
    items: List[BudgetItemResponse]
