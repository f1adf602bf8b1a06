"""
Shared enumerations for database models.

Defines the role types and the lifecycle statuses used across the finance panel.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Approves budgets and remittances, adjusts the fund pool
        USER: Submits budgets and remittances (default role)
    """
    ADMIN = "ADMIN"
    USER = "USER"


class BudgetStatus(str, enum.Enum):
    """Budget lifecycle status."""
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    PARTIALLY_DISBURSED = "PARTIALLY_DISBURSED"
    DISBURSED = "DISBURSED"
    REVOKED = "REVOKED"


# Statuses in which the creator may still change a budget's items
EDITABLE_BUDGET_STATUSES = frozenset({BudgetStatus.DRAFT, BudgetStatus.PENDING})

# Statuses a budget can be paid out from
DISBURSABLE_BUDGET_STATUSES = frozenset({BudgetStatus.APPROVED, BudgetStatus.PARTIALLY_DISBURSED})

# Statuses the creator may withdraw a budget from; nothing has left the pool yet
REVOCABLE_BUDGET_STATUSES = frozenset({
    BudgetStatus.DRAFT, BudgetStatus.PENDING, BudgetStatus.REVISION_REQUESTED
})


class BudgetPriority(str, enum.Enum):
    EMERGENCY = "EMERGENCY"
    URGENT = "URGENT"
    NORMAL = "NORMAL"
    LONG_TERM = "LONG_TERM"


class DisbursementType(str, enum.Enum):
    FULL = "FULL"
    BATCHES = "BATCHES"


class DisbursementMethod(str, enum.Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    OTHER = "OTHER"


class RemittanceStatus(str, enum.Enum):
    """Remittance verification status."""
    PENDING = "PENDING"  # Submitted, waiting for admin verification
    VERIFIED = "VERIFIED"  # Verified, amount credited to the fund pool
    REJECTED = "REJECTED"


class TransactionType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DISBURSEMENT = "DISBURSEMENT"
    REMITTANCE = "REMITTANCE"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
