"""
Budget and BudgetItem database models.

A budget is a user's spending request. Its amount is the sum of its items
whenever the items are edited.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.enums import BudgetStatus, BudgetPriority, DisbursementType
from backend.finpanel.models.timestamps import utcnow


class Budget(Base):
    """
    Budget model.

    Workflow: PENDING -> APPROVED | REJECTED | REVISION_REQUESTED,
    REVISION_REQUESTED -> PENDING (resubmitted),
    APPROVED -> PARTIALLY_DISBURSED -> DISBURSED, and any unpaid state -> REVOKED.
    Only the creator may edit items, and only while DRAFT or PENDING.
    """
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    amount = Column(Integer, nullable=False)
    allocated_amount = Column(Integer, default=0, nullable=False)
    disbursed_amount = Column(Integer, default=0, server_default="0", nullable=False)

    status = Column(Enum(BudgetStatus), default=BudgetStatus.PENDING, nullable=False, index=True)
    priority = Column(Enum(BudgetPriority), default=BudgetPriority.NORMAL, nullable=False)
    disbursement_type = Column(Enum(DisbursementType), default=DisbursementType.FULL, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Approval Flow
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    revision_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    user = relationship("User", foreign_keys=[created_by], lazy="raise")
    items = relationship(
        "BudgetItem",
        back_populates="budget",
        order_by="BudgetItem.id",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    def __repr__(self):
        return f"<Budget(id={self.id}, status='{self.status.value}', amount={self.amount})>"


class BudgetItem(Base):
    __tablename__ = "budget_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    unit_price = Column(Integer, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    budget = relationship("Budget", back_populates="items", lazy="raise")

    @property
    def total(self) -> int:
        return self.unit_price * self.quantity

    def __repr__(self):
        return f"<BudgetItem(id={self.id}, name='{self.name}', total={self.total})>"
