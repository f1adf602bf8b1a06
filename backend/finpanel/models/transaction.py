"""
Transaction database model.

Payment movements (deposits, disbursements, remittances) tied to a user and,
optionally, to the budget they settle.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.enums import TransactionType, TransactionStatus
from backend.finpanel.models.timestamps import utcnow


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    type = Column(Enum(TransactionType), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reference = Column(String(100), nullable=True)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    mpesa_code = Column(String(50), nullable=True)
    phone_number = Column(String(20), nullable=True)
    payment_method = Column(String(30), nullable=True)
    notes = Column(Text, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    user = relationship("User", lazy="raise")
    budget = relationship("Budget", lazy="raise")

    def __repr__(self):
        return f"<Transaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"
