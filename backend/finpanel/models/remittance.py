"""
Remittance database model.

A user's report of funds sent to the pool; verified amounts are credited to it.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.enums import RemittanceStatus
from backend.finpanel.models.timestamps import utcnow


class Remittance(Base):
    __tablename__ = "remittances"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    status = Column(Enum(RemittanceStatus), default=RemittanceStatus.PENDING, nullable=False, index=True)
    note = Column(Text, default="", nullable=False)
    proof = Column(String(500), default="", nullable=False)

    # Verification Flow
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    user = relationship("User", foreign_keys=[user_id], lazy="raise")

    def __repr__(self):
        return f"<Remittance(id={self.id}, status='{self.status.value}', amount={self.amount})>"
