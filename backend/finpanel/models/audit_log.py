"""
Audit Log Database Model.

Append-only record of every mutating action for traceability.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.timestamps import utcnow


class AuditLog(Base):
    """
    Audit log model.

    Rows are never updated or deleted. ``changes`` holds the action-specific
    payload, e.g. ``{"from": 100, "delta": 50, "to": 150, "note": "grant"}``
    for a fund pool adjustment.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity it was performed on
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(100), nullable=True)

    # Who performed the action (None for system actions)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)

    changes = Column(JSON, nullable=True)

    # IP address for sign-in tracking
    ip_address = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    user = relationship("User", lazy="raise", viewonly=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity='{self.entity}', user={self.user_id})>"
