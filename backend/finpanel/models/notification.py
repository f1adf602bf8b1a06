"""
Notification Database Model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.timestamps import utcnow


class NotificationType:
    """Notification type constants (stored as plain strings)."""
    INFO = "info"
    BUDGET_APPROVED = "budget_approved"
    BUDGET_REJECTED = "budget_rejected"
    USER_APPROVED = "user_approved"
    REMITTANCE_CREATED = "remittance_created"
    REMITTANCE_VERIFIED = "remittance_verified"
    REMITTANCE_REJECTED = "remittance_rejected"
    BUDGET_REVISION_REQUESTED = "budget_revision_requested"
    BUDGET_DISBURSED = "budget_disbursed"
    BUDGET_REVOKED = "budget_revoked"
    ROLE_CHANGED = "role_changed"


class Notification(Base):
    """
    In-App Notification.
    Stores messages for users.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Content
    type = Column(String(50), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)

    # State
    read = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, title='{self.title}')>"
