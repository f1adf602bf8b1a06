"""
User database model.

This module defines the User SQLAlchemy model for authentication.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from backend.finpanel.db.session import Base
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.timestamps import utcnow


class User(Base):
    """
    User model for authentication and user management.

    ``role`` is the only source of truth for authorization; see
    ``backend.finpanel.core.dependencies.resolve_role``.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # New accounts wait for an admin before they can submit anything
    is_approved = Column(Boolean, default=False, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)

    profile_image = Column(String(500), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
