"""
Admin API Schema Definitions.

Pydantic schemas for user management and the audit trail.
"""

from pydantic import Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from backend.finpanel.models.enums import UserRole
from backend.finpanel.schemas.common import CamelModel, UserSummary, Pagination


class UserListItem(CamelModel):
    """Schema for user in list response."""
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    is_approved: bool
    profile_image: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: datetime


class UserListResponse(CamelModel):
    """Schema for list users response."""
    success: bool = True
    data: List[UserListItem]
    pagination: Pagination


class BlockUserRequest(CamelModel):
    """Schema for blocking a user."""
    reason: Optional[str] = Field(None, description="Reason for blocking (for audit log)")


class UnblockUserRequest(CamelModel):
    """Schema for unblocking a user."""
    reason: Optional[str] = Field(None, description="Reason for unblocking (for audit log)")


class AdminActionResponse(CamelModel):
    """Schema for admin action response."""
    success: bool
    message: str
    user_id: int
    action: str
    audit_log_id: int
    role: Optional[UserRole] = None


class AuditLogResponse(CamelModel):
    """Schema for audit log entry."""
    id: int
    action: str
    entity: str
    entity_id: Optional[str] = None
    user_id: Optional[int] = None
    changes: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime
    user: Optional[UserSummary] = None


class AuditTrailResponse(CamelModel):
    """Schema for audit trail list."""
    success: bool = True
    data: List[AuditLogResponse]
    pagination: Pagination
    action_stats: Dict[str, int]
