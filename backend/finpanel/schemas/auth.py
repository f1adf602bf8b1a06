"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import EmailStr, Field
from datetime import datetime
from typing import Optional
from backend.finpanel.models.enums import UserRole
from backend.finpanel.schemas.common import CamelModel


class UserRegister(CamelModel):
    """
    Schema for user registration.

    Used by POST /auth/register. Self-registered accounts are always USER
    and start unapproved.
    """
    email: EmailStr = Field(..., description="User email address")
    name: str = Field(..., min_length=2, max_length=100, description="Display name")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")


class UserLogin(CamelModel):
    """Schema for user login (POST /auth/login)."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class TokenResponse(CamelModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User ID")
    name: str
    email: str
    role: UserRole = Field(..., description="User role")
    is_approved: bool


class UserResponse(CamelModel):
    """
    Schema for user information response.

    Used by GET /auth/me.
    """
    id: int
    email: str
    name: str
    role: UserRole
    is_active: bool
    is_approved: bool
    profile_image: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LogoutResponse(CamelModel):
    success: bool = True
    message: str = "Signed out"
