"""
Authentication API endpoints.

Provides register, login, logout and current-user endpoints.
"""

import logging
from fastapi import APIRouter, Depends, Request, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.finpanel.db.session import get_db
from backend.finpanel.models.user import User
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.timestamps import utcnow
from backend.finpanel.schemas.auth import (
    UserRegister, UserLogin, TokenResponse, UserResponse, LogoutResponse
)
from backend.finpanel.core.security import get_password_hash, verify_password
from backend.finpanel.core.jwt import create_access_token
from backend.finpanel.core.dependencies import Identity, get_current_user, resolve_role
from backend.finpanel.core.exceptions import (
    UnauthorizedError, InsufficientPermissionsError, ValidationError
)
from backend.finpanel.core.redis_client import get_redis
from backend.finpanel.core.token_revocation import revoke_token
from backend.finpanel.services.audit import record, AuditAction, AuditEntity

logger = logging.getLogger("finpanel.auth")

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


def _token_response(user: User) -> TokenResponse:
    # Role stays out of the token; it is looked up on every request
    access_token = create_access_token(data={"sub": user.email, "user_id": user.id})
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=resolve_role(user),
        is_approved=user.is_approved,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new user.

    Accounts are always created with the USER role and must be approved by
    an admin before they can submit budgets.
    """
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        raise ValidationError("Email already registered")

    new_user = User(
        email=user_data.email,
        name=user_data.name,
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.USER,
        is_active=True,
        is_approved=False,
    )
    db.add(new_user)
    await db.flush()

    await record(
        db,
        action=AuditAction.USER_REGISTERED,
        entity=AuditEntity.USER,
        entity_id=new_user.id,
        user_id=new_user.id,
        changes={"email": new_user.email},
        ip_address=_client_ip(request),
    )
    await db.commit()

    return _token_response(new_user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Logs successful and failed login attempts for security monitoring.
    """
    ip_address = _client_ip(request)

    result = await db.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await record(
            db,
            action=AuditAction.LOGIN_FAILED,
            entity=AuditEntity.USER,
            entity_id=user.id if user else None,
            user_id=user.id if user else None,
            changes={"email": credentials.email, "reason": "User not found" if not user else "Invalid password"},
            ip_address=ip_address,
        )
        await db.commit()
        raise UnauthorizedError("Invalid credentials")

    if not user.is_active:
        await record(
            db,
            action=AuditAction.LOGIN_FAILED,
            entity=AuditEntity.USER,
            entity_id=user.id,
            user_id=user.id,
            changes={"email": user.email, "reason": "Account is inactive/blocked"},
            ip_address=ip_address,
        )
        await db.commit()
        raise InsufficientPermissionsError("Inactive user account")

    user.last_login = utcnow()
    await record(
        db,
        action=AuditAction.SIGN_IN,
        entity=AuditEntity.USER,
        entity_id=user.id,
        user_id=user.id,
        changes={"email": user.email},
        ip_address=ip_address,
    )
    await db.commit()

    return _token_response(user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis)
):
    """Revoke the presented token and record the sign-out."""
    await revoke_token(redis, identity.token, identity.id)

    await record(
        db,
        action=AuditAction.SIGN_OUT,
        entity=AuditEntity.USER,
        entity_id=identity.id,
        user_id=identity.id,
        ip_address=_client_ip(request),
    )
    await db.commit()

    return LogoutResponse()


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Requires valid JWT token in Authorization header.
    """
    user = await db.get(User, identity.id)
    if user is None:
        raise UnauthorizedError()

    return UserResponse.model_validate(user)
