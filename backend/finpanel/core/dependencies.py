"""
Authentication dependencies for FastAPI.

Resolves the caller's identity from a bearer token. The rest of the
application only ever sees an ``Identity``; nothing below the HTTP layer
touches tokens, headers or Redis.
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.finpanel.core.exceptions import (
    UnauthorizedError,
    TokenRevokedError,
    InsufficientPermissionsError,
)
from backend.finpanel.core.jwt import decode_access_token
from backend.finpanel.core.redis_client import get_redis
from backend.finpanel.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from backend.finpanel.db.session import get_db
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.user import User

# HTTP Bearer security scheme; missing credentials are handled below, not by FastAPI
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller."""
    id: int
    role: UserRole
    email: str
    name: str
    is_approved: bool = True
    token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def resolve_role(user: User) -> UserRole:
    """
    Single source of truth for a user's role.

    The stored ``role`` column decides; unknown or missing values degrade to USER.
    """
    if user.role is None:
        return UserRole.USER
    try:
        return UserRole(user.role)
    except ValueError:
        return UserRole.USER


def identity_for(user: User, token: Optional[str] = None) -> Identity:
    return Identity(
        id=user.id,
        role=resolve_role(user),
        email=user.email,
        name=user.name,
        is_approved=user.is_approved,
        token=token,
    )


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> Optional[Identity]:
    """
    Resolve the caller, or None when there is no usable session.

    Checks, in order:
    1. JWT signature and expiry
    2. Explicit revocation of this token
    3. Revocation of all tokens the user held when they were blocked
    4. User still exists (real-time database check)

    Raises:
        InsufficientPermissionsError: the user exists but is inactive
    """
    if credentials is None:
        return None

    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        return None

    user_id = payload.get("user_id")
    if not user_id:
        return None

    if await is_token_revoked(redis, token):
        return None

    if await are_user_tokens_revoked(redis, user_id, payload.get("iat")):
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        return None

    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    return identity_for(user, token)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> Identity:
    """
    FastAPI dependency for routes that require a session.

    Raises:
        UnauthorizedError: 401 if authentication fails for any reason
        TokenRevokedError: 401 if the presented token was revoked
    """
    if credentials is not None:
        token = credentials.credentials
        if await is_token_revoked(redis, token):
            raise TokenRevokedError()

    identity = await get_current_identity(credentials, db, redis)
    if identity is None:
        raise UnauthorizedError()
    return identity
