"""
Admin API Endpoints.

Provides admin-only user management endpoints with audit logging.
"""

from fastapi import APIRouter, Depends, Query, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional, List
from backend.finpanel.db.session import get_db
from backend.finpanel.models.user import User
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.notification import NotificationType
from backend.finpanel.schemas.admin import (
    UserListResponse, UserListItem, BlockUserRequest, UnblockUserRequest,
    AdminActionResponse, AuditLogResponse
)
from backend.finpanel.schemas.common import Pagination
from backend.finpanel.core.dependencies import Identity, resolve_role
from backend.finpanel.core.exceptions import (
    ResourceNotFoundError, InsufficientPermissionsError, InvalidStateError, ValidationError
)
from backend.finpanel.core.guards import require_admin
from backend.finpanel.core.redis_client import get_redis
from backend.finpanel.core.token_revocation import revoke_all_user_tokens
from backend.finpanel.services.audit import (
    record, AuditAction, AuditEntity, get_user_audit_history as user_audit_history
)
from backend.finpanel.services.notification_service import NotificationService

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=100, description="Items per page"),
    approved: Optional[bool] = Query(None, description="Filter by approval state"),
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users in the system (admin-only).

    Returns paginated user list with role and status information.
    """
    filters = []
    if approved is not None:
        filters.append(User.is_approved == approved)

    total = (await db.execute(select(func.count(User.id)).where(*filters))).scalar_one()

    offset = (page - 1) * limit
    query = select(User).where(*filters).order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    users = result.scalars().all()

    return UserListResponse(
        data=[UserListItem.model_validate(user) for user in users],
        pagination=Pagination.build(page, limit, total)
    )


@router.post("/users/{user_id}/approve", response_model=AdminActionResponse)
async def approve_user(
    user_id: int,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Approve a newly registered user so they can submit budgets."""
    target_user = await _get_user_or_404(db, user_id)

    if target_user.is_approved:
        raise InvalidStateError("User is already approved")

    target_user.is_approved = True
    await db.flush()

    audit_log = await record(
        db,
        action=AuditAction.USER_APPROVED,
        entity=AuditEntity.USER,
        entity_id=target_user.id,
        user_id=admin.id,
        changes={"email": target_user.email},
    )

    await NotificationService.notify(
        db,
        user_id=target_user.id,
        title="Account Approved",
        message="Your account has been approved. You can now submit budgets.",
        type=NotificationType.USER_APPROVED,
    )
    await db.commit()

    return AdminActionResponse(
        success=True,
        message=f"User '{target_user.email}' has been approved",
        user_id=user_id,
        action=AuditAction.USER_APPROVED,
        audit_log_id=audit_log.id
    )


async def _change_role(db: AsyncSession, admin: Identity, target_user: User, new_role: UserRole):
    """Set a user's role, audit it and tell the user. Takes effect on their next request."""
    previous_role = resolve_role(target_user)
    target_user.role = new_role
    await db.flush()

    audit_log = await record(
        db,
        action=AuditAction.USER_ROLE_CHANGED,
        entity=AuditEntity.USER,
        entity_id=target_user.id,
        user_id=admin.id,
        changes={"from": previous_role.value, "to": new_role.value},
    )

    await NotificationService.notify(
        db,
        user_id=target_user.id,
        title="Role Changed",
        message=f"Your role has been changed to {new_role.value}.",
        type=NotificationType.ROLE_CHANGED,
        data={"role": new_role.value, "changedBy": admin.id},
    )
    await db.commit()

    return AdminActionResponse(
        success=True,
        message=f"User role changed to {new_role.value}",
        user_id=target_user.id,
        action=AuditAction.USER_ROLE_CHANGED,
        audit_log_id=audit_log.id,
        role=new_role
    )


@router.post("/users/{user_id}/promote", response_model=AdminActionResponse)
async def promote_user(
    user_id: int,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Make a user an administrator."""
    target_user = await _get_user_or_404(db, user_id)

    if resolve_role(target_user) == UserRole.ADMIN:
        raise InvalidStateError("User is already an admin")

    return await _change_role(db, admin, target_user, UserRole.ADMIN)


@router.post("/users/{user_id}/toggle-admin", response_model=AdminActionResponse)
async def toggle_admin(
    user_id: int,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Flip a user between ADMIN and USER. Admins cannot change their own role."""
    if user_id == admin.id:
        raise ValidationError("Cannot change your own admin status")

    target_user = await _get_user_or_404(db, user_id)

    if resolve_role(target_user) == UserRole.ADMIN:
        new_role = UserRole.USER
    else:
        new_role = UserRole.ADMIN

    return await _change_role(db, admin, target_user, new_role)


@router.post("/users/{user_id}/block", response_model=AdminActionResponse)
async def block_user(
    user_id: int,
    request: BlockUserRequest,
    http_request: Request,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis)
):
    """
    Block a user and revoke all their active tokens (admin-only).

    This immediately terminates all user sessions.
    """
    target_user = await _get_user_or_404(db, user_id)

    # Prevent blocking self
    if target_user.id == admin.id:
        raise ValidationError("Cannot block yourself")

    # Prevent blocking another admin
    if resolve_role(target_user) == UserRole.ADMIN:
        raise InsufficientPermissionsError("Cannot block another admin user")

    if not target_user.is_active:
        raise InvalidStateError("User is already blocked")

    target_user.is_active = False

    audit_log = await record(
        db,
        action=AuditAction.USER_BLOCKED,
        entity=AuditEntity.USER,
        entity_id=target_user.id,
        user_id=admin.id,
        changes={"email": target_user.email, "reason": request.reason},
        ip_address=http_request.client.host if http_request.client else None,
    )
    await db.commit()

    # Revoke all active tokens
    await revoke_all_user_tokens(redis, user_id)

    return AdminActionResponse(
        success=True,
        message=f"User '{target_user.email}' has been blocked",
        user_id=user_id,
        action=AuditAction.USER_BLOCKED,
        audit_log_id=audit_log.id
    )


@router.post("/users/{user_id}/unblock", response_model=AdminActionResponse)
async def unblock_user(
    user_id: int,
    request: UnblockUserRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Unblock a user (admin-only).

    The user can sign in again. Tokens issued before the block stay revoked
    until they expire.
    """
    target_user = await _get_user_or_404(db, user_id)

    if target_user.is_active:
        raise InvalidStateError("User is already active")

    target_user.is_active = True

    audit_log = await record(
        db,
        action=AuditAction.USER_UNBLOCKED,
        entity=AuditEntity.USER,
        entity_id=target_user.id,
        user_id=admin.id,
        changes={"email": target_user.email, "reason": request.reason},
    )
    await db.commit()

    return AdminActionResponse(
        success=True,
        message=f"User '{target_user.email}' has been unblocked",
        user_id=user_id,
        action=AuditAction.USER_UNBLOCKED,
        audit_log_id=audit_log.id
    )


@router.get("/users/{user_id}/audit-history", response_model=List[AuditLogResponse])
async def get_user_audit_history(
    user_id: int,
    limit: int = Query(50, ge=1, le=500),
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get complete audit history for a specific user (admin-only).

    Shows all actions performed by or on the user.
    """
    await _get_user_or_404(db, user_id)
    logs = await user_audit_history(db=db, user_id=user_id, limit=limit)
    return [AuditLogResponse.model_validate(log) for log in logs]
