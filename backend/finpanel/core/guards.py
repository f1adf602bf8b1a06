"""
Security guards for role-based and ownership-based access control.

Every authorization decision in the application goes through this module.
"""

from typing import List, Optional
from fastapi import Depends

from backend.finpanel.core.dependencies import Identity, get_current_user
from backend.finpanel.core.exceptions import InsufficientPermissionsError
from backend.finpanel.models.enums import UserRole


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/audit")
        async def list_audit(identity: Identity = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        InsufficientPermissionsError (403) if the caller's role is not in allowed_roles
    """
    async def role_checker(identity: Identity = Depends(get_current_user)) -> Identity:
        if identity.role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join(r.value for r in allowed_roles)}"
            )
        return identity

    return role_checker


async def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
    """Dependency for admin-only endpoints."""
    if not identity.is_admin:
        raise InsufficientPermissionsError("Admin access required")
    return identity


require_user_role = require_role([UserRole.USER])


def can_access(resource_owner_id: int, identity: Identity) -> bool:
    """Admins can access everything; everyone else only what they own."""
    if identity.is_admin:
        return True
    return identity.id == resource_owner_id


class OwnershipGuard:
    """
    Ownership guard for per-user resources.

    Usage:
        ownership_guard.enforce(transaction.user_id, identity, "transaction")
    """

    def enforce(
        self,
        resource_owner_id: int,
        identity: Identity,
        resource_name: str = "resource"
    ) -> None:
        """Raise 403 unless the caller is an admin or owns the resource."""
        if not can_access(resource_owner_id, identity):
            raise InsufficientPermissionsError(
                "Access denied",
                details={"resource": resource_name}
            )

    def filter_by_ownership(self, identity: Identity) -> Optional[int]:
        """
        Get the owner id to filter list queries by.

        Returns None for admins (no filtering), the caller's id otherwise.
        """
        if identity.is_admin:
            return None
        return identity.id


ownership_guard = OwnershipGuard()
