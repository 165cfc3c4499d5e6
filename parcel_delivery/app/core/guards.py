"""
Security guards for role-based and ownership-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, status
from parcel_delivery.app.models.enums import UserRole
from parcel_delivery.app.core.dependencies import get_current_user


def is_privileged(current_user: dict) -> bool:
    """Admins may act on any user's parcels and payments."""
    return current_user.get("role") == UserRole.ADMIN.value


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/parcels/{parcel_id}/tracking")
        async def add_event(current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.RIDER]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency for admin-only endpoints.

    Args:
        current_user: Authenticated identity

    Returns:
        User payload if admin, raises 403 otherwise
    """
    if not is_privileged(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def verify_ownership(resource_owner_email: str, current_user: dict) -> bool:
    """
    Verify that the current user owns the resource.

    Admins are always allowed; everyone else must match the owner email.
    """
    if is_privileged(current_user):
        return True
    return current_user.get("email") == resource_owner_email


class OwnershipGuard:
    """
    Class-based ownership guard for per-user access.

    Usage:
        ownership_guard = OwnershipGuard()

        @router.get("/parcels/{parcel_id}")
        async def get_parcel(parcel_id: int, current_user: dict = Depends(get_current_user), ...):
            parcel = await store.find_by_id(parcel_id)
            ownership_guard.enforce(parcel.created_by, current_user, "parcel")
            return parcel
    """

    def enforce(
        self,
        resource_owner_email: str,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Enforce ownership validation, raise 403 if access denied.

        Raises:
            HTTPException 403 if ownership check fails
        """
        if not verify_ownership(resource_owner_email, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. You do not have permission to access this {resource_name}."
            )

    def filter_by_ownership(
        self,
        current_user: dict,
        requested_email: Optional[str] = None
    ) -> Optional[str]:
        """
        Get the owner email to filter queries by.

        For admins: the requested email, or None (no filtering)
        For everyone else: their own email; asking for another email is a 403

        Raises:
            HTTPException 403 if a non-admin asks for someone else's records
        """
        if is_privileged(current_user):
            return requested_email

        own_email = current_user.get("email")
        if requested_email is not None and requested_email != own_email:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You may only view your own records."
            )
        return own_email
