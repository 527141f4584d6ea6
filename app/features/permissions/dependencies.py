"""
FastAPI dependencies for protecting routes with menu permissions.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.service import check_permission_by_code
from app.features.users.dependencies import get_caller_id, get_requested_org_id
from app.utils import get_logger


log = get_logger(__name__)


def require_menu_permission(permission_code: str):
    """
    FastAPI dependency to require the menu carrying `permission_code`.

    The caller comes from X-User-Id, the organization from X-Org-Id or
    org_id, falling back to the caller's primary organization.

    Usage:
        @router.get("/reports")
        async def get_reports(
            user_id: int = Depends(require_menu_permission("report:view"))
        ):
            ...

    Returns:
        Dependency function that returns the caller's user id

    Raises:
        HTTPException: 403 if the menu is not granted
    """
    async def permission_dependency(
        db: AsyncSession = Depends(get_db),
        user_id: int = Depends(get_caller_id),
        org_id: Optional[int] = Depends(get_requested_org_id)
    ) -> int:
        if not await check_permission_by_code(db, user_id, permission_code, org_id):
            log.info(f"User {user_id} denied {permission_code} in org {org_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission_code}"
            )
        return user_id

    return permission_dependency
