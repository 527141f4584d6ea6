"""
Permission API routes.

Provides endpoints for assigning roles inside an organization, managing
per-user menu overrides and reading resolved menu permissions.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.menus import service as menu_service
from app.features.menus.schemas import UserMenuOverrideRequest
from app.features.menus.tree import render_tree
from app.features.organizations.service import is_member
from app.features.permissions import service
from app.features.permissions.schemas import (
    AssignUserRolesRequest,
    PermissionCheckResponse,
    UserMenuTreeNode,
    UserPermissionsResponse,
    UserRolesResponse,
)
from app.features.roles import service as role_service
from app.features.roles.schemas import RoleResponse
from app.features.users.dependencies import get_caller_id, get_requested_org_id


router = APIRouter()

OrgScope = Annotated[Optional[int], Depends(get_requested_org_id)]


async def _menu_tree(db: AsyncSession, user_id: int, org_id: Optional[int]) -> list:
    tree = await service.resolve_tree(db, user_id, org_id)
    return render_tree(tree, lambda permission: permission.model_dump())


# ============================================================================
# Role Assignment
# ============================================================================

@router.put("/users/{user_id}/roles", response_model=UserRolesResponse)
async def assign_user_roles_in_org(
    user_id: int,
    request: AssignUserRolesRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Replace the roles a user holds in an organization (primary org by default)."""
    org_id = await role_service.assign_roles_in_org(db, user_id, request.org_id, request.role_ids)
    roles = await role_service.get_roles_in_org(db, user_id, org_id)
    return UserRolesResponse(
        user_id=user_id,
        org_id=org_id,
        roles=[RoleResponse.model_validate(role) for role in roles],
    )


@router.get("/users/{user_id}/roles", response_model=UserRolesResponse)
async def get_user_roles_in_org(
    user_id: int,
    org_id: OrgScope,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Enabled roles the user holds in the organization."""
    org_id = await service.resolve_org_id(db, user_id, org_id)
    if org_id is None:
        return UserRolesResponse(user_id=user_id)
    roles = await role_service.get_roles_in_org(db, user_id, org_id)
    return UserRolesResponse(
        user_id=user_id,
        org_id=org_id,
        roles=[RoleResponse.model_validate(role) for role in roles],
    )


# ============================================================================
# Resolution
# ============================================================================

@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_menu_permissions_in_org(
    user_id: int,
    org_id: OrgScope,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Every enabled menu with the decision and its source."""
    org_id = await service.resolve_org_id(db, user_id, org_id)
    permissions = await service.resolve_permissions(db, user_id, org_id)
    is_admin = (
        org_id is not None
        and await is_member(db, user_id, org_id)
        and await service.is_admin_in_org(db, user_id, org_id)
    )
    return UserPermissionsResponse(
        user_id=user_id,
        org_id=org_id,
        is_admin=is_admin,
        permissions=permissions,
    )


@router.get("/users/{user_id}/menus", response_model=List[UserMenuTreeNode])
async def get_user_menu_tree(
    user_id: int,
    org_id: OrgScope,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Tree of the menus the user may use."""
    return await _menu_tree(db, user_id, org_id)


@router.get("/current-user/menus", response_model=List[UserMenuTreeNode])
async def get_current_user_menu_tree(
    user_id: Annotated[int, Depends(get_caller_id)],
    org_id: OrgScope,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Menu tree of the caller identified by X-User-Id."""
    return await _menu_tree(db, user_id, org_id)


@router.get("/users/{user_id}/menus/{menu_id}/permission", response_model=PermissionCheckResponse)
async def check_user_menu_permission(
    user_id: int,
    menu_id: int,
    org_id: OrgScope,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    org_id = await service.resolve_org_id(db, user_id, org_id)
    granted, source = await service.explain_permission(db, user_id, menu_id, org_id)
    return PermissionCheckResponse(has_permission=granted, source=source, org_id=org_id)


# ============================================================================
# User Overrides
# ============================================================================

@router.put("/users/{user_id}/menus/{menu_id}/permission")
async def set_user_menu_permission(
    user_id: int,
    menu_id: int,
    request: UserMenuOverrideRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Grant or deny one menu to a user, overriding role grants."""
    await menu_service.set_user_menu_override(db, user_id, menu_id, request.permission_type)
    return {"user_id": user_id, "menu_id": menu_id, "permission_type": request.permission_type}


@router.delete("/users/{user_id}/menus/{menu_id}/permission")
async def remove_user_menu_permission(
    user_id: int,
    menu_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Drop the override; the menu falls back to role grants."""
    removed = await menu_service.remove_user_menu_override(db, user_id, menu_id)
    return {"user_id": user_id, "menu_id": menu_id, "removed": removed}
