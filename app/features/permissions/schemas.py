"""
Pydantic schemas for permission resolution requests and responses.
"""
import enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.menus.models import MenuType
from app.features.roles.schemas import RoleResponse


class PermissionSource(str, enum.Enum):
    """Why a menu was granted or denied."""
    ADMIN = "admin"
    DENY = "deny"
    USER = "user"
    ROLE = "role"
    NONE = "none"


class MenuPermission(BaseModel):
    """One enabled menu with the resolved decision for a user."""
    menu_id: int
    name: str
    title: str
    path: Optional[str] = None
    component: Optional[str] = None
    icon: Optional[str] = None
    redirect: Optional[str] = None
    permission_code: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    parent_id: Optional[int] = None
    sort_order: int = 0
    level: int = 1
    menu_type: MenuType = MenuType.MENU
    is_hidden: bool = False
    has_permission: bool
    permission_source: PermissionSource

    model_config = ConfigDict(from_attributes=True)


class UserMenuTreeNode(MenuPermission):
    """Granted menu with nested granted children."""
    children: List["UserMenuTreeNode"] = Field(default_factory=list)


class AssignUserRolesRequest(BaseModel):
    """
    Roles to hold in one organization.

    org_id defaults to the user's primary organization. An empty role_ids
    list removes every role in that organization.
    """
    org_id: Optional[int] = None
    role_ids: List[int]


class UserRolesResponse(BaseModel):
    user_id: int
    org_id: Optional[int] = None
    roles: List[RoleResponse] = []


class UserPermissionsResponse(BaseModel):
    """Flat permission list of a user in an organization."""
    user_id: int
    org_id: Optional[int] = None
    is_admin: bool = False
    permissions: List[MenuPermission] = []


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    source: PermissionSource = PermissionSource.NONE
    org_id: Optional[int] = None
