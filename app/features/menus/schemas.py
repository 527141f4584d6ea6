"""
Pydantic schemas for menu-related requests and responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.menus.models import MenuType, PermissionType


class MenuBase(BaseModel):
    """Base menu schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Machine key")
    title: str = Field(..., min_length=1, max_length=100, description="Display title")
    path: Optional[str] = Field(None, max_length=255)
    component: Optional[str] = Field(None, max_length=255)
    icon: Optional[str] = Field(None, max_length=100)
    redirect: Optional[str] = Field(None, max_length=255)
    permission_code: Optional[str] = Field(None, max_length=100)
    meta: Optional[Dict[str, Any]] = Field(None, description="Opaque payload for the client")
    description: Optional[str] = Field(None, max_length=1000)
    parent_id: Optional[int] = Field(None, description="Parent menu ID (null for a root node)")
    sort_order: int = 0
    menu_type: MenuType = MenuType.MENU
    is_hidden: bool = False
    is_disabled: bool = False


class MenuCreate(MenuBase):
    """Schema for creating a menu. Level is derived from the parent."""
    pass


class MenuUpdate(BaseModel):
    """Schema for updating a menu. Only the fields sent are written."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    path: Optional[str] = Field(None, max_length=255)
    component: Optional[str] = Field(None, max_length=255)
    icon: Optional[str] = Field(None, max_length=100)
    redirect: Optional[str] = Field(None, max_length=255)
    permission_code: Optional[str] = Field(None, max_length=100)
    meta: Optional[Dict[str, Any]] = None
    description: Optional[str] = Field(None, max_length=1000)
    parent_id: Optional[int] = None
    sort_order: Optional[int] = None
    menu_type: Optional[MenuType] = None
    is_hidden: Optional[bool] = None
    is_disabled: Optional[bool] = None


class MenuResponse(MenuBase):
    """Schema for menu responses."""
    id: int
    level: int
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MenuTreeNode(MenuResponse):
    """Menu with nested children."""
    children: List["MenuTreeNode"] = Field(default_factory=list)


class MenuSortUpdate(BaseModel):
    """
    One entry of a batch reorder.

    Fields left out are not touched; an explicit null parent_id moves the
    node to the root level.
    """
    id: int
    parent_id: Optional[int] = None
    sort_order: Optional[int] = None


class UserMenuOverrideRequest(BaseModel):
    """Schema for setting a user-specific menu override."""
    permission_type: PermissionType
