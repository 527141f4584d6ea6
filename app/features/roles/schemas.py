"""
Pydantic schemas for role catalog requests and responses.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_disabled: bool = False


class RoleCreate(RoleBase):
    """
    Schema for creating a role.

    The code is normalised (lower case, underscores) before it is stored.
    sort_order defaults to the current maximum + 1.
    """
    code: str = Field(..., min_length=1, max_length=50, description="Stable role identifier")
    sort_order: Optional[int] = None


class RoleUpdate(BaseModel):
    """Schema for updating a role. name and code are locked on system roles."""
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_disabled: Optional[bool] = None
    sort_order: Optional[int] = None


class RoleResponse(RoleBase):
    """Schema for role responses."""
    id: int
    code: str
    is_system: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleListResponse(BaseModel):
    """Paged role listing."""
    items: List[RoleResponse]
    total: int
    page: int
    limit: int


class RoleMenusRequest(BaseModel):
    """Complete set of menus for a role. An empty list unbinds everything."""
    menu_ids: List[int]


class RoleUserResponse(BaseModel):
    """A user holding a role, with the organization the role is held in."""
    user_id: int
    username: str
    org_id: int
    org_name: str
    assigned_at: datetime
