"""
Pydantic schemas for organization-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field


# Organization Schemas
class OrganizationBase(BaseModel):
    """Base organization schema."""
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: int | None = Field(None, description="Parent organization ID (null for a top-level organization)")


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization."""
    pass


class OrganizationResponse(OrganizationBase):
    """Schema for organization responses."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# Membership Schemas
class LinkUserOrgsRequest(BaseModel):
    """Link a user to several organizations, optionally choosing the primary one."""
    org_ids: list[int] = Field(..., min_length=1)
    primary_org_id: int | None = None


class LinkUserOrgsResponse(BaseModel):
    user_id: int
    org_ids: list[int]
    primary_org_id: int | None = None


class AddUsersRequest(BaseModel):
    """Schema for adding existing users to an organization."""
    user_ids: list[int] = Field(..., min_length=1)


class PrimaryOrgResponse(BaseModel):
    user_id: int
    org_id: int | None = None


class OrgUser(BaseModel):
    """
    One member in an organization listing.

    Optional user fields only appear when they are enabled.
    """
    id: int
    username: str
    is_active: bool
    email: str | None = None
    real_name: str | None = None
    phone: str | None = None
    primary_org_id: int | None = None
    role_codes: list[str] = Field(default_factory=list)


class OrgUserListResponse(BaseModel):
    items: list[OrgUser]
    total: int
    page: int
    limit: int
