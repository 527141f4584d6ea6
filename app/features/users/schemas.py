"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    real_name: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=30)


class UserCreate(UserBase):
    """Schema for creating a new user."""
    pass


class UserResponse(UserBase):
    """Schema for user responses."""
    id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserMembership(BaseModel):
    """One organization the user belongs to."""
    org_id: int
    org_name: str
    parent_id: int | None = None
    is_primary: bool
