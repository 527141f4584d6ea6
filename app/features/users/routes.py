"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.organizations import service as org_service
from app.features.users.models import User
from app.features.users.schemas import UserCreate, UserResponse, UserMembership
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Register a user so it can be linked to organizations and roles."""
    try:
        user = User(**user_data.model_dump())
        db.add(user)
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this username already exists"
        )

    log.info(f"User {user.id} ({user.username}) created")
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a user by ID."""
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("/{user_id}/organizations", response_model=list[UserMembership])
async def get_user_organizations(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Organizations the user belongs to, primary first."""
    return await org_service.list_user_orgs(db, user_id)
