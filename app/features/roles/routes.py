"""
Role catalog API routes, including the role-menu binding endpoints.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.menus import service as menu_service
from app.features.roles import service
from app.features.roles.schemas import (
    RoleCreate,
    RoleUpdate,
    RoleResponse,
    RoleListResponse,
    RoleMenusRequest,
    RoleUserResponse,
)


router = APIRouter(tags=["roles"])


@router.get("/", response_model=RoleListResponse)
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1),
    keyword: Optional[str] = None
):
    """List roles, system roles first."""
    limit = min(limit, config.MAX_PAGE_SIZE)
    items, total = await service.list_roles(db, page=page, limit=limit, keyword=keyword)
    return RoleListResponse(
        items=[RoleResponse.model_validate(role) for role in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a role. Duplicate codes (ignoring case) are a conflict."""
    return await service.create_role(db, role_data.model_dump())


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_role(db, role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_update: RoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.update_role(db, role_id, role_update.model_dump(exclude_unset=True))


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a role. System roles and roles still assigned are refused."""
    await service.delete_role(db, role_id)


@router.put("/{role_id}/menus")
async def assign_role_menus(
    role_id: int,
    request: RoleMenusRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Replace the menus bound to a role."""
    await menu_service.assign_menus_to_role(db, role_id, request.menu_ids)
    return {"role_id": role_id, "menu_ids": await menu_service.get_menus_for_role(db, role_id)}


@router.get("/{role_id}/menus", response_model=List[int])
async def get_role_menus(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await menu_service.get_menus_for_role(db, role_id)


@router.get("/{role_id}/users", response_model=List[RoleUserResponse])
async def get_role_users(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Users holding this role, per organization."""
    return await service.get_role_users(db, role_id)
