"""
Organization feature routes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.organizations import service
from app.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationResponse,
    LinkUserOrgsRequest,
    LinkUserOrgsResponse,
    AddUsersRequest,
    PrimaryOrgResponse,
    OrgUser,
    OrgUserListResponse,
)


router = APIRouter(tags=["organizations"])


# Organization endpoints
@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a new organization, optionally below a parent."""
    return await service.create_organization(db, org_data.model_dump())


@router.get("/", response_model=list[OrganizationResponse])
async def list_organizations(db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.list_organizations(db)


# User-centric membership endpoints
@router.post("/users/{user_id}/orgs", response_model=LinkUserOrgsResponse)
async def link_user_orgs(
    user_id: int,
    request: LinkUserOrgsRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Link a user to organizations. Organizations that do not exist are skipped."""
    linked = await service.link_user_orgs(db, user_id, request.org_ids, request.primary_org_id)
    return LinkUserOrgsResponse(user_id=user_id, org_ids=linked, primary_org_id=request.primary_org_id)


@router.get("/users/{user_id}/primary", response_model=PrimaryOrgResponse)
async def get_primary_org(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """The user's primary organization; org_id is null when there is none."""
    return PrimaryOrgResponse(user_id=user_id, org_id=await service.get_primary_org_id(db, user_id))


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_organization(
    org_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_organization(db, org_id)


# Organization-centric membership endpoints
@router.get("/{org_id}/users", response_model=OrgUserListResponse, response_model_exclude_unset=True)
async def list_org_users(
    org_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1),
    search: Optional[str] = None,
    role: Optional[str] = Query(None, description="Only users holding this role code"),
    include_children: bool = Query(False, description="Also list members of descendant organizations")
):
    """List the members of an organization with their role codes."""
    limit = min(limit, config.MAX_PAGE_SIZE)
    items, total = await service.list_users(
        db,
        org_id,
        search=search,
        role_code=role,
        include_descendants=include_children,
        page=page,
        limit=limit,
    )
    return OrgUserListResponse(
        items=[OrgUser(**item) for item in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/{org_id}/users", status_code=status.HTTP_201_CREATED)
async def add_users_to_organization(
    org_id: int,
    request: AddUsersRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add existing users to the organization as non-primary members."""
    added = await service.add_users(db, org_id, request.user_ids)
    return {"org_id": org_id, "added": added}


@router.delete("/{org_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_from_organization(
    org_id: int,
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a membership. The primary membership is refused with 409."""
    await service.remove_user(db, org_id, user_id)


@router.put("/{org_id}/users/{user_id}/primary", response_model=PrimaryOrgResponse)
async def set_primary_org(
    org_id: int,
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    await service.set_primary(db, user_id, org_id)
    return PrimaryOrgResponse(user_id=user_id, org_id=org_id)


@router.put("/{from_org_id}/users/{user_id}/move/{to_org_id}", response_model=PrimaryOrgResponse)
async def move_user(
    from_org_id: int,
    user_id: int,
    to_org_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Move a user to another organization, which becomes primary."""
    await service.move_user(db, user_id, from_org_id, to_org_id)
    return PrimaryOrgResponse(user_id=user_id, org_id=to_org_id)
