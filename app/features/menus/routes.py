"""
Menu catalog API routes.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.menus import service
from app.features.menus.schemas import (
    MenuCreate,
    MenuUpdate,
    MenuResponse,
    MenuTreeNode,
    MenuSortUpdate,
)
from app.features.menus.tree import render_tree


router = APIRouter(tags=["menus"])


def menu_to_dict(menu) -> dict:
    return MenuResponse.model_validate(menu).model_dump()


@router.get("/", response_model=List[MenuResponse])
async def list_menus(db: Annotated[AsyncSession, Depends(get_db)]):
    """List every menu ordered by sort_order, then id."""
    return await service.list_menus(db)


@router.get("/tree", response_model=List[MenuTreeNode])
async def get_menu_tree(db: Annotated[AsyncSession, Depends(get_db)]):
    """The whole catalog as a sorted tree, disabled and hidden nodes included."""
    tree = await service.get_menu_tree(db)
    return render_tree(tree, menu_to_dict)


@router.post("/batch-sort")
async def batch_update_menu_sort(
    updates: List[MenuSortUpdate],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Reorder and re-parent several menus at once.

    The body is a JSON array of {id, parent_id?, sort_order?}. Either every
    entry is applied or none is.
    """
    await service.batch_reorder(db, [update.model_dump(exclude_unset=True) for update in updates])
    return {"success": True, "updated": len(updates)}


@router.post("/", response_model=MenuResponse, status_code=status.HTTP_201_CREATED)
async def create_menu(
    menu_data: MenuCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a menu. Its level is derived from the parent."""
    return await service.create_menu(db, menu_data.model_dump())


@router.get("/{menu_id}", response_model=MenuResponse)
async def get_menu(
    menu_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_menu(db, menu_id)


@router.put("/{menu_id}", response_model=MenuResponse)
async def update_menu(
    menu_id: int,
    menu_update: MenuUpdate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update the fields that were sent."""
    return await service.update_menu(db, menu_id, menu_update.model_dump(exclude_unset=True))


@router.delete("/{menu_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_menu(
    menu_id: int,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a non-system menu without children."""
    await service.delete_menu(db, menu_id)
