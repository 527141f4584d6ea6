"""
Menu catalog operations, role-menu bindings and user menu overrides.

Every multi-statement mutation runs inside `atomic(db)`, so an invariant
violation detected half-way leaves the store untouched.
"""
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select, update, delete, insert, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import atomic
from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.features.menus.models import Menu, PermissionType, role_menus, user_menus
from app.features.menus.tree import TreeNode, build_tree, would_create_cycle
from app.features.roles.models import Role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

# Columns a batch reorder is allowed to touch
_SORT_COLUMNS = ("parent_id", "sort_order")

# NOT NULL columns; an explicit null for these in an update is ignored
_REQUIRED_COLUMNS = ("name", "title", "sort_order", "menu_type", "is_hidden", "is_disabled")


# ============================================================================
# Catalog
# ============================================================================

async def list_menus(db: AsyncSession) -> List[Menu]:
    """All menus, globally ordered by sort_order then id."""
    result = await db.execute(select(Menu).order_by(Menu.sort_order.asc(), Menu.id.asc()))
    return list(result.scalars().all())


async def get_menu(db: AsyncSession, menu_id: int) -> Menu:
    """Get a menu by ID or raise NotFoundError."""
    menu = await db.get(Menu, menu_id)
    if menu is None:
        raise NotFoundError(f"Menu {menu_id} not found")
    return menu


async def get_menu_tree(db: AsyncSession) -> List[TreeNode[Menu]]:
    return build_tree(await list_menus(db))


async def _load_parent_map(db: AsyncSession) -> Dict[int, Optional[int]]:
    result = await db.execute(select(Menu.id, Menu.parent_id))
    return {row.id: row.parent_id for row in result.all()}


async def create_menu(db: AsyncSession, data: Dict[str, Any]) -> Menu:
    """
    Create a menu node.

    The level is the parent's level + 1, or 1 for a root node. Menus created
    through the API are never system menus.
    """
    async with atomic(db):
        level = 1
        parent_id = data.get("parent_id")
        if parent_id is not None:
            parent = await db.get(Menu, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent menu {parent_id} not found")
            level = parent.level + 1

        menu = Menu(**data, level=level, is_system=False)
        db.add(menu)

    await db.refresh(menu)
    log.info("Menu %s (%s) created under parent %s", menu.id, menu.name, menu.parent_id)
    return menu


async def update_menu(db: AsyncSession, menu_id: int, data: Dict[str, Any]) -> Menu:
    """
    Update only the given fields of a menu.

    An explicit null for a required column leaves it unchanged. A parent
    change goes through the same cycle check as a batch reorder.
    """
    data = {
        key: value for key, value in data.items()
        if value is not None or key not in _REQUIRED_COLUMNS
    }
    async with atomic(db):
        menu = await get_menu(db, menu_id)

        if "parent_id" in data and data["parent_id"] != menu.parent_id:
            new_parent_id = data["parent_id"]
            parents = await _load_parent_map(db)
            if new_parent_id == menu_id:
                raise BadRequestError("A menu cannot be its own parent")
            if new_parent_id is not None and new_parent_id not in parents:
                raise NotFoundError(f"Parent menu {new_parent_id} not found")
            if would_create_cycle(parents, menu_id, new_parent_id):
                raise BadRequestError("Cannot move a menu under one of its descendants")

        for key, value in data.items():
            setattr(menu, key, value)

    await db.refresh(menu)
    log.info("Menu %s updated: %s", menu_id, sorted(data))
    return menu


async def delete_menu(db: AsyncSession, menu_id: int) -> bool:
    """
    Delete a leaf, non-system menu together with its bindings and overrides.
    """
    async with atomic(db):
        menu = await get_menu(db, menu_id)
        if menu.is_system:
            raise ForbiddenError("System menus cannot be deleted")

        child_count = await db.scalar(
            select(func.count()).select_from(Menu).where(Menu.parent_id == menu_id)
        )
        if child_count:
            raise ConflictError("Cannot delete a menu that still has children")

        await db.execute(delete(role_menus).where(role_menus.c.menu_id == menu_id))
        await db.execute(delete(user_menus).where(user_menus.c.menu_id == menu_id))
        await db.delete(menu)

    log.info("Menu %s deleted", menu_id)
    return True


async def batch_reorder(db: AsyncSession, updates: Iterable[Dict[str, Any]]) -> bool:
    """
    Apply a batch of {id, parent_id?, sort_order?} changes atomically.

    Keys missing from an entry are left untouched. The whole batch is
    validated against the full id -> parent map before anything is written,
    with earlier re-parentings in the batch taken into account, and one
    rejected entry rejects the batch.
    """
    entries = list(updates)
    if not entries:
        return True

    async with atomic(db):
        parents = await _load_parent_map(db)

        for entry in entries:
            menu_id = entry["id"]
            if menu_id not in parents:
                raise NotFoundError(f"Menu {menu_id} not found")
            if "parent_id" not in entry:
                continue

            new_parent_id = entry["parent_id"]
            if new_parent_id == menu_id:
                raise BadRequestError(f"Menu {menu_id} cannot be its own parent")
            if new_parent_id is not None and new_parent_id not in parents:
                raise NotFoundError(f"Parent menu {new_parent_id} not found")
            if would_create_cycle(parents, menu_id, new_parent_id):
                log.info("Rejected reorder: menu %s under %s would form a cycle", menu_id, new_parent_id)
                raise BadRequestError(f"Cannot move menu {menu_id} under one of its descendants")
            parents[menu_id] = new_parent_id

        for entry in entries:
            values = {column: entry[column] for column in _SORT_COLUMNS if column in entry}
            if values.get("sort_order", 0) is None:
                del values["sort_order"]
            if not values:
                continue
            await db.execute(update(Menu).where(Menu.id == entry["id"]).values(**values))

    log.info("Batch reorder applied to %d menus", len(entries))
    return True


# ============================================================================
# Role-Menu Bindings
# ============================================================================

async def assign_menus_to_role(db: AsyncSession, role_id: int, menu_ids: List[int]) -> bool:
    """
    Replace the complete set of menus bound to a role.

    Deliberately delete-then-insert rather than a diff: the old set is gone
    and the new one is in place, or (on any error) nothing changed.
    """
    menu_ids = list(dict.fromkeys(menu_ids))

    async with atomic(db):
        role = await db.get(Role, role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found")

        if menu_ids:
            result = await db.execute(select(Menu.id).where(Menu.id.in_(menu_ids)))
            missing = set(menu_ids) - set(result.scalars().all())
            if missing:
                raise NotFoundError(f"Menus not found: {sorted(missing)}")

        await db.execute(delete(role_menus).where(role_menus.c.role_id == role_id))
        if menu_ids:
            await db.execute(
                insert(role_menus),
                [{"role_id": role_id, "menu_id": menu_id} for menu_id in menu_ids]
            )

    log.info("Role %s bound to menus %s", role_id, menu_ids)
    return True


async def get_menus_for_role(db: AsyncSession, role_id: int) -> List[int]:
    """Raw menu id list bound to a role."""
    if await db.get(Role, role_id) is None:
        raise NotFoundError(f"Role {role_id} not found")
    result = await db.execute(
        select(role_menus.c.menu_id)
        .where(role_menus.c.role_id == role_id)
        .order_by(role_menus.c.menu_id)
    )
    return list(result.scalars().all())


# ============================================================================
# User Menu Overrides
# ============================================================================

async def set_user_menu_override(
    db: AsyncSession,
    user_id: int,
    menu_id: int,
    permission_type: PermissionType
) -> bool:
    """Upsert the (user, menu) override."""
    async with atomic(db):
        if await db.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        await get_menu(db, menu_id)

        where = (user_menus.c.user_id == user_id) & (user_menus.c.menu_id == menu_id)
        existing = await db.execute(select(user_menus.c.permission_type).where(where))
        if existing.first() is not None:
            await db.execute(update(user_menus).where(where).values(permission_type=permission_type))
        else:
            await db.execute(
                insert(user_menus).values(user_id=user_id, menu_id=menu_id, permission_type=permission_type)
            )

    log.info("User %s override on menu %s set to %s", user_id, menu_id, permission_type.value)
    return True


async def remove_user_menu_override(db: AsyncSession, user_id: int, menu_id: int) -> bool:
    """Drop the override so the menu falls back to role-derived access."""
    async with atomic(db):
        result = await db.execute(
            delete(user_menus).where(
                (user_menus.c.user_id == user_id) & (user_menus.c.menu_id == menu_id)
            )
        )

    removed = (result.rowcount or 0) > 0
    log.info("User %s override on menu %s removed=%s", user_id, menu_id, removed)
    return removed
