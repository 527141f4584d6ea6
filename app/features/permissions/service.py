"""
Permission resolution engine.

For every enabled menu the decision is taken in this order:

    1. the user holds an enabled admin role in the organization -> granted (admin)
    2. a deny override for the user                             -> denied  (deny)
    3. a grant override for the user                            -> granted (user)
    4. a role the user holds in the org is bound to it          -> granted (role)
    5. otherwise                                                -> denied  (none)

Overrides are per user and apply in every organization; role grants only
count for the organization being resolved. A node is judged on its own,
whatever its parent's outcome.

Without an explicit organization the primary membership is used, else the
one with the lowest org id. Entry points never raise for a missing
context: with no membership at all, or an explicit organization the user
is not a member of, they return an empty list or False. The is_disabled
flag of a role only matters for the admin bypass.
"""
from typing import Dict, List, Optional, Set, Tuple
from sqlalchemy import select, exists, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.features.menus.models import Menu, PermissionType, role_menus, user_menus
from app.features.menus.tree import TreeNode, build_tree
from app.features.organizations.service import get_context_org_id, is_member
from app.features.permissions.schemas import MenuPermission, PermissionSource
from app.features.roles.models import Role, user_org_roles
from app.utils import get_logger


log = get_logger(__name__)


def decide(
    is_admin: bool,
    override: Optional[PermissionType],
    via_role: bool
) -> Tuple[bool, PermissionSource]:
    """Apply the precedence rules to a single menu."""
    if is_admin:
        return True, PermissionSource.ADMIN
    if override == PermissionType.DENY:
        return False, PermissionSource.DENY
    if override == PermissionType.GRANT:
        return True, PermissionSource.USER
    if via_role:
        return True, PermissionSource.ROLE
    return False, PermissionSource.NONE


async def resolve_org_id(db: AsyncSession, user_id: int, org_id: Optional[int] = None) -> Optional[int]:
    """The organization to resolve in: the one given, else the primary one, else any membership."""
    if org_id is not None:
        return org_id
    return await get_context_org_id(db, user_id)


async def _scope(db: AsyncSession, user_id: int, org_id: Optional[int]) -> Optional[int]:
    org_id = await resolve_org_id(db, user_id, org_id)
    if org_id is None:
        log.debug(f"No organization context for user {user_id}")
        return None
    if not await is_member(db, user_id, org_id):
        log.debug(f"User {user_id} is not a member of org {org_id}")
        return None
    return org_id


async def is_admin_in_org(db: AsyncSession, user_id: int, org_id: int) -> bool:
    """True if the user holds an enabled admin role in the organization."""
    return bool(await db.scalar(
        select(exists().where(
            user_org_roles.c.user_id == user_id,
            user_org_roles.c.org_id == org_id,
            user_org_roles.c.role_id == Role.id,
            func.lower(Role.code) == config.ADMIN_ROLE_CODE.lower(),
            Role.is_disabled.is_(False),
        ))
    ))


async def _overrides(db: AsyncSession, user_id: int) -> Dict[int, PermissionType]:
    result = await db.execute(
        select(user_menus.c.menu_id, user_menus.c.permission_type).where(user_menus.c.user_id == user_id)
    )
    return {menu_id: PermissionType(permission_type) for menu_id, permission_type in result.all()}


async def _role_menu_ids(db: AsyncSession, user_id: int, org_id: int) -> Set[int]:
    result = await db.execute(
        select(role_menus.c.menu_id)
        .join(user_org_roles, user_org_roles.c.role_id == role_menus.c.role_id)
        .where(
            user_org_roles.c.user_id == user_id,
            user_org_roles.c.org_id == org_id,
        )
        .distinct()
    )
    return set(result.scalars().all())


def _to_permission(menu: Menu, granted: bool, source: PermissionSource) -> MenuPermission:
    return MenuPermission(
        menu_id=menu.id,
        name=menu.name,
        title=menu.title,
        path=menu.path,
        component=menu.component,
        icon=menu.icon,
        redirect=menu.redirect,
        permission_code=menu.permission_code,
        meta=menu.meta,
        parent_id=menu.parent_id,
        sort_order=menu.sort_order,
        level=menu.level,
        menu_type=menu.menu_type,
        is_hidden=menu.is_hidden,
        has_permission=granted,
        permission_source=source,
    )


async def resolve_permissions(
    db: AsyncSession,
    user_id: int,
    org_id: Optional[int] = None
) -> List[MenuPermission]:
    """
    Decision for every enabled menu, ordered by sort_order then id.

    Denied menus are included with has_permission False.
    """
    org_id = await _scope(db, user_id, org_id)
    if org_id is None:
        return []

    result = await db.execute(
        select(Menu)
        .where(Menu.is_disabled.is_(False))
        .order_by(Menu.sort_order.asc(), Menu.id.asc())
    )
    menus = result.scalars().all()

    admin = await is_admin_in_org(db, user_id, org_id)
    overrides = {} if admin else await _overrides(db, user_id)
    via_roles = set() if admin else await _role_menu_ids(db, user_id, org_id)

    permissions = []
    for menu in menus:
        granted, source = decide(admin, overrides.get(menu.id), menu.id in via_roles)
        permissions.append(_to_permission(menu, granted, source))

    log.debug(
        f"Resolved {sum(p.has_permission for p in permissions)}/{len(permissions)} menus "
        f"for user {user_id} in org {org_id} (admin={admin})"
    )
    return permissions


async def resolve_tree(
    db: AsyncSession,
    user_id: int,
    org_id: Optional[int] = None
) -> List[TreeNode[MenuPermission]]:
    """Granted menus only, as a sorted tree. A granted child of a denied parent becomes a root."""
    granted = [p for p in await resolve_permissions(db, user_id, org_id) if p.has_permission]
    return build_tree(granted, id_attr="menu_id")


async def _held_role_grants(db: AsyncSession, user_id: int, menu_id: int, org_id: int) -> bool:
    return bool(await db.scalar(
        select(exists().where(
            user_org_roles.c.user_id == user_id,
            user_org_roles.c.org_id == org_id,
            role_menus.c.role_id == user_org_roles.c.role_id,
            role_menus.c.menu_id == menu_id,
        ))
    ))


async def _explain_in_scope(
    db: AsyncSession,
    user_id: int,
    menu: Menu,
    org_id: int
) -> Tuple[bool, PermissionSource]:
    if await is_admin_in_org(db, user_id, org_id):
        return decide(True, None, False)

    override = await db.scalar(
        select(user_menus.c.permission_type).where(
            user_menus.c.user_id == user_id,
            user_menus.c.menu_id == menu.id,
        )
    )
    if override is not None:
        return decide(False, PermissionType(override), False)
    return decide(False, None, await _held_role_grants(db, user_id, menu.id, org_id))


async def explain_permission(
    db: AsyncSession,
    user_id: int,
    menu_id: int,
    org_id: Optional[int] = None
) -> Tuple[bool, PermissionSource]:
    """Decision and its source for a single menu."""
    org_id = await _scope(db, user_id, org_id)
    if org_id is None:
        return False, PermissionSource.NONE

    menu = await db.get(Menu, menu_id)
    if menu is None or menu.is_disabled:
        return False, PermissionSource.NONE

    granted, source = await _explain_in_scope(db, user_id, menu, org_id)
    log.debug(f"User {user_id} menu {menu_id} org {org_id}: granted={granted} source={source.value}")
    return granted, source


async def check_permission(
    db: AsyncSession,
    user_id: int,
    menu_id: int,
    org_id: Optional[int] = None
) -> bool:
    granted, _ = await explain_permission(db, user_id, menu_id, org_id)
    return granted


async def check_permission_by_code(
    db: AsyncSession,
    user_id: int,
    permission_code: str,
    org_id: Optional[int] = None
) -> bool:
    """True if any enabled menu carrying permission_code is granted."""
    org_id = await _scope(db, user_id, org_id)
    if org_id is None:
        return False

    result = await db.execute(
        select(Menu)
        .where(
            Menu.permission_code == permission_code,
            Menu.is_disabled.is_(False),
        )
        .order_by(Menu.id.asc())
    )
    for menu in result.scalars().all():
        granted, _ = await _explain_in_scope(db, user_id, menu, org_id)
        if granted:
            return True
    return False
