"""
Synchronise the menu catalog with a declarative menu tree.

Modes:
    force        overwrite structure (parent, sort order, level) and display fields
    patch        refresh display fields, keep whatever structure was set by hand
    insert_only  only add the nodes that are missing

Existing rows are matched by name first, then by path. The whole sync is a
single transaction.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field
from sqlalchemy import select, delete, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import atomic
from app.features.menus.models import Menu, MenuType, role_menus, user_menus
from app.utils import get_logger


log = get_logger(__name__)


class SyncMode(str, enum.Enum):
    FORCE = "force"
    PATCH = "patch"
    INSERT_ONLY = "insert_only"


class MenuSeed(BaseModel):
    """One node of a declarative menu tree."""
    name: str
    title: str
    path: Optional[str] = None
    component: Optional[str] = None
    icon: Optional[str] = None
    redirect: Optional[str] = None
    permission_code: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    sort_order: Optional[int] = None
    menu_type: MenuType = MenuType.MENU
    is_hidden: bool = False
    is_disabled: bool = False
    is_system: bool = False
    children: List["MenuSeed"] = Field(default_factory=list)


@dataclass
class SyncResult:
    inserted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


# Fields a seed always owns, whatever the mode
_SOFT_FIELDS = (
    "title", "path", "component", "icon", "redirect", "permission_code",
    "meta", "menu_type", "is_hidden", "is_disabled", "is_system",
)


class _Syncer:
    def __init__(self, db: AsyncSession, mode: SyncMode, existing: Sequence[Menu]):
        self.db = db
        self.mode = mode
        self.by_name: Dict[str, Menu] = {menu.name: menu for menu in existing}
        self.by_path: Dict[str, Menu] = {menu.path: menu for menu in existing if menu.path}
        self.seen: set[int] = set()
        self.auto_sort = 1
        self.result = SyncResult()

    def _match(self, seed: MenuSeed) -> Optional[Menu]:
        menu = self.by_name.get(seed.name)
        if menu is None and seed.path:
            menu = self.by_path.get(seed.path)
        return menu

    async def upsert(self, seed: MenuSeed, parent_id: Optional[int], level: int) -> int:
        sort_order = seed.sort_order
        if sort_order is None:
            sort_order = self.auto_sort
            self.auto_sort += 1

        soft = {name: getattr(seed, name) for name in _SOFT_FIELDS}
        menu = self._match(seed)

        if menu is None:
            menu = Menu(
                name=seed.name,
                parent_id=parent_id,
                sort_order=sort_order,
                level=level,
                **soft
            )
            self.db.add(menu)
            await self.db.flush()
            self.result.inserted.append(seed.name)
        elif self.mode == SyncMode.INSERT_ONLY:
            self.result.skipped.append(seed.name)
        else:
            menu.name = seed.name
            for name, value in soft.items():
                setattr(menu, name, value)
            if self.mode == SyncMode.FORCE:
                menu.parent_id = parent_id
                menu.sort_order = sort_order
                menu.level = level
            self.result.updated.append(seed.name)

        self.seen.add(menu.id)
        self.by_name[menu.name] = menu
        if menu.path:
            self.by_path[menu.path] = menu
        return menu.id

    async def walk(self, seeds: Sequence[MenuSeed], parent_id: Optional[int], level: int) -> None:
        for seed in sorted(seeds, key=lambda s: s.sort_order or 0):
            menu_id = await self.upsert(seed, parent_id, level)
            if seed.children:
                await self.walk(seed.children, menu_id, level + 1)


async def sync_menus(
    db: AsyncSession,
    seeds: Sequence[MenuSeed],
    mode: SyncMode = SyncMode.PATCH,
    remove_orphans: bool = False
) -> SyncResult:
    """
    Bring the menu table in line with `seeds`.

    With remove_orphans, menus that no seed matched are deleted together with
    their role bindings and user overrides. Kept menus hanging under a removed
    one become roots.
    """
    async with atomic(db):
        existing = (await db.execute(select(Menu))).scalars().all()
        syncer = _Syncer(db, mode, existing)
        await syncer.walk(seeds, None, 1)

        if remove_orphans:
            orphans = [menu for menu in existing if menu.id not in syncer.seen]
            if orphans:
                orphan_ids = [menu.id for menu in orphans]
                await db.flush()
                await db.execute(
                    update(Menu)
                    .where(or_(Menu.id.in_(orphan_ids), Menu.parent_id.in_(orphan_ids)))
                    .values(parent_id=None)
                )
                await db.execute(delete(role_menus).where(role_menus.c.menu_id.in_(orphan_ids)))
                await db.execute(delete(user_menus).where(user_menus.c.menu_id.in_(orphan_ids)))
                await db.execute(
                    delete(Menu)
                    .where(Menu.id.in_(orphan_ids))
                )
                syncer.result.removed = [menu.name for menu in orphans]

    result = syncer.result
    log.info(
        f"Menu sync done (mode={mode.value}): inserted={len(result.inserted)} "
        f"updated={len(result.updated)} skipped={len(result.skipped)} removed={len(result.removed)}"
    )
    return result
