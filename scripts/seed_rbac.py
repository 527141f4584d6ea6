"""
Seed script to install the default roles and menu tree.

Run this script after database initialization to create:
- The system admin role
- The default menu tree (see app.features.menus.defaults)

Usage:
    uv run python -m scripts.seed_rbac
    uv run python -m scripts.seed_rbac --mode force --remove-orphans
"""
import argparse
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.menus.defaults import MENU_TREE
from app.features.menus.sync import SyncMode, sync_menus
from app.features.roles.service import create_role, get_role_by_code
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_ROLES = {
    config.ADMIN_ROLE_CODE: {
        "name": "Administrator",
        "description": "Every enabled menu in the organizations where it is held",
        "is_system": True,
    },
}


async def seed_roles(db: AsyncSession) -> None:
    """Create the default roles that do not exist yet."""
    log.info("Creating default roles...")
    for code, role_config in DEFAULT_ROLES.items():
        if await get_role_by_code(db, code) is not None:
            log.debug(f"Role '{code}' already exists, skipping")
            continue
        await create_role(db, {"code": code, **role_config})
        log.info(f"Created role: {code}")


async def main(mode: SyncMode, remove_orphans: bool):
    """Main function to seed roles and menus."""
    log.info("Starting RBAC seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        await seed_roles(db)
        result = await sync_menus(db, MENU_TREE, mode=mode, remove_orphans=remove_orphans)
        log.info("RBAC seeding completed successfully!")
        for label, names in (
            ("inserted", result.inserted),
            ("updated", result.updated),
            ("removed", result.removed),
        ):
            if names:
                log.info(f"  {label}: {', '.join(names)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--mode", choices=[m.value for m in SyncMode], default=SyncMode.PATCH.value)
    parser.add_argument("--remove-orphans", action="store_true")
    args = parser.parse_args()
    asyncio.run(main(SyncMode(args.mode), args.remove_orphans))
