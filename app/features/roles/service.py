"""
Role catalog and organization-scoped role assignment.
"""
import re
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, delete, insert, func, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import atomic
from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.features.menus.models import role_menus
from app.features.organizations.models import Organization, user_organizations
from app.features.organizations.service import get_primary_org_id
from app.features.roles.models import Role, user_org_roles
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

# Whitespace and CJK ideographs collapse into a single separator
_SEPARATOR_RUN = re.compile(r"[\s\u3400-\u4dbf\u4e00-\u9fff]+")
_INVALID_CHARS = re.compile(r"[^a-z0-9_]")
_UNDERSCORE_RUN = re.compile(r"_+")


def slugify_code(raw: str) -> str:
    """
    Normalise a role code.

    >>> slugify_code("  Content Editor ")
    'content_editor'
    >>> slugify_code("!!!")
    'role'
    """
    code = _SEPARATOR_RUN.sub("_", (raw or "").strip().lower())
    code = _INVALID_CHARS.sub("", code)
    code = _UNDERSCORE_RUN.sub("_", code).strip("_")
    return code or "role"


async def _ensure_code_free(db: AsyncSession, code: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(Role.id).where(func.lower(Role.code) == code.lower())
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"Role code '{code}' already exists")


# ============================================================================
# Catalog
# ============================================================================

async def get_role(db: AsyncSession, role_id: int) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise NotFoundError(f"Role {role_id} not found")
    return role


async def get_role_by_code(db: AsyncSession, code: str) -> Optional[Role]:
    result = await db.execute(select(Role).where(func.lower(Role.code) == code.lower()))
    return result.scalar_one_or_none()


async def list_roles(
    db: AsyncSession,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
    keyword: Optional[str] = None
) -> Tuple[List[Role], int]:
    """
    Page through roles, system roles first, then by sort_order and id.

    keyword matches name, code or description.
    """
    limit = max(1, min(limit, config.MAX_PAGE_SIZE))
    page = max(1, page)

    conditions = []
    if keyword:
        pattern = f"%{keyword.strip()}%"
        conditions.append(or_(
            Role.name.ilike(pattern),
            Role.code.ilike(pattern),
            Role.description.ilike(pattern),
        ))

    total = await db.scalar(select(func.count()).select_from(Role).where(*conditions))
    result = await db.execute(
        select(Role)
        .where(*conditions)
        .order_by(Role.is_system.desc(), Role.sort_order.asc(), Role.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def create_role(db: AsyncSession, data: Dict[str, Any]) -> Role:
    """
    Create a role.

    The code is required and normalised with slugify_code; it must be unique
    ignoring case. Without an explicit sort_order the role goes last.
    """
    data = dict(data)
    if not (data.get("code") or "").strip():
        raise BadRequestError("Role code is required")
    data["code"] = slugify_code(data["code"])

    async with atomic(db):
        await _ensure_code_free(db, data["code"])
        if data.get("sort_order") is None:
            current_max = await db.scalar(select(func.max(Role.sort_order)))
            data["sort_order"] = (current_max or 0) + 1

        role = Role(**data)
        db.add(role)

    await db.refresh(role)
    log.info(f"Role {role.id} ({role.code}) created")
    return role


async def update_role(db: AsyncSession, role_id: int, data: Dict[str, Any]) -> Role:
    """Update a role. Renaming a system role, by name or by code, is refused."""
    async with atomic(db):
        role = await get_role(db, role_id)

        if data.get("code") is not None:
            data = {**data, "code": slugify_code(data["code"])}

        if role.is_system and any(
            data.get(key) is not None and data[key] != getattr(role, key) for key in ("name", "code")
        ):
            raise ForbiddenError("The name and code of a system role cannot be changed")

        if data.get("code") is not None:
            await _ensure_code_free(db, data["code"], exclude_id=role_id)

        for key, value in data.items():
            if value is None and key in ("code", "name", "is_disabled", "sort_order"):
                continue
            setattr(role, key, value)

    await db.refresh(role)
    log.info(f"Role {role_id} updated: {sorted(data)}")
    return role


async def delete_role(db: AsyncSession, role_id: int) -> bool:
    """Delete a role that is neither a system role nor assigned to anybody."""
    async with atomic(db):
        role = await get_role(db, role_id)
        if role.is_system:
            raise ForbiddenError("System roles cannot be deleted")

        in_use = await db.scalar(select(exists().where(user_org_roles.c.role_id == role_id)))
        if in_use:
            raise ConflictError("Role is still assigned to users")

        await db.execute(delete(role_menus).where(role_menus.c.role_id == role_id))
        await db.delete(role)

    log.info(f"Role {role_id} deleted")
    return True


async def get_role_users(db: AsyncSession, role_id: int) -> List[Dict[str, Any]]:
    """Users holding the role, one row per organization they hold it in."""
    await get_role(db, role_id)
    result = await db.execute(
        select(
            User.id.label("user_id"),
            User.username,
            Organization.id.label("org_id"),
            Organization.name.label("org_name"),
            user_org_roles.c.assigned_at,
        )
        .select_from(user_org_roles)
        .join(User, User.id == user_org_roles.c.user_id)
        .join(Organization, Organization.id == user_org_roles.c.org_id)
        .where(user_org_roles.c.role_id == role_id)
        .order_by(User.id, Organization.id)
    )
    return [dict(row._mapping) for row in result.all()]


# ============================================================================
# Assignment
# ============================================================================

async def assign_roles_in_org(
    db: AsyncSession,
    user_id: int,
    org_id: Optional[int],
    role_ids: List[int]
) -> int:
    """
    Replace every role the user holds in one organization.

    Delete-then-insert inside one transaction; an empty list clears the
    scope. Without org_id the user's primary organization is used, and a user
    with no primary organization is an error rather than a silent no-op.

    Returns the organization the roles were assigned in.
    """
    role_ids = list(dict.fromkeys(role_ids))

    async with atomic(db):
        if await db.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        if org_id is None:
            org_id = await get_primary_org_id(db, user_id)
            if org_id is None:
                raise BadRequestError("user has no primary organization")
        elif await db.get(Organization, org_id) is None:
            raise NotFoundError(f"Organization {org_id} not found")

        membership = await db.execute(
            select(user_organizations.c.user_id).where(
                (user_organizations.c.user_id == user_id) & (user_organizations.c.org_id == org_id)
            )
        )
        if membership.first() is None:
            raise NotFoundError(f"User {user_id} is not a member of organization {org_id}")

        if role_ids:
            result = await db.execute(select(Role.id).where(Role.id.in_(role_ids)))
            missing = set(role_ids) - set(result.scalars().all())
            if missing:
                raise NotFoundError(f"Roles not found: {sorted(missing)}")

        await db.execute(
            delete(user_org_roles).where(
                (user_org_roles.c.user_id == user_id) & (user_org_roles.c.org_id == org_id)
            )
        )
        if role_ids:
            await db.execute(
                insert(user_org_roles),
                [{"user_id": user_id, "org_id": org_id, "role_id": role_id} for role_id in role_ids]
            )

    log.info(f"User {user_id} roles in org {org_id} set to {role_ids}")
    return org_id


async def get_roles_in_org(db: AsyncSession, user_id: int, org_id: int) -> List[Role]:
    """Enabled roles the user holds in the organization, by sort_order."""
    result = await db.execute(
        select(Role)
        .join(user_org_roles, user_org_roles.c.role_id == Role.id)
        .where(
            user_org_roles.c.user_id == user_id,
            user_org_roles.c.org_id == org_id,
            Role.is_disabled.is_(False),
        )
        .order_by(Role.sort_order.asc(), Role.id.asc())
    )
    return list(result.scalars().all())
