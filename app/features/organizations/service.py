"""
Organization membership store.

A user belongs to any number of organizations and at most one membership
is primary. Every mutation that touches the primary flag clears all of the
user's flags and sets the target in the same transaction.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple
from sqlalchemy import select, update, delete, insert, func, or_, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import atomic
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.features.organizations.models import Organization, user_organizations
from app.features.roles.models import Role, user_org_roles
from app.features.users.fields import get_user_fields
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def _membership(user_id: int, org_id: int):
    return and_(user_organizations.c.user_id == user_id, user_organizations.c.org_id == org_id)


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def _existing_ids(db: AsyncSession, column, ids: Sequence[int]) -> List[int]:
    """The subset of ids present in column, in the order given."""
    if not ids:
        return []
    result = await db.execute(select(column).where(column.in_(ids)))
    found = set(result.scalars().all())
    return [i for i in dict.fromkeys(ids) if i in found]


async def _is_member(db: AsyncSession, user_id: int, org_id: int) -> bool:
    return bool(await db.scalar(select(exists().where(_membership(user_id, org_id)))))


async def _insert_membership(db: AsyncSession, user_id: int, org_id: int) -> bool:
    """Insert a non-primary membership unless it already exists."""
    if await _is_member(db, user_id, org_id):
        return False
    await db.execute(insert(user_organizations).values(user_id=user_id, org_id=org_id, is_primary=False))
    return True


async def _make_primary(db: AsyncSession, user_id: int, org_id: int) -> None:
    await db.execute(
        update(user_organizations)
        .where(user_organizations.c.user_id == user_id)
        .values(is_primary=False)
    )
    await db.execute(
        update(user_organizations)
        .where(_membership(user_id, org_id))
        .values(is_primary=True)
    )


# ============================================================================
# Organizations
# ============================================================================

async def get_organization(db: AsyncSession, org_id: int) -> Organization:
    org = await db.get(Organization, org_id)
    if org is None:
        raise NotFoundError(f"Organization {org_id} not found")
    return org


async def list_organizations(db: AsyncSession) -> List[Organization]:
    result = await db.execute(select(Organization).order_by(Organization.id))
    return list(result.scalars().all())


async def create_organization(db: AsyncSession, data: Dict[str, Any]) -> Organization:
    async with atomic(db):
        if data.get("parent_id") is not None:
            await get_organization(db, data["parent_id"])
        org = Organization(**data)
        db.add(org)

    await db.refresh(org)
    log.info(f"Organization {org.id} ({org.name}) created under {org.parent_id}")
    return org


async def get_descendant_ids(db: AsyncSession, org_id: int) -> List[int]:
    """org_id and every organization below it, via a recursive CTE."""
    tree = (
        select(Organization.id)
        .where(Organization.id == org_id)
        .cte("org_tree", recursive=True)
    )
    # UNION rather than UNION ALL so a corrupted parent loop still terminates
    tree = tree.union(
        select(Organization.id).join(tree, Organization.parent_id == tree.c.id)
    )
    result = await db.execute(select(tree.c.id).order_by(tree.c.id))
    return list(result.scalars().all())


# ============================================================================
# Memberships
# ============================================================================

async def get_primary_org_id(db: AsyncSession, user_id: int) -> Optional[int]:
    """The user's primary organization, or None. Non-primary memberships are never used as a fallback."""
    return await db.scalar(
        select(user_organizations.c.org_id).where(
            user_organizations.c.user_id == user_id,
            user_organizations.c.is_primary.is_(True),
        )
    )


async def get_context_org_id(db: AsyncSession, user_id: int) -> Optional[int]:
    """
    Organization used when a request names none: the primary membership,
    else the membership with the lowest org id. None only without any membership.
    """
    return await db.scalar(
        select(user_organizations.c.org_id)
        .where(user_organizations.c.user_id == user_id)
        .order_by(user_organizations.c.is_primary.desc(), user_organizations.c.org_id.asc())
        .limit(1)
    )


async def is_member(db: AsyncSession, user_id: int, org_id: int) -> bool:
    return await _is_member(db, user_id, org_id)


async def list_user_orgs(db: AsyncSession, user_id: int) -> List[Dict[str, Any]]:
    await _get_user(db, user_id)
    result = await db.execute(
        select(
            Organization.id.label("org_id"),
            Organization.name.label("org_name"),
            Organization.parent_id,
            user_organizations.c.is_primary,
        )
        .join(user_organizations, user_organizations.c.org_id == Organization.id)
        .where(user_organizations.c.user_id == user_id)
        .order_by(user_organizations.c.is_primary.desc(), Organization.id)
    )
    return [dict(row._mapping) for row in result.all()]


async def link_user(db: AsyncSession, user_id: int, org_id: int) -> bool:
    """Add a non-primary membership. Linking twice is a no-op."""
    async with atomic(db):
        await _get_user(db, user_id)
        await get_organization(db, org_id)
        created = await _insert_membership(db, user_id, org_id)

    log.info(f"User {user_id} linked to org {org_id} (new={created})")
    return created


async def link_user_orgs(
    db: AsyncSession,
    user_id: int,
    org_ids: Sequence[int],
    primary_org_id: Optional[int] = None
) -> List[int]:
    """
    Link a user to several organizations at once.

    Unknown organizations are skipped; if none of them exists the request
    is rejected. primary_org_id, when given, must be one of the linked ids.
    Returns the linked organization ids.
    """
    async with atomic(db):
        await _get_user(db, user_id)
        valid = await _existing_ids(db, Organization.id, org_ids)
        if not valid:
            raise BadRequestError("None of the given organizations exist")
        if primary_org_id is not None and primary_org_id not in valid:
            raise BadRequestError(f"Primary organization {primary_org_id} is not among the linked organizations")

        for org_id in valid:
            await _insert_membership(db, user_id, org_id)
        if primary_org_id is not None:
            await _make_primary(db, user_id, primary_org_id)

    log.info(f"User {user_id} linked to orgs {valid}, primary={primary_org_id}")
    return valid


async def add_users(db: AsyncSession, org_id: int, user_ids: Sequence[int]) -> int:
    """Bulk-add users to an organization. Returns how many memberships were created."""
    async with atomic(db):
        await get_organization(db, org_id)
        valid = await _existing_ids(db, User.id, user_ids)
        if not valid:
            raise BadRequestError("None of the given users exist")

        added = 0
        for user_id in valid:
            if await _insert_membership(db, user_id, org_id):
                added += 1

    log.info(f"Added {added} users to org {org_id}")
    return added


async def set_primary(db: AsyncSession, user_id: int, org_id: int) -> None:
    """Make org_id the user's only primary organization, linking it first if needed."""
    async with atomic(db):
        await _get_user(db, user_id)
        await get_organization(db, org_id)
        await _insert_membership(db, user_id, org_id)
        await _make_primary(db, user_id, org_id)

    log.info(f"User {user_id} primary org set to {org_id}")


async def move_user(db: AsyncSession, user_id: int, from_org_id: int, to_org_id: int) -> None:
    """
    Move a user between organizations.

    The target becomes the primary organization, then the source
    membership and the roles held there are removed.
    """
    if from_org_id == to_org_id:
        raise BadRequestError("Source and target organization are the same")

    async with atomic(db):
        await _get_user(db, user_id)
        await get_organization(db, from_org_id)
        await get_organization(db, to_org_id)

        # Missing source membership is fine, the deletes below are no-ops then
        await _insert_membership(db, user_id, to_org_id)
        await _make_primary(db, user_id, to_org_id)
        await db.execute(
            delete(user_org_roles).where(
                user_org_roles.c.user_id == user_id,
                user_org_roles.c.org_id == from_org_id,
            )
        )
        await db.execute(delete(user_organizations).where(_membership(user_id, from_org_id)))

    log.info(f"User {user_id} moved from org {from_org_id} to org {to_org_id}")


async def remove_user(db: AsyncSession, org_id: int, user_id: int) -> None:
    """
    Remove a membership and the roles held through it.

    The primary membership cannot be removed until another organization
    has been made primary.
    """
    async with atomic(db):
        row = (await db.execute(
            select(user_organizations.c.is_primary).where(_membership(user_id, org_id))
        )).first()
        if row is None:
            raise NotFoundError(f"User {user_id} is not a member of organization {org_id}")
        if row.is_primary:
            log.info(f"Refused to remove primary membership of user {user_id} in org {org_id}")
            raise ConflictError("Cannot remove the user's primary organization, assign another primary first")

        await db.execute(
            delete(user_org_roles).where(
                user_org_roles.c.user_id == user_id,
                user_org_roles.c.org_id == org_id,
            )
        )
        await db.execute(delete(user_organizations).where(_membership(user_id, org_id)))

    log.info(f"User {user_id} removed from org {org_id}")


async def list_users(
    db: AsyncSession,
    org_id: int,
    search: Optional[str] = None,
    role_code: Optional[str] = None,
    include_descendants: bool = False,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Page through the members of an organization.

    With include_descendants the organization is expanded into its whole
    subtree first. search matches the username and the configured optional
    fields; role_code keeps users holding that role inside the scope.
    """
    await get_organization(db, org_id)
    fields = get_user_fields()
    limit = max(1, min(limit, config.MAX_PAGE_SIZE))
    page = max(1, page)

    org_ids = await get_descendant_ids(db, org_id) if include_descendants else [org_id]

    conditions = [
        User.id.in_(
            select(user_organizations.c.user_id).where(user_organizations.c.org_id.in_(org_ids))
        )
    ]
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(or_(*(getattr(User, name).ilike(pattern) for name in fields.searchable)))
    if role_code:
        conditions.append(
            exists()
            .where(
                user_org_roles.c.user_id == User.id,
                user_org_roles.c.org_id.in_(org_ids),
                user_org_roles.c.role_id == Role.id,
                func.lower(Role.code) == role_code.strip().lower(),
            )
        )

    total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
    result = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = list(result.scalars().all())
    user_ids = [user.id for user in users]

    role_codes: Dict[int, List[str]] = {user_id: [] for user_id in user_ids}
    primaries: Dict[int, int] = {}
    if user_ids:
        rows = await db.execute(
            select(user_org_roles.c.user_id, Role.code)
            .join(Role, Role.id == user_org_roles.c.role_id)
            .where(
                user_org_roles.c.user_id.in_(user_ids),
                user_org_roles.c.org_id.in_(org_ids),
            )
            .distinct()
            .order_by(user_org_roles.c.user_id, Role.code)
        )
        for user_id, code in rows.all():
            role_codes[user_id].append(code)

        rows = await db.execute(
            select(user_organizations.c.user_id, user_organizations.c.org_id).where(
                user_organizations.c.user_id.in_(user_ids),
                user_organizations.c.is_primary.is_(True),
            )
        )
        primaries = dict(rows.all())

    items = []
    for user in users:
        item = {"id": user.id, "username": user.username, "is_active": user.is_active}
        for name in fields.optional:
            item[name] = getattr(user, name)
        item["primary_org_id"] = primaries.get(user.id)
        item["role_codes"] = role_codes[user.id]
        items.append(item)

    return items, total or 0
