"""
Shared fixtures: a fresh SQLite database per test, the FastAPI app bound to
it, and a small helper for building fixtures through the HTTP API.
"""
import os

# Settings are read at import time
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-unused.db")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database.base import Base
from app.core.database.engine import get_db
from app.features.menus.models import Menu, role_menus, user_menus  # noqa: F401
from app.features.organizations.models import Organization, user_organizations  # noqa: F401
from app.features.roles.models import Role, user_org_roles  # noqa: F401
from app.features.users.fields import init_user_fields, reset_user_fields
from app.features.users.models import User  # noqa: F401
from app.main import app


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    """A session for calling services directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    init_user_fields()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    reset_user_fields()


class Api:
    """Shortcuts for creating records through the API."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def user(self, username: str, **fields) -> int:
        resp = await self.client.post("/users/", json={"username": username, **fields})
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def org(self, name: str, parent_id: int | None = None) -> int:
        resp = await self.client.post("/organizations/", json={"name": name, "parent_id": parent_id})
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def role(self, code: str, name: str | None = None, **fields) -> int:
        resp = await self.client.post("/roles/", json={"code": code, "name": name or code, **fields})
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def menu(self, name: str, parent_id: int | None = None, **fields) -> int:
        body = {"name": name, "title": fields.pop("title", name.title()), "parent_id": parent_id, **fields}
        resp = await self.client.post("/menus/", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def link(self, user_id: int, org_ids: list[int], primary_org_id: int | None = None) -> None:
        resp = await self.client.post(
            f"/organizations/users/{user_id}/orgs",
            json={"org_ids": org_ids, "primary_org_id": primary_org_id},
        )
        assert resp.status_code == 200, resp.text

    async def assign_roles(self, user_id: int, org_id: int | None, role_ids: list[int]):
        return await self.client.put(
            f"/permissions/users/{user_id}/roles",
            json={"org_id": org_id, "role_ids": role_ids},
        )

    async def bind_menus(self, role_id: int, menu_ids: list[int]) -> None:
        resp = await self.client.put(f"/roles/{role_id}/menus", json={"menu_ids": menu_ids})
        assert resp.status_code == 200, resp.text

    async def check(self, user_id: int, menu_id: int, org_id: int | None = None) -> dict:
        params = {"org_id": org_id} if org_id is not None else {}
        resp = await self.client.get(f"/permissions/users/{user_id}/menus/{menu_id}/permission", params=params)
        assert resp.status_code == 200, resp.text
        return resp.json()


@pytest.fixture
def api(client):
    return Api(client)
