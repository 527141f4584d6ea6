"""
Tests for role assignment and menu permission resolution.
"""
import pytest
from fastapi import APIRouter, Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.database.engine import get_db
from app.features.permissions.dependencies import require_menu_permission
from app.features.permissions.schemas import PermissionSource
from app.features.permissions.service import check_permission, check_permission_by_code, decide
from app.features.menus.models import PermissionType
from app.features.roles.service import create_role
from app.main import app


@pytest.fixture
async def setup(api):
    """Org O1 with member U1, menus M1 (under root) and M2, role editor bound to M1."""
    o1 = await api.org("O1")
    u1 = await api.user("u1")
    await api.link(u1, [o1], primary_org_id=o1)
    root = await api.menu("content", sort_order=1, permission_code="content:view")
    m1 = await api.menu("articles", parent_id=root, sort_order=1, permission_code="content:articles")
    m2 = await api.menu("settings", sort_order=2)
    editor = await api.role("editor")
    await api.bind_menus(editor, [root, m1])
    return {"o1": o1, "u1": u1, "root": root, "m1": m1, "m2": m2, "editor": editor}


@pytest.fixture
async def admin_role(db):
    role = await create_role(db, {"code": "admin", "name": "Administrator", "is_system": True})
    return role.id


async def set_override(client, user_id, menu_id, permission_type):
    resp = await client.put(
        f"/permissions/users/{user_id}/menus/{menu_id}/permission",
        json={"permission_type": permission_type},
    )
    assert resp.status_code == 200, resp.text


async def permissions_of(client, user_id, **params):
    resp = await client.get(f"/permissions/users/{user_id}/permissions", params=params)
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestDecide:
    @pytest.mark.parametrize("is_admin, override, via_role, expected", [
        (True, PermissionType.DENY, False, (True, PermissionSource.ADMIN)),
        (False, PermissionType.DENY, True, (False, PermissionSource.DENY)),
        (False, PermissionType.GRANT, False, (True, PermissionSource.USER)),
        (False, None, True, (True, PermissionSource.ROLE)),
        (False, None, False, (False, PermissionSource.NONE)),
    ])
    def test_precedence(self, is_admin, override, via_role, expected):
        assert decide(is_admin, override, via_role) == expected


class TestRoleAssignment:
    async def test_assign_and_read(self, api, client, setup):
        resp = await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        assert resp.status_code == 200
        assert [r["code"] for r in resp.json()["roles"]] == ["editor"]

    async def test_replace_all_is_idempotent(self, api, client, setup):
        viewer = await api.role("viewer")
        for _ in range(2):
            resp = await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"], viewer])
            assert resp.status_code == 200
        roles = (await client.get(f"/permissions/users/{setup['u1']}/roles")).json()["roles"]
        assert sorted(r["code"] for r in roles) == ["editor", "viewer"]

    async def test_empty_list_clears(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        resp = await api.assign_roles(setup["u1"], setup["o1"], [])
        assert resp.status_code == 200
        assert resp.json()["roles"] == []

    async def test_defaults_to_primary_org(self, api, setup):
        resp = await api.assign_roles(setup["u1"], None, [setup["editor"]])
        assert resp.status_code == 200
        assert resp.json()["org_id"] == setup["o1"]

    async def test_no_primary_org(self, api, setup):
        u2 = await api.user("u2")
        resp = await api.assign_roles(u2, None, [setup["editor"]])
        assert resp.status_code == 400
        assert resp.json()["detail"] == "user has no primary organization"

    async def test_missing_role_ids(self, client, setup):
        resp = await client.put(f"/permissions/users/{setup['u1']}/roles", json={"org_id": setup["o1"]})
        assert resp.status_code == 400

    async def test_role_ids_must_be_numeric(self, client, setup):
        resp = await client.put(
            f"/permissions/users/{setup['u1']}/roles",
            json={"org_id": setup["o1"], "role_ids": ["abc"]},
        )
        assert resp.status_code == 400

    async def test_unknown_role_keeps_previous_set(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        resp = await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"], 999])
        assert resp.status_code == 404
        roles = (await client.get(f"/permissions/users/{setup['u1']}/roles")).json()["roles"]
        assert [r["code"] for r in roles] == ["editor"]

    async def test_non_member(self, api, setup):
        o2 = await api.org("O2")
        resp = await api.assign_roles(setup["u1"], o2, [setup["editor"]])
        assert resp.status_code == 404

    async def test_disabled_roles_are_hidden(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        await client.put(f"/roles/{setup['editor']}", json={"is_disabled": True})
        roles = (await client.get(f"/permissions/users/{setup['u1']}/roles")).json()["roles"]
        assert roles == []


class TestResolution:
    async def test_role_grant_roundtrip(self, api, client, setup):
        """editor bound to M1, assigned then removed: M1 granted, then denied."""
        u1, o1, m1 = setup["u1"], setup["o1"], setup["m1"]
        await api.assign_roles(u1, o1, [setup["editor"]])
        check = await api.check(u1, m1, o1)
        assert check == {"has_permission": True, "source": "role", "org_id": o1}

        await api.assign_roles(u1, o1, [])
        check = await api.check(u1, m1, o1)
        assert check["has_permission"] is False
        assert check["source"] == "none"

    async def test_flat_list_covers_enabled_menus(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        disabled = await api.menu("legacy", is_disabled=True)

        body = await permissions_of(client, setup["u1"])
        assert body["org_id"] == setup["o1"]
        assert body["is_admin"] is False
        decisions = {p["menu_id"]: (p["has_permission"], p["permission_source"]) for p in body["permissions"]}
        assert decisions == {
            setup["root"]: (True, "role"),
            setup["m1"]: (True, "role"),
            setup["m2"]: (False, "none"),
        }
        assert disabled not in decisions

    async def test_deny_beats_role(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        await set_override(client, setup["u1"], setup["m1"], "deny")
        check = await api.check(setup["u1"], setup["m1"])
        assert (check["has_permission"], check["source"]) == (False, "deny")

    async def test_grant_without_role(self, api, client, setup):
        await set_override(client, setup["u1"], setup["m2"], "grant")
        check = await api.check(setup["u1"], setup["m2"])
        assert (check["has_permission"], check["source"]) == (True, "user")

    async def test_override_upsert_and_removal(self, api, client, setup):
        u1, m2 = setup["u1"], setup["m2"]
        await set_override(client, u1, m2, "grant")
        await set_override(client, u1, m2, "deny")
        assert (await api.check(u1, m2))["source"] == "deny"

        resp = await client.delete(f"/permissions/users/{u1}/menus/{m2}/permission")
        assert resp.json()["removed"] is True
        assert (await api.check(u1, m2))["source"] == "none"

        resp = await client.delete(f"/permissions/users/{u1}/menus/{m2}/permission")
        assert resp.json()["removed"] is False

    async def test_override_for_unknown_menu(self, client, setup):
        resp = await client.put(
            f"/permissions/users/{setup['u1']}/menus/999/permission",
            json={"permission_type": "grant"},
        )
        assert resp.status_code == 404

    async def test_invalid_override_type(self, client, setup):
        resp = await client.put(
            f"/permissions/users/{setup['u1']}/menus/{setup['m1']}/permission",
            json={"permission_type": "maybe"},
        )
        assert resp.status_code == 400

    async def test_role_grant_is_scoped_to_org(self, api, client, setup):
        o2 = await api.org("O2")
        await api.link(setup["u1"], [o2])
        await api.assign_roles(setup["u1"], o2, [setup["editor"]])

        assert (await api.check(setup["u1"], setup["m1"], o2))["has_permission"] is True
        assert (await api.check(setup["u1"], setup["m1"], setup["o1"]))["has_permission"] is False

    async def test_disabled_role_keeps_its_bindings(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        await client.put(f"/roles/{setup['editor']}", json={"is_disabled": True})
        check = await api.check(setup["u1"], setup["m1"])
        assert (check["has_permission"], check["source"]) == (True, "role")

    async def test_membership_without_primary(self, api, client, db):
        """A user linked to organizations but with no primary one resolves in the lowest org id."""
        o1, o2 = await api.org("O1"), await api.org("O2")
        u1 = await api.user("u1")
        await api.link(u1, [o2, o1])
        m1 = await api.menu("articles")
        editor = await api.role("editor")
        await api.bind_menus(editor, [m1])
        await api.assign_roles(u1, o1, [editor])

        check = await api.check(u1, m1)
        assert check == {"has_permission": True, "source": "role", "org_id": o1}
        body = await permissions_of(client, u1)
        assert body["org_id"] == o1
        assert [p["menu_id"] for p in body["permissions"] if p["has_permission"]] == [m1]
        assert await check_permission(db, u1, m1) is True

        # The strict lookup still reports no primary organization
        assert (await client.get(f"/organizations/users/{u1}/primary")).json()["org_id"] is None

    async def test_primary_wins_over_lower_org_id(self, api, client, setup):
        o2 = await api.org("O2")
        await api.link(setup["u1"], [o2])
        await api.assign_roles(setup["u1"], o2, [setup["editor"]])
        assert (await api.check(setup["u1"], setup["m1"]))["org_id"] == setup["o1"]
        assert (await api.check(setup["u1"], setup["m1"]))["has_permission"] is False

    async def test_check_by_code(self, api, db, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        assert await check_permission_by_code(db, setup["u1"], "content:articles") is True
        assert await check_permission_by_code(db, setup["u1"], "content:missing") is False
        u2 = await api.user("u2")
        assert await check_permission_by_code(db, u2, "content:articles") is False

    async def test_disabled_menu_is_never_granted(self, api, client, setup):
        await set_override(client, setup["u1"], setup["m2"], "grant")
        await client.put(f"/menus/{setup['m2']}", json={"is_disabled": True})
        assert (await api.check(setup["u1"], setup["m2"]))["has_permission"] is False

    async def test_no_org_context(self, api, client, setup):
        u2 = await api.user("u2")
        await set_override(client, u2, setup["m2"], "grant")
        body = await permissions_of(client, u2)
        assert body["org_id"] is None
        assert body["permissions"] == []
        assert (await api.check(u2, setup["m2"]))["has_permission"] is False
        assert (await client.get(f"/permissions/users/{u2}/menus")).json() == []

    async def test_not_a_member(self, api, client, setup):
        o2 = await api.org("O2")
        await set_override(client, setup["u1"], setup["m2"], "grant")
        assert (await permissions_of(client, setup["u1"], org_id=o2))["permissions"] == []
        assert (await api.check(setup["u1"], setup["m2"], o2))["has_permission"] is False

    async def test_org_from_header(self, api, client, setup):
        o2 = await api.org("O2")
        await api.link(setup["u1"], [o2])
        await api.assign_roles(setup["u1"], o2, [setup["editor"]])
        resp = await client.get(
            f"/permissions/users/{setup['u1']}/menus/{setup['m1']}/permission",
            headers={"X-Org-Id": str(o2)},
        )
        assert resp.json()["has_permission"] is True
        assert resp.json()["org_id"] == o2


class TestAdminBypass:
    async def test_admin_overrides_deny(self, api, client, setup, admin_role):
        await api.assign_roles(setup["u1"], setup["o1"], [admin_role])
        await set_override(client, setup["u1"], setup["m2"], "deny")

        body = await permissions_of(client, setup["u1"])
        assert body["is_admin"] is True
        assert all(p["has_permission"] and p["permission_source"] == "admin" for p in body["permissions"])
        assert len(body["permissions"]) == 3

    async def test_admin_still_needs_enabled_menu(self, api, client, setup, admin_role):
        await api.assign_roles(setup["u1"], setup["o1"], [admin_role])
        await client.put(f"/menus/{setup['m2']}", json={"is_disabled": True})
        assert (await api.check(setup["u1"], setup["m2"]))["has_permission"] is False
        assert (await api.check(setup["u1"], 999))["has_permission"] is False

    async def test_admin_only_in_its_org(self, api, client, setup, admin_role):
        o2 = await api.org("O2")
        await api.link(setup["u1"], [o2])
        await api.assign_roles(setup["u1"], o2, [admin_role])
        assert (await api.check(setup["u1"], setup["m2"], setup["o1"]))["has_permission"] is False
        assert (await api.check(setup["u1"], setup["m2"], o2))["source"] == "admin"

    async def test_disabled_admin_role_has_no_bypass(self, api, client, setup, admin_role):
        await api.assign_roles(setup["u1"], setup["o1"], [admin_role])
        await client.put(f"/roles/{admin_role}", json={"is_disabled": True})
        body = await permissions_of(client, setup["u1"])
        assert body["is_admin"] is False
        assert not any(p["has_permission"] for p in body["permissions"])


class TestMenuTree:
    async def test_tree_of_granted_menus(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        tree = (await client.get(f"/permissions/users/{setup['u1']}/menus")).json()
        assert [node["menu_id"] for node in tree] == [setup["root"]]
        assert [child["menu_id"] for child in tree[0]["children"]] == [setup["m1"]]

    async def test_child_of_denied_parent_becomes_root(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        await set_override(client, setup["u1"], setup["root"], "deny")
        tree = (await client.get(f"/permissions/users/{setup['u1']}/menus")).json()
        assert [node["menu_id"] for node in tree] == [setup["m1"]]

    async def test_current_user(self, api, client, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        resp = await client.get("/permissions/current-user/menus", headers={"X-User-Id": str(setup["u1"])})
        assert resp.status_code == 200
        assert [node["name"] for node in resp.json()] == ["content"]

    @pytest.mark.parametrize("headers", [{}, {"X-User-Id": "abc"}])
    async def test_current_user_requires_identity(self, client, headers):
        resp = await client.get("/permissions/current-user/menus", headers=headers)
        assert resp.status_code == 401


class TestRequireMenuPermission:
    @pytest.fixture
    async def guarded(self, client):
        router = APIRouter()

        @router.get("/articles")
        async def list_articles(user_id: int = Depends(require_menu_permission("content:articles"))):
            return {"user_id": user_id}

        guarded_app = FastAPI()
        guarded_app.include_router(router)
        guarded_app.dependency_overrides[get_db] = app.dependency_overrides[get_db]
        async with AsyncClient(transport=ASGITransport(app=guarded_app), base_url="http://test") as ac:
            yield ac

    async def test_granted(self, api, guarded, setup):
        await api.assign_roles(setup["u1"], setup["o1"], [setup["editor"]])
        resp = await guarded.get("/articles", headers={"X-User-Id": str(setup["u1"])})
        assert resp.status_code == 200
        assert resp.json() == {"user_id": setup["u1"]}

    async def test_denied(self, guarded, setup):
        resp = await guarded.get("/articles", headers={"X-User-Id": str(setup["u1"])})
        assert resp.status_code == 403

    async def test_anonymous(self, guarded, setup):
        resp = await guarded.get("/articles")
        assert resp.status_code == 401
