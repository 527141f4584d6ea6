"""
Default menu tree installed by scripts/seed_rbac.py.
"""
from app.features.menus.models import MenuType
from app.features.menus.sync import MenuSeed


MENU_TREE = [
    MenuSeed(
        name="dashboard",
        title="Dashboard",
        path="/dashboard",
        component="dashboard",
        icon="dashboard",
        menu_type=MenuType.PAGE,
        is_system=True,
        sort_order=10,
        meta={"keepAlive": False, "requireAuth": True},
    ),
    MenuSeed(
        name="learning",
        title="Learning Center",
        path="/learning",
        icon="book",
        sort_order=20,
        meta={"requireAuth": True},
        permission_code="learning:view",
        children=[
            MenuSeed(
                name="learning-courses",
                title="Courses",
                path="/learning/courses",
                component="course-list",
                menu_type=MenuType.PAGE,
                sort_order=1,
                permission_code="learning:courses",
            ),
            MenuSeed(
                name="learning-progress",
                title="My Progress",
                path="/learning/progress",
                component="learning-progress",
                menu_type=MenuType.PAGE,
                sort_order=2,
                permission_code="learning:progress",
            ),
        ],
    ),
    MenuSeed(
        name="system",
        title="System",
        path="/system",
        icon="setting",
        is_system=True,
        sort_order=90,
        meta={"requireAuth": True},
        permission_code="system:view",
        children=[
            MenuSeed(
                name="system-users",
                title="Users",
                path="/system/users",
                component="user-manage",
                menu_type=MenuType.PAGE,
                is_system=True,
                sort_order=1,
                permission_code="system:user",
                children=[
                    MenuSeed(
                        name="system-users-create",
                        title="Create user",
                        menu_type=MenuType.BUTTON,
                        sort_order=1,
                        permission_code="system:user:create",
                    ),
                ],
            ),
            MenuSeed(
                name="system-organizations",
                title="Organizations",
                path="/system/organizations",
                component="org-manage",
                menu_type=MenuType.PAGE,
                is_system=True,
                sort_order=2,
                permission_code="system:org",
            ),
            MenuSeed(
                name="system-roles",
                title="Roles",
                path="/system/roles",
                component="role-manage",
                menu_type=MenuType.PAGE,
                is_system=True,
                sort_order=3,
                permission_code="system:role",
            ),
            MenuSeed(
                name="system-menus",
                title="Menus",
                path="/system/menus",
                component="menu-manage",
                menu_type=MenuType.PAGE,
                is_system=True,
                sort_order=4,
                permission_code="system:menu",
            ),
        ],
    ),
]
