"""
Menu catalog, role-menu bindings and per-user menu overrides.
"""
import enum
from typing import Any, Dict
from sqlalchemy import (
    String, ForeignKey, Table, Column, Boolean, Integer, Text, JSON, Enum as SQLEnum,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


class MenuType(str, enum.Enum):
    """Kind of navigable unit."""
    MENU = "menu"
    PAGE = "page"
    BUTTON = "button"


class PermissionType(str, enum.Enum):
    """User override on a single menu."""
    GRANT = "grant"
    DENY = "deny"


# Role-Menu relationship, replaced wholesale on every assignment
role_menus = Table(
    "role_menus",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("menu_id", Integer, ForeignKey("menus.id", ondelete="CASCADE"), primary_key=True),
)

# User-specific overrides, one row per (user, menu)
user_menus = Table(
    "user_menus",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("menu_id", Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False),
    Column("permission_type", SQLEnum(PermissionType, values_callable=lambda e: [m.value for m in e]), nullable=False),
    UniqueConstraint("user_id", "menu_id", name="uq_user_menus_user_menu"),
)


class Menu(Base, TimestampMixin):
    """
    Menu node: a page, sub-menu or button in the navigation catalog.

    Nodes form a tree through parent_id. The parent graph must stay acyclic,
    which the menu service checks before any structural change.
    """
    __tablename__ = "menus"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Machine key and display title
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)

    # Routing / rendering hints
    path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    component: Mapped[str | None] = mapped_column(String(255), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    redirect: Mapped[str | None] = mapped_column(String(255), nullable=True)
    permission_code: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    meta: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Structure
    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("menus.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)  # depth at creation time

    menu_type: Mapped[MenuType] = mapped_column(
        SQLEnum(MenuType, values_callable=lambda e: [m.value for m in e]),
        default=MenuType.MENU,
        nullable=False
    )
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Menu(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
