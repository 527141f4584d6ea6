"""
Role catalog and organization-scoped role assignments.

Roles are global definitions. A role only applies to a user through a
(user, organization) assignment row in user_org_roles.
"""
from sqlalchemy import String, ForeignKey, Table, Column, Boolean, Integer, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


# User-Organization-Role relationship (users hold roles within specific organizations).
# For a fixed (user_id, org_id) the rows are the complete set of roles held there.
user_org_roles = Table(
    "user_org_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("org_id", Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


class Role(Base, TimestampMixin):
    """
    Role model, a named bundle of menu permissions.

    Examples: admin, teacher, student, editor
    """
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Stable identifier, normalized and unique (case-insensitive)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # System roles cannot be deleted and keep their name and code
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, code={self.code!r}, system={self.is_system})>"
