"""
Organization models.

Organizations form a tree through parent_id. Users belong to any number of
organizations through user_organizations, and at most one of those
memberships is flagged primary.
"""
from sqlalchemy import String, ForeignKey, Table, Column, Boolean, DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


# Association table for many-to-many relationship between users and organizations
user_organizations = Table(
    "user_organizations",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("org_id", Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    # At most one True per user_id, maintained by the membership service
    Column("is_primary", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()),
)


class Organization(Base, TimestampMixin):
    """
    Organization (tenant or department) a user can belong to.
    """
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Parent organization, used for "include descendants" expansion
    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
