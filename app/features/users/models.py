"""
User model.

Authentication lives outside this service; users only exist here so that
memberships and role assignments can reference them.
"""
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


# Columns that deployments may choose to expose, see app.features.users.fields
OPTIONAL_USER_COLUMNS = ("email", "real_name", "phone")


class User(Base, TimestampMixin):
    """
    User model representing a platform account.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    # Optional fields
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    real_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username!r})>"
