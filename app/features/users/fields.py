"""
Optional user columns.

Which optional columns (email, real name, phone) the org user listing
exposes and searches is decided once at startup from USER_OPTIONAL_FIELDS
and the columns the User model really has. Nothing probes the database
schema per request.
"""
from dataclasses import dataclass
from typing import Optional

from app.core import config
from app.features.users.models import User, OPTIONAL_USER_COLUMNS
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class UserFieldConfig:
    optional: tuple[str, ...]

    @property
    def searchable(self) -> tuple[str, ...]:
        return ("username",) + self.optional

    def columns(self) -> list:
        return [getattr(User, name) for name in self.optional]


_user_fields: Optional[UserFieldConfig] = None


def init_user_fields(requested: Optional[list[str]] = None) -> UserFieldConfig:
    """Build the field config. Safe to call more than once."""
    global _user_fields
    if requested is None:
        requested = config.USER_OPTIONAL_FIELDS

    available = set(User.__table__.columns.keys())
    unknown = [name for name in requested if name not in OPTIONAL_USER_COLUMNS or name not in available]
    if unknown:
        log.warning(f"Ignoring unknown optional user fields: {unknown}")

    _user_fields = UserFieldConfig(
        optional=tuple(name for name in requested if name not in unknown)
    )
    log.info(f"Optional user fields: {list(_user_fields.optional)}")
    return _user_fields


def get_user_fields() -> UserFieldConfig:
    if _user_fields is None:
        raise RuntimeError("User fields not initialised, call init_user_fields() at startup")
    return _user_fields


def reset_user_fields() -> None:
    """Forget the current config; the next init_user_fields() rebuilds it."""
    global _user_fields
    _user_fields = None
