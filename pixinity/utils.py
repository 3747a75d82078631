import os
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends

from .errors import AuthenticationRequired, AuthorizationDenied
from .models import User, UserRole
from .users import current_active_user, current_optional_user


def now_tz() -> datetime:
    return datetime.now(timezone.utc)


def aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Dependency to get the currently authenticated user, if any
async def get_current_user(user: Optional[User] = Depends(current_optional_user)) -> Optional[User]:
    return user


# Dependency to enforce authentication
async def require_authenticated_user(user: Optional[User] = Depends(current_optional_user)) -> User:
    if not user:
        raise AuthenticationRequired()
    return user


async def require_admin_user(user: User = Depends(require_authenticated_user)) -> User:
    if not UserRole(user.role).is_admin:
        raise AuthorizationDenied("Admin access required")
    return user


def clean_filename(name: str) -> str:
    name = os.path.basename(name or "")
    name = re.sub(r"[^\w\-_.]", "_", name)
    return name


def slugify(s: str) -> str:
    s = (s or "").strip().lower()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return re.sub(r"-+", "-", s).strip("-")


def has_more(limit: int, offset: int, total: int) -> bool:
    """``hasMore`` for an offset page."""
    return offset + limit < total


__all__ = [
    "now_tz",
    "aware",
    "get_current_user",
    "require_authenticated_user",
    "require_admin_user",
    "clean_filename",
    "slugify",
    "has_more",
    "current_active_user",
]
