"""User administration. Authority comes from ``User.role`` alone."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi_users.password import PasswordHelper
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthorizationDenied, Conflict, NotFound, ValidationFailed
from pixinity.models import User, UserRole
from pixinity.schemas import AdminUserRead, AdminUserUpdate
from pixinity.settings.config import settings
from pixinity.utils import has_more, now_tz

logger = logging.getLogger(__name__)

ADMIN_ROLES = (UserRole.admin, UserRole.super_admin)

USER_SORTS = {
    "newest": lambda: (User.created_at.desc(), User.id.desc()),
    "oldest": lambda: (User.created_at.asc(), User.id.asc()),
    "username_asc": lambda: (User.username.asc(),),
    "username_desc": lambda: (User.username.desc(),),
    "uploads": lambda: (User.uploads_count.desc(), User.id.desc()),
    "followers": lambda: (User.followers_count.desc(), User.id.desc()),
}


def _role(user: User) -> UserRole:
    return UserRole(user.role)


def _guard(actor: User, target: User, action: str) -> None:
    """Nobody touches a super admin here; only a super admin touches an admin."""
    if _role(target) == UserRole.super_admin:
        raise AuthorizationDenied(f"The super admin account cannot be {action}")
    if _role(target) == UserRole.admin and _role(actor) != UserRole.super_admin:
        raise AuthorizationDenied("Only the super admin can manage admin accounts")


async def _target(db: AsyncSession, user_id: int) -> User:
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")
    return user


async def _read(db: AsyncSession, user_id: int) -> AdminUserRead:
    fresh = await db.scalar(select(User).where(User.id == user_id).execution_options(populate_existing=True))
    return AdminUserRead.model_validate(fresh)


async def stats(db: AsyncSession) -> dict:
    async def count(*where) -> int:
        return await db.scalar(select(func.count()).select_from(User).where(*where)) or 0

    return {
        "totalUsers": await count(),
        "verifiedUsers": await count(User.is_verified.is_(True)),
        "adminUsers": await count(User.role.in_(ADMIN_ROLES)),
        "photographers": await count(User.role == UserRole.photographer),
        "companies": await count(User.role == UserRole.company),
        "newUsersThisWeek": await count(User.created_at >= now_tz() - timedelta(days=7)),
    }


async def list_users(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    role: Optional[str] = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    stmt = select(User)
    count_stmt = select(func.count()).select_from(User)
    filters = []
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(User.email.ilike(pattern), User.username.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern))
        )
    if role and role != "all":
        try:
            filters.append(User.role == UserRole(role))
        except ValueError:
            raise ValidationFailed(f"Unknown role {role!r}") from None
    if filters:
        stmt = stmt.where(*filters)
        count_stmt = count_stmt.where(*filters)
    total = await db.scalar(count_stmt) or 0
    order = USER_SORTS.get(sort, USER_SORTS["newest"])()
    rows = (await db.execute(stmt.order_by(*order).limit(limit).offset(offset))).scalars()
    return {
        "users": [AdminUserRead.model_validate(u) for u in rows],
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def get_user(db: AsyncSession, user_id: int) -> AdminUserRead:
    await _target(db, user_id)
    return await _read(db, user_id)


async def update_user(db: AsyncSession, user_id: int, actor: User, data: AdminUserUpdate) -> AdminUserRead:
    target = await _target(db, user_id)
    if target.id != actor.id:
        _guard(actor, target, "modified")
    fields = data.model_dump(exclude_unset=True)

    if fields.get("email") and fields["email"].lower() != target.email.lower():
        taken = await db.scalar(select(User.id).where(func.lower(User.email) == fields["email"].lower(), User.id != target.id))
        if taken is not None:
            raise Conflict("Email is already taken")
    if fields.get("username") and fields["username"].lower() != target.username.lower():
        taken = await db.scalar(
            select(User.id).where(func.lower(User.username) == fields["username"].lower(), User.id != target.id)
        )
        if taken is not None:
            raise Conflict("Username is already taken")
    if "role" in fields and _role(target) in ADMIN_ROLES:
        # demotion goes through toggle-admin
        raise ValidationFailed("Use toggle-admin to change an admin's role")

    for key, value in fields.items():
        if value is None:
            continue
        if key == "role":
            value = UserRole(value)
        setattr(target, key, value)
    target.updated_at = now_tz()
    await db.commit()
    logger.info("Admin %s updated user %s: %s", actor.id, target.id, sorted(fields))
    return await _read(db, target.id)


async def delete_user(db: AsyncSession, user_id: int, actor: User) -> None:
    target = await _target(db, user_id)
    if target.id == actor.id:
        raise ValidationFailed("You cannot delete your own account here")
    _guard(actor, target, "deleted")
    await db.execute(delete(User).where(User.id == target.id))
    await db.commit()
    logger.info("Admin %s deleted user %s", actor.id, user_id)


async def toggle_verification(db: AsyncSession, user_id: int, actor: User) -> dict:
    target = await _target(db, user_id)
    if target.id != actor.id:
        _guard(actor, target, "modified")
    target.is_verified = not target.is_verified
    target.updated_at = now_tz()
    await db.commit()
    return {"isVerified": target.is_verified}


async def toggle_admin(db: AsyncSession, user_id: int, actor: User) -> dict:
    if _role(actor) != UserRole.super_admin:
        raise AuthorizationDenied("Only the super admin can change admin roles")
    target = await _target(db, user_id)
    if _role(target) == UserRole.super_admin:
        raise AuthorizationDenied("The super admin role cannot be changed")
    new_role = UserRole.photographer if _role(target) == UserRole.admin else UserRole.admin
    target.role = new_role
    target.is_superuser = new_role in ADMIN_ROLES
    target.updated_at = now_tz()
    await db.commit()
    logger.info("Super admin %s set user %s role to %s", actor.id, target.id, new_role.value)
    return {"role": new_role.value}


async def seed_super_admin(db: AsyncSession) -> None:
    """Create the configured super admin once; an existing account is promoted."""
    email = (settings.SUPER_ADMIN_EMAIL or "").strip().lower()
    password = settings.SUPER_ADMIN_PASSWORD
    if not email or not password:
        logger.info("SUPER_ADMIN_EMAIL or SUPER_ADMIN_PASSWORD not set; skipping super admin seed")
        return
    existing = await db.scalar(select(User).where(func.lower(User.email) == email))
    if existing is not None:
        if _role(existing) != UserRole.super_admin:
            existing.role = UserRole.super_admin
            existing.is_superuser = True
            await db.commit()
            logger.info("Promoted %s to super admin", email)
        return
    db.add(
        User(
            email=email,
            username=settings.SUPER_ADMIN_USERNAME,
            hashed_password=PasswordHelper().hash(password),
            role=UserRole.super_admin,
            is_superuser=True,
            is_active=True,
            is_verified=True,
        )
    )
    await db.commit()
    logger.info("Super admin created: %s", email)
