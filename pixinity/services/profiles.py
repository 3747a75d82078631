from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthorizationDenied, Conflict, NotFound
from pixinity.models import Follow, Photo, PhotoStatus, User
from pixinity.schemas import ProfileUpdate

logger = logging.getLogger(__name__)


async def refresh_counters(db: AsyncSession, user: User) -> User:
    """Recompute the denormalized profile counters from the underlying rows."""
    followers = await db.scalar(select(func.count()).select_from(Follow).where(Follow.following_id == user.id)) or 0
    following = await db.scalar(select(func.count()).select_from(Follow).where(Follow.follower_id == user.id)) or 0
    uploads, views, downloads = (
        await db.execute(
            select(
                func.count(Photo.id),
                func.coalesce(func.sum(Photo.views), 0),
                func.coalesce(func.sum(Photo.downloads), 0),
            ).where(Photo.user_id == user.id, Photo.status == PhotoStatus.live)
        )
    ).one()
    fresh = {
        "followers_count": int(followers),
        "following_count": int(following),
        "uploads_count": int(uploads or 0),
        "total_views": int(views or 0),
        "total_downloads": int(downloads or 0),
    }
    if any(getattr(user, k) != v for k, v in fresh.items()):
        for k, v in fresh.items():
            setattr(user, k, v)
        await db.commit()
    return user


async def get_profile(db: AsyncSession, *, user_id: int | None = None, username: str | None = None) -> User:
    stmt = select(User).where(User.is_active.is_(True))
    if user_id is not None:
        stmt = stmt.where(User.id == user_id)
    else:
        stmt = stmt.where(func.lower(User.username) == (username or "").strip().lower())
    user = await db.scalar(stmt)
    if user is None:
        raise NotFound("User not found")
    return await refresh_counters(db, user)


async def update_profile(db: AsyncSession, user_id: int, actor: User, data: ProfileUpdate) -> User:
    if actor.id != user_id:
        raise AuthorizationDenied("You can only edit your own profile")
    fields = data.model_dump(exclude_unset=True)
    username = fields.get("username")
    if username and username.lower() != (actor.username or "").lower():
        taken = await db.scalar(select(User.id).where(func.lower(User.username) == username.lower(), User.id != actor.id))
        if taken is not None:
            raise Conflict("Username is already taken")
    for key, value in fields.items():
        if key == "username" and not value:
            continue
        setattr(actor, key, value.strip() if isinstance(value, str) else value)
    await db.commit()
    logger.info("User %s updated profile fields %s", actor.id, sorted(fields))
    return actor
