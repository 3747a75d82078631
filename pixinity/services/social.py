"""Social graph: like, save and follow toggles plus the lists they feed.

Each toggle flips a join row and adjusts the denormalized counters with
separate ``col = col +/- 1`` statements in the same commit.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthorizationDenied, NotFound, ValidationFailed
from pixinity.models import Follow, Photo, PhotoLike, PhotoSave, PhotoStatus, User
from pixinity.schemas import UserSummary
from pixinity.services import photos as photo_service
from pixinity.services.notifications import NotificationType, notify
from pixinity.utils import has_more

logger = logging.getLogger(__name__)


# ---------------------------
# likes
# ---------------------------
async def toggle_photo_like(db: AsyncSession, photo_id: int, user: User) -> dict:
    photo = await photo_service.get_visible_photo(db, photo_id, user)
    existing = await db.scalar(select(PhotoLike.id).where(PhotoLike.photo_id == photo.id, PhotoLike.user_id == user.id))
    if existing is not None:
        await db.execute(delete(PhotoLike).where(PhotoLike.id == existing))
        await db.execute(update(Photo).where(Photo.id == photo.id, Photo.likes > 0).values(likes=Photo.likes - 1))
    else:
        db.add(PhotoLike(photo_id=photo.id, user_id=user.id))
        await db.execute(update(Photo).where(Photo.id == photo.id).values(likes=Photo.likes + 1))
    await db.commit()
    liked = existing is None
    if liked:
        notify(
            photo.user_id,
            NotificationType.like,
            f"{user.display_name} liked your photo \"{photo.title}\"",
            related_id=photo.id,
            action_url=f"/photos/{photo.id}",
            actor_id=user.id,
        )
    likes = await db.scalar(select(Photo.likes).where(Photo.id == photo.id)) or 0
    return {"liked": liked, "likesCount": likes}


async def photo_like_status(db: AsyncSession, photo_id: int, viewer: Optional[User]) -> dict:
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    liked = False
    if viewer is not None:
        liked = await db.scalar(
            select(PhotoLike.id).where(PhotoLike.photo_id == photo.id, PhotoLike.user_id == viewer.id)
        ) is not None
    return {"liked": liked, "likesCount": photo.likes}


# ---------------------------
# saves
# ---------------------------
async def toggle_photo_save(db: AsyncSession, photo_id: int, user: User) -> dict:
    photo = await photo_service.get_visible_photo(db, photo_id, user)
    existing = await db.scalar(select(PhotoSave.id).where(PhotoSave.photo_id == photo.id, PhotoSave.user_id == user.id))
    if existing is not None:
        await db.execute(delete(PhotoSave).where(PhotoSave.id == existing))
    else:
        db.add(PhotoSave(photo_id=photo.id, user_id=user.id))
    await db.commit()
    return {"saved": existing is None}


async def photo_save_status(db: AsyncSession, photo_id: int, viewer: Optional[User]) -> dict:
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    if viewer is None:
        return {"saved": False}
    row = await db.scalar(select(PhotoSave.id).where(PhotoSave.photo_id == photo.id, PhotoSave.user_id == viewer.id))
    return {"saved": row is not None}


# ---------------------------
# follows
# ---------------------------
async def _user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")
    return user


async def toggle_follow(db: AsyncSession, target_id: int, user: User) -> dict:
    if target_id == user.id:
        raise ValidationFailed("You cannot follow yourself")
    target = await _user_or_404(db, target_id)
    existing = await db.scalar(
        select(Follow.id).where(Follow.follower_id == user.id, Follow.following_id == target.id)
    )
    if existing is not None:
        await db.execute(delete(Follow).where(Follow.id == existing))
        delta = -1
    else:
        db.add(Follow(follower_id=user.id, following_id=target.id))
        delta = 1
    for uid, column in ((target.id, User.followers_count), (user.id, User.following_count)):
        stmt = update(User).where(User.id == uid).values({column.key: column + delta})
        if delta < 0:
            stmt = stmt.where(column > 0)
        await db.execute(stmt)
    await db.commit()

    following = delta > 0
    if following:
        notify(
            target.id,
            NotificationType.follow,
            f"{user.display_name} started following you",
            related_id=user.id,
            action_url=f"/users/{user.username}",
            actor_id=user.id,
        )
    followers = await db.scalar(select(User.followers_count).where(User.id == target.id)) or 0
    return {"following": following, "followersCount": followers}


async def follow_status(db: AsyncSession, target_id: int, viewer: Optional[User]) -> dict:
    await _user_or_404(db, target_id)
    if viewer is None or viewer.id == target_id:
        return {"following": False}
    row = await db.scalar(select(Follow.id).where(Follow.follower_id == viewer.id, Follow.following_id == target_id))
    return {"following": row is not None}


async def _people(db: AsyncSession, user_id: int, *, followers: bool, limit: int, offset: int) -> dict:
    await _user_or_404(db, user_id)
    if followers:
        join_on, where = Follow.follower_id == User.id, Follow.following_id == user_id
    else:
        join_on, where = Follow.following_id == User.id, Follow.follower_id == user_id
    total = await db.scalar(select(func.count()).select_from(Follow).where(where)) or 0
    rows = (
        await db.execute(
            select(User).join(Follow, join_on).where(where).order_by(Follow.created_at.desc(), Follow.id.desc()).limit(limit).offset(offset)
        )
    ).scalars()
    return {
        "users": [UserSummary.model_validate(u) for u in rows],
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def list_followers(db: AsyncSession, user_id: int, *, limit: int = 20, offset: int = 0) -> dict:
    return await _people(db, user_id, followers=True, limit=limit, offset=offset)


async def list_following(db: AsyncSession, user_id: int, *, limit: int = 20, offset: int = 0) -> dict:
    return await _people(db, user_id, followers=False, limit=limit, offset=offset)


# ---------------------------
# liked & saved photo lists
# ---------------------------
async def _photo_list(db: AsyncSession, join_model, user_id: int, limit: int, offset: int) -> dict:
    base = (
        select(Photo.id)
        .join(join_model, join_model.photo_id == Photo.id)
        .where(join_model.user_id == user_id, Photo.status == PhotoStatus.live)
    )
    total = await db.scalar(select(func.count()).select_from(base.subquery())) or 0
    ids = list(
        (await db.execute(base.order_by(join_model.created_at.desc(), join_model.id.desc()).limit(limit).offset(offset))).scalars()
    )
    return {
        "photos": await photo_service.load_photos(db, ids),
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def liked_photos(db: AsyncSession, user_id: int, *, limit: int = 20, offset: int = 0) -> dict:
    await _user_or_404(db, user_id)
    return await _photo_list(db, PhotoLike, user_id, limit, offset)


async def saved_photos(db: AsyncSession, user_id: int, viewer: User, *, limit: int = 20, offset: int = 0) -> dict:
    if viewer.id != user_id:
        raise AuthorizationDenied("Saved photos are private")
    return await _photo_list(db, PhotoSave, user_id, limit, offset)
