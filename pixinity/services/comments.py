"""Comment threads on photos and collections.

Both share one shape: top-level comments plus exactly one level of
replies, whose parent must sit on the same target. Reply and like counts
are aggregated at read time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import NotFound, ValidationFailed
from pixinity.models import (
    CollectionComment,
    CollectionCommentLike,
    Comment,
    CommentLike,
    PhotoStatus,
    User,
)
from pixinity.schemas import CommentRead
from pixinity.services import photos as photo_service
from pixinity.services.access import require_view, resolve
from pixinity.services.notifications import NotificationType, notify
from pixinity.utils import has_more

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Thread:
    comment: type
    like: type
    target: str  # foreign key column naming the commented entity


PHOTO_THREAD = _Thread(Comment, CommentLike, "photo_id")
COLLECTION_THREAD = _Thread(CollectionComment, CollectionCommentLike, "collection_id")


def _target_col(thread: _Thread):
    return getattr(thread.comment, thread.target)


async def _reads(db: AsyncSession, thread: _Thread, rows, viewer: Optional[User]) -> list[CommentRead]:
    ids = [c.id for c in rows]
    if not ids:
        return []
    C, L = thread.comment, thread.like
    replies = dict(
        (await db.execute(select(C.parent_id, func.count()).where(C.parent_id.in_(ids)).group_by(C.parent_id))).all()
    )
    likes = dict(
        (await db.execute(select(L.comment_id, func.count()).where(L.comment_id.in_(ids)).group_by(L.comment_id))).all()
    )
    liked = set()
    if viewer is not None:
        liked = set(
            (await db.execute(select(L.comment_id).where(L.comment_id.in_(ids), L.user_id == viewer.id))).scalars()
        )
    out = []
    for c in rows:
        item = CommentRead.model_validate(c)
        item.reply_count = replies.get(c.id, 0)
        item.like_count = likes.get(c.id, 0)
        item.is_liked = c.id in liked
        out.append(item)
    return out


async def _get(db: AsyncSession, thread: _Thread, comment_id: int):
    row = await db.scalar(select(thread.comment).where(thread.comment.id == comment_id))
    if row is None:
        raise NotFound("Comment not found")
    return row


async def _create(db: AsyncSession, thread: _Thread, target_id: int, user: User, content: str, parent_id: Optional[int]):
    if parent_id is not None:
        parent = await db.scalar(select(thread.comment).where(thread.comment.id == parent_id))
        if parent is None or getattr(parent, thread.target) != target_id:
            raise ValidationFailed("Parent comment not found")
        if parent.parent_id is not None:
            raise ValidationFailed("Replies cannot be nested")
    row = thread.comment(user_id=user.id, content=content, parent_id=parent_id, **{thread.target: target_id})
    db.add(row)
    await db.commit()
    fresh = await db.scalar(
        select(thread.comment).where(thread.comment.id == row.id).execution_options(populate_existing=True)
    )
    (item,) = await _reads(db, thread, [fresh], user)
    return item


async def _list(db: AsyncSession, thread: _Thread, target_id: int, viewer: Optional[User], limit: int, offset: int) -> dict:
    C = thread.comment
    where = (_target_col(thread) == target_id, C.parent_id.is_(None))
    total = await db.scalar(select(func.count()).select_from(C).where(*where)) or 0
    rows = list(
        (await db.execute(select(C).where(*where).order_by(C.created_at.desc(), C.id.desc()).limit(limit).offset(offset))).scalars()
    )
    return {
        "comments": await _reads(db, thread, rows, viewer),
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def _replies(db: AsyncSession, thread: _Thread, parent_id: int, viewer: Optional[User]) -> list[CommentRead]:
    C = thread.comment
    rows = list((await db.execute(select(C).where(C.parent_id == parent_id).order_by(C.created_at, C.id))).scalars())
    return await _reads(db, thread, rows, viewer)


async def _toggle_like(db: AsyncSession, thread: _Thread, comment, user: User) -> dict:
    L = thread.like
    existing = await db.scalar(select(L.id).where(L.comment_id == comment.id, L.user_id == user.id))
    if existing is not None:
        await db.execute(delete(L).where(L.id == existing))
    else:
        db.add(L(comment_id=comment.id, user_id=user.id))
    await db.commit()
    count = await db.scalar(select(func.count()).select_from(L).where(L.comment_id == comment.id)) or 0
    return {"liked": existing is None, "likeCount": count}


# ---------------------------
# photo comments
# ---------------------------
async def _commentable_photo(db: AsyncSession, photo_id: int, viewer: Optional[User]):
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    if photo.status != PhotoStatus.live:
        raise ValidationFailed("Cannot comment on draft photos")
    return photo


async def add_photo_comment(db: AsyncSession, photo_id: int, user: User, content: str, parent_id: Optional[int] = None) -> CommentRead:
    photo = await _commentable_photo(db, photo_id, user)
    item = await _create(db, PHOTO_THREAD, photo.id, user, content, parent_id)
    notify(
        photo.user_id,
        NotificationType.comment,
        f"{user.display_name} commented on your photo \"{photo.title}\"",
        related_id=photo.id,
        action_url=f"/photos/{photo.id}",
        actor_id=user.id,
    )
    return item


async def list_photo_comments(db: AsyncSession, photo_id: int, viewer: Optional[User], *, limit: int = 20, offset: int = 0) -> dict:
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    return await _list(db, PHOTO_THREAD, photo.id, viewer, limit, offset)


async def photo_comment_replies(db: AsyncSession, comment_id: int, viewer: Optional[User]) -> list[CommentRead]:
    parent = await _get(db, PHOTO_THREAD, comment_id)
    await photo_service.get_visible_photo(db, parent.photo_id, viewer)
    return await _replies(db, PHOTO_THREAD, parent.id, viewer)


async def toggle_photo_comment_like(db: AsyncSession, comment_id: int, user: User) -> dict:
    comment = await _get(db, PHOTO_THREAD, comment_id)
    await photo_service.get_visible_photo(db, comment.photo_id, user)
    result = await _toggle_like(db, PHOTO_THREAD, comment, user)
    if result["liked"]:
        notify(
            comment.user_id,
            NotificationType.comment_like,
            f"{user.display_name} liked your comment",
            related_id=comment.id,
            action_url=f"/photos/{comment.photo_id}",
            actor_id=user.id,
        )
    return result


# ---------------------------
# collection comments
# ---------------------------
async def add_collection_comment(
    db: AsyncSession, identifier: str | int, user: User, content: str, parent_id: Optional[int] = None
) -> CommentRead:
    collection = await resolve(db, identifier)
    await require_view(db, collection, user)
    item = await _create(db, COLLECTION_THREAD, collection.id, user, content, parent_id)
    notify(
        collection.user_id,
        NotificationType.collection_comment,
        f"{user.display_name} commented on your collection \"{collection.name}\"",
        related_id=collection.id,
        action_url=f"/collections/{collection.uuid}",
        actor_id=user.id,
    )
    return item


async def list_collection_comments(
    db: AsyncSession, identifier: str | int, viewer: Optional[User], *, limit: int = 20, offset: int = 0
) -> dict:
    collection = await resolve(db, identifier)
    await require_view(db, collection, viewer)
    return await _list(db, COLLECTION_THREAD, collection.id, viewer, limit, offset)


async def collection_comment_replies(db: AsyncSession, comment_id: int, viewer: Optional[User]) -> list[CommentRead]:
    parent = await _get(db, COLLECTION_THREAD, comment_id)
    collection = await resolve(db, parent.collection_id)
    await require_view(db, collection, viewer)
    return await _replies(db, COLLECTION_THREAD, parent.id, viewer)


async def toggle_collection_comment_like(db: AsyncSession, comment_id: int, user: User) -> dict:
    comment = await _get(db, COLLECTION_THREAD, comment_id)
    collection = await resolve(db, comment.collection_id)
    await require_view(db, collection, user)
    result = await _toggle_like(db, COLLECTION_THREAD, comment, user)
    if result["liked"]:
        notify(
            comment.user_id,
            NotificationType.comment_like,
            f"{user.display_name} liked your comment on \"{collection.name}\"",
            related_id=comment.id,
            action_url=f"/collections/{collection.uuid}",
            actor_id=user.id,
        )
    return result
