"""In-app notification fan-out.

``notify`` is fire-and-forget: the insert runs in a background task on its
own session, failures are logged and never reach the caller.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.background import spawn
from pixinity.database import async_session_maker
from pixinity.errors import NotFound
from pixinity.models import Notification
from pixinity.schemas import NotificationRead
from pixinity.utils import has_more, now_tz

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    like = "like"
    comment = "comment"
    comment_like = "comment_like"
    follow = "follow"
    collection_like = "collection_like"
    collection_comment = "collection_comment"
    collection_upload = "collection_upload"
    collaboration_accepted = "collaboration_accepted"


async def _insert(
    user_id: int,
    type_: NotificationType,
    message: str,
    related_id: Optional[int],
    action_url: Optional[str],
) -> None:
    try:
        async with async_session_maker() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    type=type_.value,
                    message=message,
                    related_id=related_id,
                    action_url=action_url,
                )
            )
            await session.commit()
    except Exception:
        logger.exception("Failed to create %s notification for user %s", type_.value, user_id)


def notify(
    user_id: int,
    type_: NotificationType,
    message: str,
    *,
    related_id: Optional[int] = None,
    action_url: Optional[str] = None,
    actor_id: Optional[int] = None,
):
    """Queue a notification for ``user_id``; nothing is sent to yourself."""
    if actor_id is not None and actor_id == user_id:
        return None
    return spawn(
        _insert(user_id, NotificationType(type_), message, related_id, action_url),
        name=f"notify-{type_}-{user_id}",
    )


async def list_for_user(
    db: AsyncSession, user_id: int, *, limit: int = 20, offset: int = 0, unread_only: bool = False
) -> dict:
    stmt = select(Notification).where(Notification.user_id == user_id)
    count_stmt = select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
        count_stmt = count_stmt.where(Notification.read_at.is_(None))

    rows = (
        await db.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
        )
    ).scalars().all()
    total = await db.scalar(count_stmt) or 0
    unread = await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
    ) or 0
    return {
        "notifications": [NotificationRead.model_validate(n) for n in rows],
        "total": total,
        "unreadCount": unread,
        "hasMore": has_more(limit, offset, total),
    }


async def mark_read(db: AsyncSession, user_id: int, notification_id: int) -> None:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read_at=func.coalesce(Notification.read_at, now_tz()))
    )
    if result.rowcount == 0:
        raise NotFound("Notification not found")
    await db.commit()


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=now_tz())
    )
    await db.commit()
    return result.rowcount or 0


async def delete_notification(db: AsyncSession, user_id: int, notification_id: int) -> None:
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    if result.rowcount == 0:
        raise NotFound("Notification not found")
    await db.commit()
