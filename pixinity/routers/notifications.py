from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.models import User
from pixinity.services import notifications
from pixinity.utils import require_authenticated_user

router = APIRouter()


@router.get("")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await notifications.list_for_user(db, user.id, limit=limit, offset=offset, unread_only=unread_only)


@router.patch("/mark-all-read")
async def mark_all_read(
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await notifications.mark_all_read(db, user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await notifications.mark_read(db, user.id, notification_id)
    return {"message": "Notification marked as read"}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await notifications.delete_notification(db, user.id, notification_id)
    return {"message": "Notification deleted"}
