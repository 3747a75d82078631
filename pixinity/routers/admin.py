from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.models import User
from pixinity.schemas import AdminUserUpdate
from pixinity.services import admin
from pixinity.utils import require_admin_user

router = APIRouter()


@router.get("/stats")
async def user_stats(
    _: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return await admin.stats(db)


@router.get("")
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    sort: str = "newest",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return await admin.list_users(db, search=search, role=role, sort=sort, limit=limit, offset=offset)


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    _: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await admin.get_user(db, user_id)}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    actor: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await admin.update_user(db, user_id, actor, payload)}


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    actor: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    await admin.delete_user(db, user_id, actor)
    return {"message": "User deleted"}


@router.post("/{user_id}/toggle-verification")
async def toggle_verification(
    user_id: int,
    actor: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return await admin.toggle_verification(db, user_id, actor)


@router.post("/{user_id}/toggle-admin")
async def toggle_admin(
    user_id: int,
    actor: User = Depends(require_admin_user),
    db: AsyncSession = Depends(get_db),
):
    return await admin.toggle_admin(db, user_id, actor)
