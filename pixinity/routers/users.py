from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.models import User
from pixinity.schemas import ProfileUpdate, UserPrivate, UserPublic
from pixinity.services import profiles, social
from pixinity.utils import get_current_user, require_authenticated_user

router = APIRouter()


def _profile(user: User, viewer: Optional[User]):
    # email and account flags only go back to the account holder
    if viewer is not None and viewer.id == user.id:
        return UserPrivate.model_validate(user)
    return UserPublic.model_validate(user)


@router.get("/username/{username}")
async def get_by_username(
    username: str,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await profiles.get_profile(db, username=username)
    return {"user": _profile(user, viewer)}


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await profiles.get_profile(db, user_id=user_id)
    return {"user": _profile(user, viewer)}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    payload: ProfileUpdate,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await profiles.update_profile(db, user_id, user, payload)
    return {"user": UserPrivate.model_validate(updated)}


@router.get("/{user_id}/followers")
async def followers(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await social.list_followers(db, user_id, limit=limit, offset=offset)


@router.get("/{user_id}/following")
async def following(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await social.list_following(db, user_id, limit=limit, offset=offset)


@router.get("/{user_id}/liked-photos")
async def liked_photos(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await social.liked_photos(db, user_id, limit=limit, offset=offset)


@router.get("/{user_id}/saved-photos")
async def saved_photos(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.saved_photos(db, user_id, user, limit=limit, offset=offset)


@router.post("/{user_id}/follow")
async def toggle_follow(
    user_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.toggle_follow(db, user_id, user)


@router.get("/{user_id}/follow-status")
async def follow_status(
    user_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.follow_status(db, user_id, viewer)
