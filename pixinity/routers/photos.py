from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.errors import ValidationFailed
from pixinity.models import PhotoStatus, User
from pixinity.schemas import CategoryRead, CommentCreate
from pixinity.services import comments, social
from pixinity.services import photos as photo_service
from pixinity.utils import get_current_user, require_authenticated_user

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _one(db: AsyncSession, photo_id: int):
    (photo,) = await photo_service.load_photos(db, [photo_id])
    return photo


@router.post("/upload", status_code=201)
async def upload_photos(
    files: List[UploadFile] = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    status: str = Form("draft"),
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        photo_status = PhotoStatus(status)
    except ValueError:
        raise ValidationFailed("status must be draft or live") from None
    ids = await photo_service.store_uploads(
        db, user, files,
        title=title, description=description, tags=tags, category=category, status=photo_status,
    )
    return {"photos": await photo_service.load_photos(db, ids), "uploaded": len(ids)}


@router.get("/categories")
async def categories(db: AsyncSession = Depends(get_db)):
    rows = await photo_service.list_categories(db)
    return {"categories": [CategoryRead.model_validate(c) for c in rows]}


@router.get("")
async def list_photos(
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = "trending",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await photo_service.list_photos(
        db, search=search, category=category, sort=sort, limit=limit, offset=offset
    )


@router.get("/user/{user_id}")
async def list_user_photos(
    user_id: int,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await photo_service.list_user_photos(
        db, user_id, viewer, status=status, search=search, limit=limit, offset=offset
    )


# comment routes keyed by comment id sit before the /{photo_id} routes
@router.get("/comments/{comment_id}/replies")
async def comment_replies(
    comment_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"replies": await comments.photo_comment_replies(db, comment_id, viewer)}


@router.post("/comments/{comment_id}/like")
async def like_comment(
    comment_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await comments.toggle_photo_comment_like(db, comment_id, user)


@router.get("/{photo_id}")
async def get_photo(
    photo_id: int,
    request: Request,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    if viewer is None or viewer.id != photo.user_id:
        await photo_service.record_view(
            db, photo, viewer, ip_address=_client_ip(request), user_agent=request.headers.get("user-agent")
        )
    return {"photo": await _one(db, photo_id)}


@router.post("/{photo_id}/view")
async def record_view(
    photo_id: int,
    request: Request,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    photo = await photo_service.get_visible_photo(db, photo_id, viewer)
    return await photo_service.record_view(
        db, photo, viewer, ip_address=_client_ip(request), user_agent=request.headers.get("user-agent")
    )


@router.post("/{photo_id}/download")
async def record_download(
    photo_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await photo_service.record_download(db, photo_id, viewer)


@router.patch("/{photo_id}/publish")
async def publish(
    photo_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await photo_service.publish(db, photo_id, user)
    return {"photo": await _one(db, photo_id)}


@router.delete("/{photo_id}")
async def delete_photo(
    photo_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await photo_service.delete_photo(db, photo_id, user)
    return {"message": "Photo deleted"}


@router.post("/{photo_id}/like")
async def toggle_like(
    photo_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.toggle_photo_like(db, photo_id, user)


@router.get("/{photo_id}/like-status")
async def like_status(
    photo_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.photo_like_status(db, photo_id, viewer)


@router.post("/{photo_id}/save")
async def toggle_save(
    photo_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.toggle_photo_save(db, photo_id, user)


@router.get("/{photo_id}/save-status")
async def save_status(
    photo_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await social.photo_save_status(db, photo_id, viewer)


@router.get("/{photo_id}/comments")
async def list_comments(
    photo_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comments.list_photo_comments(db, photo_id, viewer, limit=limit, offset=offset)


@router.post("/{photo_id}/comments", status_code=201)
async def add_comment(
    photo_id: int,
    payload: CommentCreate,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await comments.add_photo_comment(db, photo_id, user, payload.content, payload.parent_id)
    return {"comment": comment}
