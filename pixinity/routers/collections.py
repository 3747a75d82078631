from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.models import User
from pixinity.schemas import (
    AddPhotosRequest,
    CollaboratorRead,
    CollectionCreate,
    CollectionUpdate,
    CommentCreate,
    JoinRequest,
)
from pixinity.services import collaboration, comments
from pixinity.services import collections as collection_service
from pixinity.utils import get_current_user, require_authenticated_user

router = APIRouter()


@router.get("")
async def list_collections(
    filter: str = "all",
    search: Optional[str] = None,
    sort: str = "newest",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.list_collections(
        db, viewer, filter_=filter, search=search, sort=sort, limit=limit, offset=offset
    )


@router.post("", status_code=201)
async def create_collection(
    payload: CollectionCreate,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return {"collection": await collection_service.create(db, user, payload)}


@router.get("/user/{user_id}/photos")
async def picker_photos(
    user_id: int,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.picker_photos(db, user_id, user, search=search, limit=limit, offset=offset)


@router.get("/comments/{comment_id}/replies")
async def comment_replies(
    comment_id: int,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"replies": await comments.collection_comment_replies(db, comment_id, viewer)}


@router.post("/comments/{comment_id}/like")
async def like_comment(
    comment_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await comments.toggle_collection_comment_like(db, comment_id, user)


@router.get("/{identifier}")
async def get_collection(
    identifier: str,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"collection": await collection_service.get_detail(db, identifier, viewer)}


@router.put("/{identifier}")
async def update_collection(
    identifier: str,
    payload: CollectionUpdate,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return {"collection": await collection_service.update_collection(db, identifier, user, payload)}


@router.delete("/{identifier}")
async def delete_collection(
    identifier: str,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await collection_service.delete_collection(db, identifier, user)
    return {"message": "Collection deleted"}


# ---------------------------
# collaboration
# ---------------------------
@router.post("/{identifier}/join")
async def join_collection(
    identifier: str,
    payload: JoinRequest,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    row = await collaboration.accept(db, identifier, user, payload.otp_code)
    return {"message": "You are now a collaborator", "collaborator": CollaboratorRead.model_validate(row)}


@router.get("/{identifier}/collaborators")
async def list_collaborators(
    identifier: str,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await collaboration.list_for_member(db, identifier, user)
    return {"collaborators": [CollaboratorRead.model_validate(r) for r in rows]}


@router.delete("/{identifier}/collaborators/{collaborator_id}")
async def remove_collaborator(
    identifier: str,
    collaborator_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    await collaboration.remove(db, identifier, user, collaborator_id)
    return {"message": "Collaborator removed"}


@router.post("/{identifier}/collaborators/{collaborator_id}/resend")
async def resend_invitation(
    identifier: str,
    collaborator_id: int,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    row = await collaboration.resend(db, identifier, user, collaborator_id)
    return {"message": "Invitation resent", "collaborator": CollaboratorRead.model_validate(row)}


@router.get("/{identifier}/check-membership")
async def check_membership(
    identifier: str,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.membership(db, identifier, viewer)


# ---------------------------
# photos
# ---------------------------
@router.post("/{identifier}/upload", status_code=201)
async def upload_into_collection(
    identifier: str,
    files: List[UploadFile] = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.upload_into(
        db, identifier, user, files,
        title=title, description=description, tags=tags, category=category,
    )


@router.post("/{identifier}/photos")
async def add_photos(
    identifier: str,
    payload: AddPhotosRequest,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.add_photos(db, identifier, user, payload.photo_ids)


# ---------------------------
# engagement
# ---------------------------
@router.post("/{identifier}/like")
async def toggle_like(
    identifier: str,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.toggle_like(db, identifier, user)


@router.get("/{identifier}/like-status")
async def like_status(
    identifier: str,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.like_status(db, identifier, viewer)


@router.get("/{identifier}/comments")
async def list_comments(
    identifier: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comments.list_collection_comments(db, identifier, viewer, limit=limit, offset=offset)


@router.post("/{identifier}/comments", status_code=201)
async def add_comment(
    identifier: str,
    payload: CommentCreate,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await comments.add_collection_comment(db, identifier, user, payload.content, payload.parent_id)
    return {"comment": comment}


@router.post("/{identifier}/view")
async def record_view(
    identifier: str,
    request: Request,
    viewer: Optional[User] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ip = request.client.host if request.client else None
    return await collection_service.record_view(db, identifier, viewer, ip_address=ip)


@router.get("/{identifier}/analytics")
async def analytics(
    identifier: str,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await collection_service.analytics(db, identifier, user)
