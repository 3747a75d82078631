"""Collections: listing, detail, CRUD, photo membership and engagement.

Aggregate counts (photos, likes, comments, views) are computed from the
join tables at read time, never stored.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthenticationRequired, AuthorizationDenied, ValidationFailed
from pixinity.models import (
    Collection,
    CollectionComment,
    CollectionLike,
    CollectionPhoto,
    CollectionView,
    CollaboratorStatus,
    Photo,
    PhotoStatus,
    User,
)
from pixinity.schemas import (
    CollaboratorPublic,
    CollaboratorRead,
    CollectionCreate,
    CollectionDetail,
    CollectionRead,
    CollectionUpdate,
)
from pixinity.services import collaboration
from pixinity.services.access import (
    Standing,
    require_contributor,
    require_owner,
    require_view,
    resolve,
    standing_of,
    visible_clause,
)
from pixinity.services.notifications import NotificationType, notify
from pixinity.services.photos import load_photos, store_uploads
from pixinity.utils import has_more, now_tz

logger = logging.getLogger(__name__)

LIST_FILTERS = ("all", "public", "private", "collaborative", "mine")


# ---------------------------
# aggregates & payloads
# ---------------------------
def _live_member_filter():
    return (CollectionPhoto.photo_id == Photo.id) & (Photo.status == PhotoStatus.live)


async def aggregate_counts(db: AsyncSession, collection_ids: Sequence[int]) -> dict[int, dict[str, int]]:
    ids = list(collection_ids)
    counts = {cid: {"photo_count": 0, "like_count": 0, "comment_count": 0, "view_count": 0} for cid in ids}
    if not ids:
        return counts
    queries = {
        "photo_count": select(CollectionPhoto.collection_id, func.count())
        .join(Photo, _live_member_filter())
        .where(CollectionPhoto.collection_id.in_(ids))
        .group_by(CollectionPhoto.collection_id),
        "like_count": select(CollectionLike.collection_id, func.count())
        .where(CollectionLike.collection_id.in_(ids))
        .group_by(CollectionLike.collection_id),
        "comment_count": select(CollectionComment.collection_id, func.count())
        .where(CollectionComment.collection_id.in_(ids))
        .group_by(CollectionComment.collection_id),
        "view_count": select(CollectionView.collection_id, func.count())
        .where(CollectionView.collection_id.in_(ids))
        .group_by(CollectionView.collection_id),
    }
    for key, stmt in queries.items():
        for cid, n in (await db.execute(stmt)).all():
            counts[cid][key] = n
    return counts


async def _fallback_covers(db: AsyncSession, collections: Iterable[Collection]) -> dict[int, str]:
    """First live member thumbnail for collections without a usable cover."""
    ids = [c.id for c in collections if c.cover_photo is None or c.cover_photo.status != PhotoStatus.live]
    if not ids:
        return {}
    first = (
        select(CollectionPhoto.collection_id, func.min(CollectionPhoto.id).label("first_id"))
        .join(Photo, _live_member_filter())
        .where(CollectionPhoto.collection_id.in_(ids))
        .group_by(CollectionPhoto.collection_id)
        .subquery()
    )
    rows = await db.execute(
        select(first.c.collection_id, Photo.thumbnail_path, Photo.file_path)
        .join(CollectionPhoto, CollectionPhoto.id == first.c.first_id)
        .join(Photo, Photo.id == CollectionPhoto.photo_id)
    )
    return {cid: thumb or path for cid, thumb, path in rows.all()}


async def build_reads(db: AsyncSession, collections: Sequence[Collection], model=CollectionRead) -> list:
    counts = await aggregate_counts(db, [c.id for c in collections])
    covers = await _fallback_covers(db, collections)
    out = []
    for c in collections:
        item = model.model_validate(c)
        for key, value in counts[c.id].items():
            setattr(item, key, value)
        if c.cover_photo is not None and c.cover_photo.status == PhotoStatus.live:
            item.cover_image = "/" + (c.cover_photo.thumbnail_path or c.cover_photo.file_path).lstrip("/")
        elif c.id in covers:
            item.cover_image = "/" + covers[c.id].lstrip("/")
        out.append(item)
    return out


async def _reload(db: AsyncSession, collection_id: int) -> Collection:
    stmt = select(Collection).where(Collection.id == collection_id).execution_options(populate_existing=True)
    return await db.scalar(stmt)


async def _member_photo_ids(db: AsyncSession, collection_id: int, viewer: Optional[User]) -> list[int]:
    visible = Photo.status == PhotoStatus.live
    if viewer is not None:
        visible = or_(visible, Photo.user_id == viewer.id)
    stmt = (
        select(Photo.id)
        .join(CollectionPhoto, CollectionPhoto.photo_id == Photo.id)
        .where(CollectionPhoto.collection_id == collection_id, visible)
        .order_by(CollectionPhoto.id)
    )
    return list((await db.execute(stmt)).scalars())


async def get_detail(db: AsyncSession, identifier: str | int, viewer: Optional[User]) -> CollectionDetail:
    collection = await resolve(db, identifier)
    standing = await require_view(db, collection, viewer)
    return await _detail(db, collection, viewer, standing)


async def _detail(db: AsyncSession, collection: Collection, viewer: Optional[User], standing: Standing) -> CollectionDetail:
    (detail,) = await build_reads(db, [collection], model=CollectionDetail)
    detail.photos = await load_photos(db, await _member_photo_ids(db, collection.id, viewer))
    detail.is_owner = standing == Standing.owner
    detail.is_collaborator = standing == Standing.collaborator
    if viewer is not None:
        detail.is_liked = await _liked_by(db, collection.id, viewer.id)
    if collection.is_collaborative:
        rows = await collaboration.list_rows(db, collection.id)
        if standing == Standing.visitor:
            detail.collaborators = [
                CollaboratorPublic.model_validate(r) for r in rows if r.status == CollaboratorStatus.accepted
            ]
        else:
            detail.collaborators = [CollaboratorRead.model_validate(r) for r in rows]
    return detail


# ---------------------------
# listing
# ---------------------------
async def list_collections(
    db: AsyncSession,
    viewer: Optional[User],
    *,
    filter_: str = "all",
    search: Optional[str] = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    if filter_ not in LIST_FILTERS:
        raise ValidationFailed(f"Unknown filter {filter_!r}")
    if filter_ in ("private", "mine") and viewer is None:
        raise AuthenticationRequired()

    stmt = select(Collection.id).where(visible_clause(viewer))
    if filter_ == "public":
        stmt = stmt.where(Collection.is_private.is_(False))
    elif filter_ == "private":
        stmt = stmt.where(Collection.is_private.is_(True), Collection.user_id == viewer.id)
    elif filter_ == "collaborative":
        stmt = stmt.where(Collection.is_collaborative.is_(True))
    elif filter_ == "mine":
        stmt = stmt.where(Collection.user_id == viewer.id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Collection.name.ilike(pattern), Collection.description.ilike(pattern)))

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0

    if sort == "photos":
        photo_counts = (
            select(CollectionPhoto.collection_id, func.count().label("n"))
            .join(Photo, _live_member_filter())
            .group_by(CollectionPhoto.collection_id)
            .subquery()
        )
        stmt = stmt.outerjoin(photo_counts, photo_counts.c.collection_id == Collection.id).order_by(
            func.coalesce(photo_counts.c.n, 0).desc(), Collection.id.desc()
        )
    elif sort == "oldest":
        stmt = stmt.order_by(Collection.created_at.asc(), Collection.id.asc())
    else:
        stmt = stmt.order_by(Collection.created_at.desc(), Collection.id.desc())

    ids = list((await db.execute(stmt.limit(limit).offset(offset))).scalars())
    by_id = {c.id: c for c in (await db.execute(select(Collection).where(Collection.id.in_(ids)))).scalars()}
    collections = [by_id[i] for i in ids if i in by_id]
    return {
        "collections": await build_reads(db, collections),
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def membership(db: AsyncSession, identifier: str | int, user: Optional[User]) -> dict:
    collection = await resolve(db, identifier)
    standing = await standing_of(db, collection, user)
    return {
        "isMember": standing != Standing.visitor,
        "isOwner": standing == Standing.owner,
        "isCollaborator": standing == Standing.collaborator,
    }


# ---------------------------
# photo membership
# ---------------------------
async def _usable_photo_ids(db: AsyncSession, photo_ids: Sequence[int], actor: User) -> list[int]:
    """Dedupe and check that every photo exists and is live or the actor's own."""
    wanted = list(dict.fromkeys(int(pid) for pid in photo_ids))
    if not wanted:
        return []
    rows = (await db.execute(select(Photo.id, Photo.user_id, Photo.status).where(Photo.id.in_(wanted)))).all()
    usable = {pid for pid, owner_id, status in rows if status == PhotoStatus.live or owner_id == actor.id}
    missing = [pid for pid in wanted if pid not in usable]
    if missing:
        raise ValidationFailed(f"Photo {missing[0]} not found")
    return wanted


async def _append_photos(db: AsyncSession, collection: Collection, photo_ids: Sequence[int], actor: User) -> list[int]:
    present = set(
        (await db.execute(select(CollectionPhoto.photo_id).where(CollectionPhoto.collection_id == collection.id))).scalars()
    )
    added = [pid for pid in photo_ids if pid not in present]
    for pid in added:
        db.add(CollectionPhoto(collection_id=collection.id, photo_id=pid, added_by_user_id=actor.id))
    if added and collection.cover_photo_id is None:
        collection.cover_photo_id = added[0]
    await db.flush()
    return added


async def add_photos(db: AsyncSession, identifier: str | int, user: User, photo_ids: Sequence[int]) -> dict:
    collection = await resolve(db, identifier)
    await require_contributor(db, collection, user)
    added = await _append_photos(db, collection, await _usable_photo_ids(db, photo_ids, user), user)
    await db.commit()
    logger.info("User %s added %d photo(s) to collection %s", user.id, len(added), collection.id)
    return {"added": len(added), "photoIds": added}


async def attach_uploads(db: AsyncSession, collection: Collection, user: User, photo_ids: Sequence[int]) -> None:
    """Link freshly uploaded photos and tell the owner when a collaborator did it."""
    await _append_photos(db, collection, photo_ids, user)
    await db.commit()
    if photo_ids:
        notify(
            collection.user_id,
            NotificationType.collection_upload,
            f"{user.display_name} added {len(photo_ids)} photo(s) to your collection \"{collection.name}\"",
            related_id=collection.id,
            action_url=f"/collections/{collection.uuid}",
            actor_id=user.id,
        )


async def upload_into(
    db: AsyncSession,
    identifier: str | int,
    user: User,
    files: Sequence[UploadFile],
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[str] = None,
    category: Optional[str] = None,
) -> dict:
    """Upload straight into a collection; the new photos go live immediately."""
    collection = await resolve(db, identifier)
    await require_contributor(db, collection, user)
    photo_ids = await store_uploads(
        db, user, files,
        title=title, description=description, tags=tags, category=category,
        status=PhotoStatus.live,
    )
    await attach_uploads(db, collection, user, photo_ids)
    return {"photos": await load_photos(db, photo_ids), "photoIds": photo_ids}


# ---------------------------
# create / update / delete
# ---------------------------
async def create(db: AsyncSession, owner: User, data: CollectionCreate) -> CollectionDetail:
    photo_ids = await _usable_photo_ids(db, data.photo_ids, owner)
    collection = Collection(
        user_id=owner.id,
        name=data.name,
        description=(data.description or "").strip() or None,
        is_private=data.is_private,
        is_collaborative=data.is_collaborative,
    )
    db.add(collection)
    await db.flush()
    if data.cover_photo_id is not None:
        (collection.cover_photo_id,) = await _usable_photo_ids(db, [data.cover_photo_id], owner)
    await _append_photos(db, collection, photo_ids, owner)

    invites = []
    if collection.is_collaborative and data.collaborator_emails:
        invites = await collaboration.create_invites(db, collection, owner, data.collaborator_emails)
    await db.commit()
    collaboration.send_invites(collection, owner, invites)
    logger.info("User %s created collection %s (%s)", owner.id, collection.id, collection.uuid)

    return await _detail(db, await _reload(db, collection.id), owner, Standing.owner)


async def update_collection(db: AsyncSession, identifier: str | int, owner: User, data: CollectionUpdate) -> CollectionDetail:
    collection = await resolve(db, identifier)
    require_owner(collection, owner, "edit")
    fields = data.model_dump(exclude_unset=True)

    if "name" in fields and fields["name"] is not None:
        name = fields["name"].strip()
        if not name:
            raise ValidationFailed("Collection name is required")
        collection.name = name
    if "description" in fields:
        collection.description = (fields["description"] or "").strip() or None
    for flag in ("is_private", "is_collaborative"):
        if fields.get(flag) is not None:
            setattr(collection, flag, fields[flag])

    if data.photo_ids is not None:
        photo_ids = await _usable_photo_ids(db, data.photo_ids, owner)
        await db.execute(
            delete(CollectionPhoto).where(
                CollectionPhoto.collection_id == collection.id,
                CollectionPhoto.photo_id.not_in(photo_ids),
            )
        )
        if collection.cover_photo_id not in photo_ids:
            collection.cover_photo_id = photo_ids[0] if photo_ids else None
        await _append_photos(db, collection, photo_ids, owner)
    if "cover_photo_id" in fields:
        if fields["cover_photo_id"] is None:
            collection.cover_photo_id = None
        else:
            (collection.cover_photo_id,) = await _usable_photo_ids(db, [fields["cover_photo_id"]], owner)

    invites = []
    if collection.is_collaborative and data.collaborator_emails:
        invites = await collaboration.create_invites(
            db, collection, owner, data.collaborator_emails, skip_existing=True
        )
    collection.updated_at = now_tz()
    await db.commit()
    collaboration.send_invites(collection, owner, invites)

    return await _detail(db, await _reload(db, collection.id), owner, Standing.owner)


async def delete_collection(db: AsyncSession, identifier: str | int, owner: User) -> None:
    collection = await resolve(db, identifier)
    require_owner(collection, owner, "delete")
    await db.execute(delete(Collection).where(Collection.id == collection.id))
    await db.commit()
    logger.info("User %s deleted collection %s", owner.id, collection.id)


# ---------------------------
# engagement
# ---------------------------
async def _liked_by(db: AsyncSession, collection_id: int, user_id: int) -> bool:
    row = await db.scalar(
        select(CollectionLike.id).where(CollectionLike.collection_id == collection_id, CollectionLike.user_id == user_id)
    )
    return row is not None


async def toggle_like(db: AsyncSession, identifier: str | int, user: User) -> dict:
    collection = await resolve(db, identifier)
    await require_view(db, collection, user)
    if await _liked_by(db, collection.id, user.id):
        await db.execute(
            delete(CollectionLike).where(CollectionLike.collection_id == collection.id, CollectionLike.user_id == user.id)
        )
        liked = False
    else:
        db.add(CollectionLike(collection_id=collection.id, user_id=user.id))
        liked = True
    await db.commit()
    if liked:
        notify(
            collection.user_id,
            NotificationType.collection_like,
            f"{user.display_name} liked your collection \"{collection.name}\"",
            related_id=collection.id,
            action_url=f"/collections/{collection.uuid}",
            actor_id=user.id,
        )
    counts = await aggregate_counts(db, [collection.id])
    return {"liked": liked, "likeCount": counts[collection.id]["like_count"]}


async def like_status(db: AsyncSession, identifier: str | int, user: Optional[User]) -> dict:
    collection = await resolve(db, identifier)
    await require_view(db, collection, user)
    liked = user is not None and await _liked_by(db, collection.id, user.id)
    counts = await aggregate_counts(db, [collection.id])
    return {"liked": liked, "likeCount": counts[collection.id]["like_count"]}


async def record_view(db: AsyncSession, identifier: str | int, user: Optional[User], *, ip_address: Optional[str] = None) -> dict:
    collection = await resolve(db, identifier)
    standing = await require_view(db, collection, user)
    tracked = standing != Standing.owner
    if tracked:
        db.add(CollectionView(collection_id=collection.id, user_id=user.id if user else None, ip_address=ip_address))
        await db.commit()
    counts = await aggregate_counts(db, [collection.id])
    return {"viewCount": counts[collection.id]["view_count"], "tracked": tracked}


async def analytics(db: AsyncSession, identifier: str | int, owner: User) -> dict:
    collection = await resolve(db, identifier)
    require_owner(collection, owner, "view analytics for")
    totals = (
        await db.execute(
            select(
                func.count(Photo.id),
                func.coalesce(func.sum(Photo.views), 0),
                func.coalesce(func.sum(Photo.downloads), 0),
                func.coalesce(func.sum(Photo.likes), 0),
            )
            .select_from(CollectionPhoto)
            .join(Photo, Photo.id == CollectionPhoto.photo_id)
            .where(CollectionPhoto.collection_id == collection.id)
        )
    ).one()
    photos, views, downloads, likes = (int(v or 0) for v in totals)
    engagement = Photo.views + Photo.downloads + Photo.likes
    top = (
        await db.execute(
            select(Photo.id, Photo.title, Photo.thumbnail_path, Photo.views, Photo.downloads, Photo.likes)
            .join(CollectionPhoto, CollectionPhoto.photo_id == Photo.id)
            .where(CollectionPhoto.collection_id == collection.id)
            .order_by(engagement.desc(), Photo.id)
            .limit(5)
        )
    ).all()
    return {
        "totalPhotos": photos,
        "totalViews": views,
        "totalDownloads": downloads,
        "totalLikes": likes,
        "averageEngagement": round((views + downloads + likes) / photos) if photos else 0,
        "topPhotos": [
            {
                "id": pid,
                "title": title,
                "thumbnailPath": f"/{thumb}" if thumb else None,
                "views": v,
                "downloads": d,
                "likes": lk,
                "totalEngagement": v + d + lk,
            }
            for pid, title, thumb, v, d, lk in top
        ],
    }


async def picker_photos(
    db: AsyncSession, user_id: int, viewer: User, *, search: Optional[str] = None, limit: int = 50, offset: int = 0
) -> dict:
    """The viewer's own photos, drafts included, for the add-to-collection picker."""
    if viewer.id != user_id:
        raise AuthorizationDenied("You can only browse your own photos")
    stmt = select(Photo.id).where(Photo.user_id == user_id)
    if search and search.strip():
        stmt = stmt.where(Photo.title.ilike(f"%{search.strip()}%"))
    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    ids = list((await db.execute(stmt.order_by(Photo.created_at.desc(), Photo.id.desc()).limit(limit).offset(offset))).scalars())
    return {"photos": await load_photos(db, ids), "total": total, "hasMore": has_more(limit, offset, total)}
