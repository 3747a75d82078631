"""Photo content store: uploads, publishing, listing and counters."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Iterable, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.background import run_sync, spawn
from pixinity.errors import AuthorizationDenied, NotFound, ValidationFailed
from pixinity.media_pipeline import ACCEPTED_MIME_TYPES, pipeline
from pixinity.models import (
    Category,
    Photo,
    PhotoDownload,
    PhotoStatus,
    PhotoView,
    Tag,
    User,
    photo_categories,
    photo_tags,
)
from pixinity.schemas import PhotoRead
from pixinity.services.mailer import send_photo_published_email
from pixinity.settings.config import settings
from pixinity.utils import clean_filename, has_more, now_tz, slugify

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    "Nature", "Architecture", "People", "Travel", "Street", "Animals",
    "Food", "Fashion", "Sports", "Technology", "Abstract", "Other",
)

SORTS = {
    "trending": lambda: ((Photo.views + Photo.likes + Photo.downloads).desc(), Photo.created_at.desc()),
    "newest": lambda: (Photo.published_at.desc(), Photo.id.desc()),
    "oldest": lambda: (Photo.published_at.asc(), Photo.id.asc()),
    "popular": lambda: (Photo.likes.desc(), Photo.id.desc()),
    "views": lambda: (Photo.views.desc(), Photo.id.desc()),
    "downloads": lambda: (Photo.downloads.desc(), Photo.id.desc()),
}


# ---------------------------
# tags & categories
# ---------------------------
def parse_tags(raw: Optional[str]) -> list[str]:
    seen: list[str] = []
    for part in (raw or "").split(","):
        name = part.strip().lower()[:64]
        if name and name not in seen:
            seen.append(name)
    return seen


async def get_or_create_tags(db: AsyncSession, names: Iterable[str]) -> list[Tag]:
    names = list(names)
    if not names:
        return []
    existing = {t.name: t for t in (await db.execute(select(Tag).where(Tag.name.in_(names)))).scalars()}
    out = []
    for name in names:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
            existing[name] = tag
        out.append(tag)
    await db.flush()
    return out


async def find_category(db: AsyncSession, name: Optional[str]) -> Optional[Category]:
    name = (name or "").strip()
    if not name:
        return None
    cat = await db.scalar(
        select(Category).where(or_(func.lower(Category.name) == name.lower(), Category.slug == slugify(name)))
    )
    if cat is None:
        logger.info("Ignoring unknown category %r", name)
    return cat


async def list_categories(db: AsyncSession) -> list[Category]:
    return list((await db.execute(select(Category).order_by(Category.name))).scalars())


async def seed_categories(db: AsyncSession) -> None:
    have = set((await db.execute(select(Category.slug))).scalars())
    for name in DEFAULT_CATEGORIES:
        if slugify(name) not in have:
            db.add(Category(name=name, slug=slugify(name)))
    await db.commit()


# ---------------------------
# loading & visibility
# ---------------------------
async def load_photos(db: AsyncSession, ids: Sequence[int]) -> list[PhotoRead]:
    """Fresh rows with owner, tags and categories loaded, in the order of ``ids``."""
    if not ids:
        return []
    stmt = select(Photo).where(Photo.id.in_(ids)).execution_options(populate_existing=True)
    rows = (await db.execute(stmt)).scalars().unique()
    by_id = {p.id: p for p in rows}
    return [PhotoRead.model_validate(by_id[i]) for i in ids if i in by_id]


async def get_photo(db: AsyncSession, photo_id: int) -> Photo:
    photo = await db.scalar(select(Photo).where(Photo.id == photo_id))
    if photo is None:
        raise NotFound("Photo not found")
    return photo


async def get_visible_photo(db: AsyncSession, photo_id: int, viewer: Optional[User]) -> Photo:
    """Drafts exist only for their owner; everyone else gets NotFound."""
    photo = await get_photo(db, photo_id)
    if photo.status != PhotoStatus.live and (viewer is None or viewer.id != photo.user_id):
        raise NotFound("Photo not found")
    return photo


def _require_owner(photo: Photo, user: User, action: str) -> None:
    if photo.user_id != user.id:
        raise AuthorizationDenied(f"Not authorized to {action} this photo")


# ---------------------------
# uploads
# ---------------------------
async def _bump_uploads(db: AsyncSession, user_id: int, delta: int) -> None:
    stmt = update(User).where(User.id == user_id).values(uploads_count=User.uploads_count + delta)
    if delta < 0:
        stmt = stmt.where(User.uploads_count > 0)
    await db.execute(stmt)


async def store_uploads(
    db: AsyncSession,
    owner: User,
    files: Sequence[UploadFile],
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[str] = None,
    category: Optional[str] = None,
    status: PhotoStatus = PhotoStatus.draft,
) -> list[int]:
    """Process files one after another, committing each photo as it lands.

    A file that fails is logged and skipped; photos already stored stay.
    Returns the ids of the created photos.
    """
    files = [f for f in files if f is not None and (f.filename or "")]
    if not files:
        raise ValidationFailed("No files uploaded")
    if len(files) > settings.UPLOAD_MAX_FILES:
        raise ValidationFailed(f"At most {settings.UPLOAD_MAX_FILES} files per upload")

    tag_names = parse_tags(tags)
    cat = await find_category(db, category)
    created: list[int] = []
    errors: list[str] = []

    for upload in files:
        name = clean_filename(upload.filename or "upload")
        try:
            if upload.content_type and upload.content_type.lower() not in ACCEPTED_MIME_TYPES:
                raise ValidationFailed("Only JPEG, PNG, and WebP images are allowed")
            data = await upload.read()
            artifact = await run_sync(pipeline.process_upload, data=data, filename=name, user_id=owner.id)
        except ValidationFailed as exc:
            logger.warning("Skipping upload %s from user %s: %s", name, owner.id, exc.message)
            errors.append(exc.message)
            continue
        except Exception:
            logger.exception("Failed to process upload %s from user %s", name, owner.id)
            errors.append(f"Failed to process {name}")
            continue

        is_live = status == PhotoStatus.live
        photo = Photo(
            user_id=owner.id,
            title=(title or "").strip()[:255] or PurePath(name).stem[:255] or "Untitled",
            description=(description or "").strip() or None,
            file_path=artifact.file_rel,
            thumbnail_path=artifact.thumb_rel,
            width=artifact.width,
            height=artifact.height,
            size_kb=artifact.size_kb,
            format=artifact.format,
            status=status,
            published_at=now_tz() if is_live else None,
        )
        photo.tags = await get_or_create_tags(db, tag_names)
        photo.categories = [cat] if cat else []
        db.add(photo)
        await db.flush()
        if is_live:
            await _bump_uploads(db, owner.id, 1)
        await db.commit()
        created.append(photo.id)
        logger.info("User %s uploaded photo %s (%s)", owner.id, photo.id, status.value)
        if is_live:
            spawn(
                send_photo_published_email(owner.email, owner.display_name, photo.title, photo.id),
                name=f"photo-published-{photo.id}",
            )

    if not created:
        raise ValidationFailed(errors[0] if errors else "No files could be processed")
    return created


async def publish(db: AsyncSession, photo_id: int, owner: User) -> Photo:
    photo = await get_photo(db, photo_id)
    _require_owner(photo, owner, "publish")
    if photo.status != PhotoStatus.draft:
        raise ValidationFailed("Photo is already published")
    photo.status = PhotoStatus.live
    photo.published_at = now_tz()
    await _bump_uploads(db, owner.id, 1)
    await db.commit()
    spawn(
        send_photo_published_email(owner.email, owner.display_name, photo.title, photo.id),
        name=f"photo-published-{photo.id}",
    )
    return photo


async def delete_photo(db: AsyncSession, photo_id: int, owner: User) -> None:
    photo = await get_photo(db, photo_id)
    _require_owner(photo, owner, "delete")
    was_live = photo.status == PhotoStatus.live
    paths = (photo.file_path, photo.thumbnail_path)
    await db.execute(delete(Photo).where(Photo.id == photo.id))
    if was_live:
        await _bump_uploads(db, owner.id, -1)
    await db.commit()
    pipeline.delete_artifacts(*paths)
    logger.info("User %s deleted photo %s", owner.id, photo_id)


# ---------------------------
# listing
# ---------------------------
def _search_clause(search: str):
    pattern = f"%{search.strip()}%"
    tag_match = exists().where(
        photo_tags.c.photo_id == Photo.id,
        photo_tags.c.tag_id == Tag.id,
        Tag.name.ilike(pattern),
    )
    return or_(Photo.title.ilike(pattern), Photo.description.ilike(pattern), tag_match)


def _category_clause(category: str):
    name = category.strip()
    return exists().where(
        photo_categories.c.photo_id == Photo.id,
        photo_categories.c.category_id == Category.id,
        or_(func.lower(Category.name) == name.lower(), Category.slug == slugify(name)),
    )


async def _page(db: AsyncSession, stmt, order, limit: int, offset: int) -> dict:
    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    ids = list((await db.execute(stmt.order_by(*order).limit(limit).offset(offset))).scalars())
    return {
        "photos": await load_photos(db, ids),
        "total": total,
        "hasMore": has_more(limit, offset, total),
    }


async def list_photos(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = "trending",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    stmt = select(Photo.id).where(Photo.status == PhotoStatus.live)
    if search and search.strip():
        stmt = stmt.where(_search_clause(search))
    if category and category.strip() and category.strip().lower() != "all":
        stmt = stmt.where(_category_clause(category))
    order = SORTS.get(sort, SORTS["trending"])()
    return await _page(db, stmt, order, limit, offset)


async def list_user_photos(
    db: AsyncSession,
    user_id: int,
    viewer: Optional[User],
    *,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    stmt = select(Photo.id).where(Photo.user_id == user_id)
    is_owner = viewer is not None and viewer.id == user_id
    if not is_owner:
        stmt = stmt.where(Photo.status == PhotoStatus.live)
    elif status in (PhotoStatus.draft.value, PhotoStatus.live.value):
        stmt = stmt.where(Photo.status == PhotoStatus(status))
    if search and search.strip():
        stmt = stmt.where(_search_clause(search))
    return await _page(db, stmt, (Photo.created_at.desc(), Photo.id.desc()), limit, offset)


# ---------------------------
# counters
# ---------------------------
async def _counter(db: AsyncSession, photo_id: int, column) -> int:
    return await db.scalar(select(column).where(Photo.id == photo_id)) or 0


async def record_view(
    db: AsyncSession,
    photo: Photo,
    viewer: Optional[User],
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict:
    """Count a page view; the owner's own views are not counted."""
    if viewer is not None and viewer.id == photo.user_id:
        return {"viewsCount": await _counter(db, photo.id, Photo.views), "tracked": False}
    db.add(
        PhotoView(
            photo_id=photo.id,
            user_id=viewer.id if viewer else None,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
        )
    )
    await db.execute(update(Photo).where(Photo.id == photo.id).values(views=Photo.views + 1))
    await db.commit()
    return {"viewsCount": await _counter(db, photo.id, Photo.views), "tracked": True}


async def record_download(db: AsyncSession, photo_id: int, viewer: Optional[User]) -> dict:
    photo = await get_visible_photo(db, photo_id, viewer)
    await db.execute(update(Photo).where(Photo.id == photo.id).values(downloads=Photo.downloads + 1))
    if viewer is not None:
        db.add(PhotoDownload(photo_id=photo.id, user_id=viewer.id))
    await db.commit()
    return {"downloadsCount": await _counter(db, photo.id, Photo.downloads)}
