from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthorizationDenied, ValidationFailed
from pixinity.models import Category, Follow, Photo, PhotoDownload, PhotoLike, PhotoStatus, PhotoView, User, photo_categories
from pixinity.utils import now_tz

MAX_PERIOD_DAYS = 365


def engagement_score():
    return Photo.views + Photo.likes * 2 + Photo.downloads * 3


async def _per_day(db: AsyncSession, ts_col, owner_col, user_id: int, since, join=None) -> list[dict]:
    day = func.date(ts_col)
    stmt = select(day, func.count()).where(owner_col == user_id, ts_col >= since)
    if join is not None:
        stmt = stmt.select_from(join[0]).join(*join[1:])
    rows = await db.execute(stmt.group_by(day).order_by(day))
    return [{"date": str(d), "count": n} for d, n in rows.all()]


async def user_analytics(db: AsyncSession, user_id: int, viewer: User, *, period: int = 30) -> dict:
    if viewer.id != user_id:
        raise AuthorizationDenied("Not authorized to view analytics")
    if period < 1 or period > MAX_PERIOD_DAYS:
        raise ValidationFailed(f"period must be between 1 and {MAX_PERIOD_DAYS} days")
    since = now_tz() - timedelta(days=period)
    live = (Photo.user_id == user_id, Photo.status == PhotoStatus.live)

    total, views, likes, downloads, avg_v, avg_l, avg_d = (
        await db.execute(
            select(
                func.count(Photo.id),
                func.coalesce(func.sum(Photo.views), 0),
                func.coalesce(func.sum(Photo.likes), 0),
                func.coalesce(func.sum(Photo.downloads), 0),
                func.avg(Photo.views),
                func.avg(Photo.likes),
                func.avg(Photo.downloads),
            ).where(*live)
        )
    ).one()

    score = engagement_score().label("engagement_score")
    top = (
        await db.execute(
            select(Photo.id, Photo.title, Photo.thumbnail_path, Photo.views, Photo.likes, Photo.downloads, score)
            .where(*live)
            .order_by(score.desc(), Photo.id)
            .limit(10)
        )
    ).all()

    categories = (
        await db.execute(
            select(
                func.coalesce(Category.name, "Uncategorized"),
                func.count(Photo.id),
                func.coalesce(func.sum(Photo.views), 0),
                func.coalesce(func.sum(Photo.likes), 0),
                func.coalesce(func.sum(Photo.downloads), 0),
            )
            .select_from(Photo)
            .outerjoin(photo_categories, photo_categories.c.photo_id == Photo.id)
            .outerjoin(Category, Category.id == photo_categories.c.category_id)
            .where(*live)
            .group_by(Category.name)
            .order_by(func.coalesce(func.sum(Photo.views), 0).desc())
        )
    ).all()

    return {
        "period": period,
        "overview": {
            "totalPhotos": int(total or 0),
            "totalViews": int(views or 0),
            "totalLikes": int(likes or 0),
            "totalDownloads": int(downloads or 0),
            "avgViews": round(float(avg_v or 0)),
            "avgLikes": round(float(avg_l or 0)),
            "avgDownloads": round(float(avg_d or 0)),
        },
        "topPhotos": [
            {
                "id": pid,
                "title": title,
                "thumbnailPath": f"/{thumb}" if thumb else None,
                "views": v,
                "likes": lk,
                "downloads": d,
                "engagementScore": s,
            }
            for pid, title, thumb, v, lk, d, s in top
        ],
        "viewsOverTime": await _per_day(
            db, PhotoView.viewed_at, Photo.user_id, user_id, since,
            join=(PhotoView, Photo, Photo.id == PhotoView.photo_id),
        ),
        "likesOverTime": await _per_day(
            db, PhotoLike.created_at, Photo.user_id, user_id, since,
            join=(PhotoLike, Photo, Photo.id == PhotoLike.photo_id),
        ),
        "downloadsOverTime": await _per_day(
            db, PhotoDownload.created_at, Photo.user_id, user_id, since,
            join=(PhotoDownload, Photo, Photo.id == PhotoDownload.photo_id),
        ),
        "followersOverTime": await _per_day(db, Follow.created_at, Follow.following_id, user_id, since),
        "categoryStats": [
            {"category": name, "photoCount": n, "totalViews": v, "totalLikes": lk, "totalDownloads": d}
            for name, n, v, lk, d in categories
        ],
    }
