from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.database import get_db
from pixinity.models import User
from pixinity.services.analytics import user_analytics
from pixinity.utils import require_authenticated_user

router = APIRouter()


@router.get("/user/{user_id}")
async def get_user_analytics(
    user_id: int,
    period: int = 30,
    user: User = Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_analytics(db, user_id, user, period=period)
