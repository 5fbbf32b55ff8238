from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.cache import cache
from blog_api.database import get_db
from blog_api.models import Comment, Interaction, Post, User
from blog_api.schemas import MetricsResponse

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


async def _count(db: AsyncSession, model, *conditions) -> int:
    q = select(func.count()).select_from(model).where(*conditions)
    return (await db.execute(q)).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    return MetricsResponse(
        total_posts=await _count(db, Post),
        published_posts=await _count(db, Post, Post.is_published.is_(True)),
        total_comments=await _count(db, Comment),
        total_likes=await _count(db, Interaction, Interaction.kind == "like"),
        total_bookmarks=await _count(db, Interaction, Interaction.kind == "bookmark"),
        total_users=await _count(db, User),
        cache_info=cache.stats,
    )
