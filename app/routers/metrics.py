from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models import Blog, Post, Tag, User
from app.schemas import MetricsResponse
from app.reindex_queue import reindex_queue

router = APIRouter(prefix="/api/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):

    total_posts = (await db.execute(select(func.count()).select_from(Post))).scalar_one()

    total_tags = (await db.execute(select(func.count()).select_from(Tag))).scalar_one()

    total_blogs = (await db.execute(select(func.count()).select_from(Blog))).scalar_one()

    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    return MetricsResponse(
        total_posts=total_posts,
        total_tags=total_tags,
        total_blogs=total_blogs,
        total_users=total_users,
        reindex_queue=await reindex_queue.stats(),
    )
