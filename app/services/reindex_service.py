"""
Reindex service: brings the search index back in line with the database.

Queue entries only name a post id; the current database row decides
what happens (present → upsert, absent → delete), so replaying an entry
any number of times converges on the same index state.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import IndexPropagationError
from app.models import Post
from app.reindex_queue import reindex_queue
from app.search import SearchIndex
from app.services.post_service import load_post, post_to_dict

logger = logging.getLogger(__name__)


async def reconcile_post(db: AsyncSession, index: SearchIndex, post_id: int) -> str:
    """Mirror the current database state of *post_id*.  Returns ``"save"`` or ``"delete"``."""
    post = await load_post(db, post_id)
    if post is None:
        await index.delete_by_id(post_id)
        return "delete"
    await index.save(post_to_dict(post))
    return "save"


async def drain_queue(db: AsyncSession, index: SearchIndex, limit: int = 500) -> dict:
    """
    Replay up to *limit* pending entries.

    Stops at the first entry that fails again, whether the index or the
    database is at fault, putting it back at the head of the queue so
    ordering is preserved for the next run.
    """
    applied = 0
    failed = 0
    while applied < limit:
        entry = await reindex_queue.pop()
        if entry is None:
            break
        try:
            action = await reconcile_post(db, index, entry["post_id"])
        except IndexPropagationError as exc:
            logger.warning("Reindex of post id=%s failed again: %s", entry["post_id"], exc.message)
            await reindex_queue.requeue(entry)
            failed += 1
            break
        except SQLAlchemyError as exc:
            logger.warning("Reindex of post id=%s could not read the database: %s", entry["post_id"], exc)
            await db.rollback()
            await reindex_queue.requeue(entry)
            failed += 1
            break
        logger.debug("Reindexed post id=%s (%s, queued as %s)", entry["post_id"], action, entry["op"])
        applied += 1

    remaining = await reindex_queue.pending()
    logger.info("Reindex queue drained: applied=%d failed=%d remaining=%d", applied, failed, remaining)
    return {"applied": applied, "failed": failed, "remaining": remaining}


async def reindex_all(db: AsyncSession, index: SearchIndex, batch_size: int = 500) -> int:
    """Write every post in the database to *index*.  Returns the number indexed."""
    indexed = 0
    last_id = 0
    while True:
        result = await db.execute(
            select(Post)
            .where(Post.id > last_id)
            .options(selectinload(Post.tags))
            .order_by(Post.id)
            .limit(batch_size)
        )
        posts = result.scalars().all()
        if not posts:
            break
        for post in posts:
            await index.save(post_to_dict(post))
        indexed += len(posts)
        last_id = posts[-1].id
        logger.info("Reindexed %d post(s) so far", indexed)
    return indexed
