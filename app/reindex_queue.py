import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)


class ReindexQueue:
    """
    Redis list of post ids whose search index write failed.

    Entries are pushed on the left and popped from the right (FIFO) and
    drained by ``reindex_service.drain_queue``.  Like the rest of the
    Redis usage this degrades gracefully: when Redis is unavailable an
    entry is dropped with a warning, and reads report an empty queue.
    """

    def __init__(self, key: str | None = None) -> None:
        self.key = key or settings.REINDEX_QUEUE_KEY
        self._redis: redis.Redis | None = None
        self._enqueued: int = 0
        self._dropped: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except RedisError as exc:  # pragma: no cover
            logger.warning("Redis ping failed, reindex queue degraded: %s", exc)

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(self, op: str, post_id: int) -> bool:
        """Record a pending ``save``/``delete`` for *post_id*.  Returns False if dropped."""
        entry = json.dumps({"op": op, "post_id": post_id})
        if not self._redis:
            self._dropped += 1
            logger.warning("Reindex queue unavailable, dropped %s for post id=%s", op, post_id)
            return False
        try:
            await self._redis.lpush(self.key, entry)
        except RedisError as exc:
            self._dropped += 1
            logger.warning("Reindex enqueue failed for post id=%s: %s", post_id, exc)
            return False
        self._enqueued += 1
        return True

    async def requeue(self, entry: dict) -> None:
        """Put *entry* back at the head so it is the next one popped."""
        if not self._redis:
            return
        try:
            await self._redis.rpush(self.key, json.dumps(entry))
        except RedisError as exc:
            self._dropped += 1
            logger.warning("Reindex requeue failed for %r: %s", entry, exc)

    async def pop(self) -> dict | None:
        """Return the oldest pending entry, or None when empty/unavailable."""
        if not self._redis:
            return None
        try:
            raw = await self._redis.rpop(self.key)
        except RedisError as exc:
            logger.warning("Reindex pop failed: %s", exc)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def pending(self) -> int:
        if not self._redis:
            return 0
        try:
            return await self._redis.llen(self.key)
        except RedisError as exc:
            logger.debug("Reindex LLEN failed: %s", exc)
            return 0

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    async def stats(self) -> dict:
        """Snapshot of counters for the metrics endpoint."""
        return {
            "pending": await self.pending(),
            "enqueued": self._enqueued,
            "dropped": self._dropped,
        }


# Module-level singleton shared across all request handlers.
reindex_queue = ReindexQueue()
